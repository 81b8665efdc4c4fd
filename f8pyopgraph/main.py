from __future__ import annotations

import argparse
import json
import logging
import os

from f8pyopgraph.config import EngineConfig
from f8pyopgraph.engine import OpGraphEngine, default_registry


def _build_demo(engine: OpGraphEngine) -> None:
    """
    ramp + noise -> composite -> material -> geom, composite -> window, plus camera/light/plane.
    """
    engine.spawn("texture.ramp", "ramp")
    engine.spawn("texture.noise", "noise")
    engine.spawn("texture.composite", "composite")
    engine.spawn("material.standard", "material")
    engine.spawn("mesh.plane", "plane")
    engine.spawn("component.geom", "geom")
    engine.spawn("component.window", "window")
    engine.spawn("component.camera", "camera")
    engine.spawn("component.light", "light")

    engine.set_param("composite", "Mode", 2)
    engine.set_param("window", "Open", True)
    engine.set_param("noise", "Resolution", (64, 64))
    engine.set_param("ramp", "Resolution", (64, 64))
    engine.set_param("composite", "Resolution", (64, 64))

    for request in (
        {"kind": "connect", "producer": engine.lookup("ramp"), "consumer": engine.lookup("composite"), "consumer_port": 0},
        {"kind": "connect", "producer": engine.lookup("noise"), "consumer": engine.lookup("composite"), "consumer_port": 1},
        {"kind": "connect", "producer": engine.lookup("composite"), "consumer": engine.lookup("material")},
        {"kind": "connect", "producer": engine.lookup("plane"), "consumer": engine.lookup("geom")},
        {"kind": "connect", "producer": engine.lookup("composite"), "consumer": engine.lookup("window")},
    ):
        engine.submit(request)


def _run_demo(engine: OpGraphEngine, ticks: int) -> None:
    _build_demo(engine)
    for _ in range(max(0, int(ticks))):
        report = engine.tick()
        line = {
            "tick": report.tick,
            "executed": [engine.name_of(h) for h in report.executed],
            "failed": [engine.name_of(h) for h in report.failed],
            "requestErrors": [str(err) for _, err in report.request_errors],
        }
        print(json.dumps(line, ensure_ascii=False))
    order = [engine.name_of(h) for h in engine.topological_order()]
    print(json.dumps({"order": order}, ensure_ascii=False))


def _main(argv: list[str] | None = None) -> int:
    if not logging.getLogger().handlers:
        raw = (os.environ.get("F8_LOG_LEVEL") or "").strip().upper()
        level = getattr(logging, raw, logging.WARNING) if raw else logging.WARNING
        logging.basicConfig(level=level, format="%(levelname)s:%(name)s:%(message)s")

    parser = argparse.ArgumentParser(description="F8PyOpGraph")
    parser.add_argument("--describe", action="store_true", help="Output the registered operator classes in JSON format")
    parser.add_argument("--demo", action="store_true", help="Build a small texture/material/scene graph and tick it")
    parser.add_argument("--ticks", type=int, default=3, help="Number of ticks to run with --demo")
    parser.add_argument(
        "--module",
        action="append",
        default=[],
        help="Operator plugin module exposing register_operators(registry); repeatable",
    )
    args = parser.parse_args(argv)

    registry = default_registry()
    registry.load_modules(args.module)

    if args.describe:
        print(json.dumps(registry.describe(), ensure_ascii=False, indent=1))
        return 0

    if args.demo:
        try:
            config = EngineConfig.from_env()
        except ValueError as exc:
            raise SystemExit(str(exc))
        _run_demo(OpGraphEngine(config, registry=registry), args.ticks)
        return 0

    parser.print_help()
    return 2


if __name__ == "__main__":
    raise SystemExit(_main())
