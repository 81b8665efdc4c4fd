import os
import sys
import unittest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from pydantic import ValidationError  # noqa: E402

from f8pyopgraph.config import EngineConfig  # noqa: E402
from f8pyopgraph.connections import ConnectRequest, DisconnectRequest, parse_request  # noqa: E402
from f8pyopgraph.engine import OpGraphEngine  # noqa: E402
from f8pyopgraph.errors import CycleError, DanglingReference, PortOutOfRange, WouldCreateCycle  # noqa: E402
from f8pyopgraph.op import Operator  # noqa: E402
from f8pyopgraph.registry import OperatorRegistry  # noqa: E402


class _Wire(Operator):
    OPERATOR_CLASS = "test.wire"
    INPUTS = 1
    OUTPUTS = 1

    def __init__(self, name: str, events: list) -> None:
        super().__init__(name)
        self.events = events

    def on_connect(self, ctx, edge, fully_connected) -> None:
        self.events.append(("connect", self.name, ctx.engine.name_of(edge.producer), edge.in_port, fully_connected))

    def on_disconnect(self, ctx, edge, fully_connected) -> None:
        self.events.append(("disconnect", self.name, edge.producer, edge.in_port, fully_connected))


class _Mix(_Wire):
    OPERATOR_CLASS = "test.mix"
    INPUTS = 2


class _Source(_Wire):
    OPERATOR_CLASS = "test.source"
    INPUTS = 0


def _engine(**config) -> tuple[OpGraphEngine, list]:
    events: list = []
    reg = OperatorRegistry()
    for op_type in (_Wire, _Mix, _Source):
        reg.register(op_type.OPERATOR_CLASS, lambda name, t=op_type: t(name, events), op_type=op_type)
    return OpGraphEngine(EngineConfig(**config), registry=reg), events


class ConnectTests(unittest.TestCase):
    def test_occupied_port_is_replaced_disconnect_first(self) -> None:
        engine, events = _engine()
        a = engine.spawn("test.source", "a")
        b = engine.spawn("test.source", "b")
        engine.spawn("test.mix", "m")
        engine.connect("a", 0, "m", 0)
        events.clear()

        engine.connect("b", 0, "m", 0)
        self.assertEqual(
            events,
            [
                ("disconnect", "m", a, 0, False),
                ("connect", "m", "b", 0, False),
            ],
        )
        self.assertEqual([(e.producer, e.in_port) for e in engine.edges()], [(b, 0)])
        self.assertEqual(engine.operator("m").inputs.connections, {0: (b, 0)})

    def test_fully_connected_counts_occupied_ports(self) -> None:
        engine, events = _engine()
        engine.spawn("test.source", "a")
        engine.spawn("test.source", "b")
        engine.spawn("test.mix", "m")
        self.assertTrue(engine.is_fully_connected("a"))
        self.assertFalse(engine.is_fully_connected("m"))

        engine.connect("a", 0, "m", 0)
        self.assertFalse(engine.is_fully_connected("m"))
        engine.connect("b", 0, "m", 1)
        self.assertTrue(engine.is_fully_connected("m"))
        self.assertEqual(events[-1], ("connect", "m", "b", 1, True))

        engine.disconnect("a", "m")
        self.assertFalse(engine.is_fully_connected("m"))
        self.assertEqual(events[-1][0], "disconnect")
        self.assertFalse(events[-1][-1])

    def test_disconnect_without_ports_takes_lowest_input(self) -> None:
        engine, _ = _engine()
        a = engine.spawn("test.source", "a")
        engine.spawn("test.mix", "m")
        engine.connect("a", 0, "m", 1)
        engine.connect("a", 0, "m", 0)
        edge = engine.disconnect("a", "m")
        self.assertEqual(edge.in_port, 0)
        self.assertEqual(engine.operator("m").inputs.connections, {1: (a, 0)})
        with self.assertRaises(DanglingReference):
            engine.disconnect("a", "m", in_port=0)

    def test_ports_outside_arity(self) -> None:
        engine, _ = _engine()
        engine.spawn("test.source", "a")
        engine.spawn("test.wire", "w")
        with self.assertRaises(PortOutOfRange):
            engine.connect("a", 1, "w", 0)
        with self.assertRaises(PortOutOfRange):
            engine.connect("a", 0, "w", 1)
        with self.assertRaises(PortOutOfRange):
            engine.connect("w", 0, "a", 0)
        self.assertEqual(engine.edges(), [])

    def test_cycle_closing_connect_is_rejected(self) -> None:
        engine, events = _engine()
        engine.spawn("test.wire", "x")
        engine.spawn("test.wire", "y")
        engine.connect("x", 0, "y", 0)
        events.clear()
        with self.assertLogs("f8pyopgraph.connections", level="WARNING"):
            with self.assertRaises(WouldCreateCycle):
                engine.connect("y", 0, "x", 0)
        with self.assertLogs("f8pyopgraph.connections", level="WARNING"):
            with self.assertRaises(WouldCreateCycle):
                engine.connect("x", 0, "x", 0)
        self.assertEqual(events, [])
        self.assertEqual(len(engine.edges()), 1)
        self.assertEqual(len(engine.topological_order()), 2)

    def test_lazy_cycles_fail_the_tick(self) -> None:
        engine, _ = _engine(reject_cycles=False)
        x = engine.spawn("test.wire", "x")
        y = engine.spawn("test.wire", "y")
        engine.connect("x", 0, "y", 0)
        engine.connect("y", 0, "x", 0)
        with self.assertLogs("f8pyopgraph.engine", level="ERROR"):
            with self.assertRaises(CycleError) as cm:
                engine.tick()
        self.assertEqual(set(cm.exception.cycle), {x, y})

        # Flags survive the aborted pass.
        engine.disconnect("y", "x")
        report = engine.tick()
        self.assertEqual(report.executed, [x, y])


class RequestQueueTests(unittest.TestCase):
    def test_requests_apply_in_arrival_order(self) -> None:
        engine, _ = _engine()
        a = engine.spawn("test.source", "a")
        b = engine.spawn("test.source", "b")
        w = engine.spawn("test.wire", "w")
        engine.submit({"kind": "connect", "producer": a, "consumer": w})
        engine.submit(ConnectRequest(producer=b, consumer=w))
        engine.submit({"kind": "disconnect", "producer": a, "consumer": w})
        engine.submit({"kind": "connect", "producer": 999, "consumer": w})
        self.assertEqual(engine.pending_requests(), 4)

        # No topology change until the tick drains the queue.
        self.assertEqual(engine.edges(), [])
        with self.assertLogs("f8pyopgraph.connections", level="WARNING"):
            report = engine.tick()
        self.assertEqual(report.requests, 4)
        self.assertEqual(len(report.request_errors), 2)
        failed = [req for req, _ in report.request_errors]
        self.assertIsInstance(failed[0], DisconnectRequest)
        self.assertIsInstance(report.request_errors[1][1], DanglingReference)
        self.assertEqual([(e.producer, e.consumer) for e in engine.edges()], [(b, w)])
        self.assertEqual(engine.pending_requests(), 0)

    def test_malformed_requests_are_rejected_on_submit(self) -> None:
        engine, _ = _engine()
        for payload in (
            {"kind": "rewire", "producer": 0, "consumer": 1},
            {"kind": "connect", "producer": 0, "consumer": 1, "consumer_port": 256},
            {"kind": "connect", "producer": -1, "consumer": 1},
            {"kind": "connect", "producer": 0, "consumer": 1, "extra": True},
        ):
            with self.subTest(payload=payload):
                with self.assertRaises(ValidationError):
                    engine.submit(payload)
        self.assertEqual(engine.pending_requests(), 0)

    def test_parse_request_passthrough(self) -> None:
        req = DisconnectRequest(producer=1, consumer=2, consumer_port=1)
        self.assertIs(parse_request(req), req)
        self.assertEqual(parse_request(req.model_dump()), req)


if __name__ == "__main__":
    unittest.main()
