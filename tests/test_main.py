import contextlib
import io
import json
import os
import sys
import unittest
from unittest import mock

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from f8pyopgraph.main import _main  # noqa: E402
from f8pyopgraph.registry import RegistryError  # noqa: E402


def _run(argv: list[str]) -> tuple[int, str]:
    buf = io.StringIO()
    with contextlib.redirect_stdout(buf):
        code = _main(argv)
    return code, buf.getvalue()


class MainTests(unittest.TestCase):
    def test_describe(self) -> None:
        code, out = _run(["--describe"])
        self.assertEqual(code, 0)
        classes = [d["operatorClass"] for d in json.loads(out)]
        self.assertIn("texture.composite", classes)
        self.assertIn("component.window", classes)

    def test_describe_with_plugin_module(self) -> None:
        code, out = _run(["--describe", "--module", "f8pyopgraph.operators"])
        self.assertEqual(code, 0)
        self.assertEqual(len(json.loads(out)), 9)
        with self.assertRaises(RegistryError):
            _run(["--describe", "--module", "f8pyopgraph.operators.mesh"])

    def test_demo(self) -> None:
        with mock.patch.dict(os.environ, {}, clear=True):
            code, out = _run(["--demo", "--ticks", "2"])
        self.assertEqual(code, 0)
        lines = [json.loads(line) for line in out.splitlines()]
        self.assertEqual(len(lines), 3)

        first, second, final = lines
        self.assertEqual(first["tick"], 1)
        self.assertEqual(first["failed"], [])
        self.assertEqual(first["requestErrors"], [])
        self.assertEqual(len(first["executed"]), 9)
        # Composite re-renders while connected; ramp and noise are idle.
        self.assertIn("composite", second["executed"])
        self.assertNotIn("ramp", second["executed"])

        order = final["order"]
        self.assertLess(order.index("ramp"), order.index("composite"))
        self.assertLess(order.index("noise"), order.index("composite"))
        self.assertLess(order.index("composite"), order.index("material"))
        self.assertLess(order.index("composite"), order.index("window"))
        self.assertLess(order.index("plane"), order.index("geom"))

    def test_demo_rejects_bad_env(self) -> None:
        with mock.patch.dict(os.environ, {"F8_OPGRAPH_MAX_LAYERS": "x"}, clear=True):
            with self.assertRaises(SystemExit):
                _run(["--demo"])

    def test_no_action_prints_help(self) -> None:
        code, out = _run([])
        self.assertEqual(code, 2)
        self.assertIn("--demo", out)


if __name__ == "__main__":
    unittest.main()
