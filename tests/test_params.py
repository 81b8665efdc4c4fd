import os
import sys
import unittest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from pydantic import ValidationError  # noqa: E402

from f8pyopgraph.errors import ParamConversionError  # noqa: E402
from f8pyopgraph.params import (  # noqa: E402
    ParamKind,
    ParamRecord,
    ParamSet,
    ParamWriteOrigin,
    coerce_param_value,
    parse_scripted_value,
)


def _params() -> ParamSet:
    return ParamSet(
        [
            ParamRecord(name="Gain", kind=ParamKind.f32, value=1.0, order=0, page="Main"),
            ParamRecord(name="Size", kind=ParamKind.vec2, value=(1, 1), order=1, page="Main"),
            ParamRecord(name="Count", kind=ParamKind.u32, value=3, order=0, page="Advanced"),
            ParamRecord(name="Open", kind=ParamKind.boolean, value=False, order=2, page="Main"),
        ]
    )


class CoercionTests(unittest.TestCase):
    def test_vectors_normalize_to_float_tuples(self) -> None:
        self.assertEqual(coerce_param_value(ParamKind.vec3, [1, 2, 3]), (1.0, 2.0, 3.0))
        self.assertEqual(coerce_param_value(ParamKind.uvec2, (640, 480)), (640, 480))

    def test_wrong_shapes_are_rejected(self) -> None:
        for kind, value in (
            (ParamKind.vec2, (1.0, 2.0, 3.0)),
            (ParamKind.u32, -1),
            (ParamKind.u32, True),
            (ParamKind.f32, False),
            (ParamKind.uvec2, (1, -2)),
            (ParamKind.f32, "fast"),
        ):
            with self.subTest(kind=kind, value=value):
                with self.assertRaises(ParamConversionError) as cm:
                    coerce_param_value(kind, value)
                self.assertEqual(cm.exception.code, "INVALID_VALUE")

    def test_scripted_text(self) -> None:
        self.assertEqual(parse_scripted_value(ParamKind.vec2, "(1, 2.5)"), (1.0, 2.5))
        self.assertEqual(parse_scripted_value(ParamKind.f32, " 1.5 "), 1.5)
        self.assertIs(parse_scripted_value(ParamKind.boolean, "True"), True)
        self.assertEqual(parse_scripted_value(ParamKind.text, "hello"), "hello")
        self.assertIsNone(parse_scripted_value(ParamKind.none, "nil"))
        with self.assertRaises(ParamConversionError) as cm:
            parse_scripted_value(ParamKind.vec2, "(1, ")
        self.assertEqual(cm.exception.code, "PARSE_ERROR")

    def test_record_rejects_bad_default(self) -> None:
        with self.assertRaises(ValidationError):
            ParamRecord(name="Size", kind=ParamKind.vec2, value=1.0)
        with self.assertRaises(ValidationError):
            ParamRecord(name="  ", kind=ParamKind.f32, value=1.0)


class ParamSetTests(unittest.TestCase):
    def test_display_order_is_page_then_order(self) -> None:
        names = [r.name for r in _params()]
        self.assertEqual(names, ["Count", "Gain", "Size", "Open"])
        self.assertEqual(list(_params().pages()), ["Advanced", "Main"])

    def test_rejected_write_keeps_value_and_marks_error(self) -> None:
        params = _params()
        with self.assertLogs("f8pyopgraph.params", level="WARNING"):
            with self.assertRaises(ParamConversionError):
                params.write_scripted("Size", "not a vector")
        self.assertEqual(params.get("Size"), (1.0, 1.0))
        marker = params.error("Size")
        self.assertIsNotNone(marker)
        self.assertEqual(marker.details["origin"], "script")

        params.write_scripted("Size", "(2, 3)")
        self.assertEqual(params.get("Size"), (2.0, 3.0))
        self.assertEqual(params.errors(), {})
        self.assertEqual(params.scripted(), {"Size"})

    def test_clear_scripted_drops_markers(self) -> None:
        params = _params()
        with self.assertLogs("f8pyopgraph.params", level="WARNING"):
            with self.assertRaises(ParamConversionError):
                params.set("Count", -5, origin=ParamWriteOrigin.ui)
        self.assertIn("Count", params.errors())
        params.clear_scripted()
        self.assertEqual(params.errors(), {})

    def test_unknown_param(self) -> None:
        with self.assertRaises(ParamConversionError) as cm:
            _params().set("Missing", 1)
        self.assertEqual(cm.exception.code, "UNKNOWN_PARAM")

    def test_content_hash(self) -> None:
        a = _params()
        b = ParamSet(reversed(list(_params())))
        self.assertEqual(a.content_hash(), b.content_hash())

        # Layout does not count, values do.
        a.record("Gain").page = "Other"
        self.assertEqual(a.content_hash(), b.content_hash())
        a.set("Gain", 2.0)
        self.assertNotEqual(a.content_hash(), b.content_hash())
        a.set("Gain", 1.0)
        self.assertEqual(a.content_hash(), b.content_hash())

    def test_duplicate_record(self) -> None:
        params = _params()
        with self.assertRaises(ValueError):
            params.add(ParamRecord(name="Gain", kind=ParamKind.f32, value=0.0))


if __name__ == "__main__":
    unittest.main()
