from __future__ import annotations

import ast
import hashlib
import json
import logging
from collections.abc import Iterable, Iterator
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator

from .errors import ParamConversionError

logger = logging.getLogger(__name__)


class ParamKind(str, Enum):
    """Supported parameter value shapes."""

    none = "none"
    f32 = "f32"
    u32 = "u32"
    vec2 = "vec2"
    vec3 = "vec3"
    vec4 = "vec4"
    uvec2 = "uvec2"
    boolean = "bool"
    text = "str"


class ParamWriteOrigin(Enum):
    """
    Canonical origin of a parameter write, for diagnostics.
    """

    external = "external"
    script = "script"
    ui = "ui"
    system = "system"


_U32 = Annotated[int, Field(ge=0, le=0xFFFFFFFF)]

_ADAPTERS: dict[ParamKind, TypeAdapter[Any]] = {
    ParamKind.none: TypeAdapter(None),
    ParamKind.f32: TypeAdapter(float),
    ParamKind.u32: TypeAdapter(_U32),
    ParamKind.vec2: TypeAdapter(tuple[float, float]),
    ParamKind.vec3: TypeAdapter(tuple[float, float, float]),
    ParamKind.vec4: TypeAdapter(tuple[float, float, float, float]),
    ParamKind.uvec2: TypeAdapter(tuple[_U32, _U32]),
    ParamKind.boolean: TypeAdapter(bool),
    ParamKind.text: TypeAdapter(str),
}


def coerce_param_value(kind: ParamKind, value: Any) -> Any:
    """
    Validate `value` against `kind` and return its normalized form.

    Raises `ParamConversionError` when the value has the wrong shape.
    """
    if kind in (ParamKind.f32, ParamKind.u32) and isinstance(value, bool):
        raise ParamConversionError(
            "INVALID_VALUE",
            f"expected {kind.value}, got bool",
            details={"kind": kind.value, "value": value},
        )
    try:
        return _ADAPTERS[kind].validate_python(value)
    except ValidationError as exc:
        raise ParamConversionError(
            "INVALID_VALUE",
            f"cannot convert {value!r} to {kind.value}",
            details={"kind": kind.value, "value": value, "errors": exc.errors(include_url=False)},
        ) from exc


def parse_scripted_value(kind: ParamKind, text: str) -> Any:
    """
    Parse the textual form sent by a script console, e.g. `"1.5"` or `"(1, 2)"`.
    """
    if kind == ParamKind.text:
        return str(text)
    raw = str(text).strip()
    if kind == ParamKind.none and raw in ("", "None", "nil", "()"):
        return None
    if kind == ParamKind.boolean:
        return coerce_param_value(kind, raw.lower())
    try:
        parsed = ast.literal_eval(raw)
    except (ValueError, SyntaxError) as exc:
        raise ParamConversionError(
            "PARSE_ERROR",
            f"cannot parse {text!r} as {kind.value}",
            details={"kind": kind.value, "text": text},
        ) from exc
    return coerce_param_value(kind, parsed)


class ParamRecord(BaseModel):
    """One named, typed, ordered parameter shown on a page of the inspector."""

    model_config = ConfigDict(extra="forbid", validate_assignment=False)

    name: str
    kind: ParamKind = ParamKind.none
    value: Any = None
    order: int = 0
    page: str = ""

    @model_validator(mode="after")
    def _normalize(self) -> "ParamRecord":
        name = self.name.strip()
        if not name:
            raise ValueError("param name cannot be empty")
        self.name = name
        try:
            self.value = coerce_param_value(self.kind, self.value)
        except ParamConversionError as exc:
            raise ValueError(exc.message) from None
        return self


class ParamSet:
    """
    Private parameter set of an operator.

    Writes are validated against each record's kind. A rejected write keeps the
    previous value and leaves an error marker for that parameter which stays
    until the next successful write or `clear_errors()`.
    """

    def __init__(self, records: Iterable[ParamRecord] = ()) -> None:
        self._records: dict[str, ParamRecord] = {}
        self._errors: dict[str, ParamConversionError] = {}
        self._scripted: set[str] = set()
        for record in records:
            self.add(record)

    def add(self, record: ParamRecord) -> None:
        if record.name in self._records:
            raise ValueError(f"param {record.name} already exists")
        self._records[record.name] = record

    def __contains__(self, name: object) -> bool:
        return name in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[ParamRecord]:
        return iter(sorted(self._records.values(), key=lambda r: (r.page, r.order, r.name)))

    def names(self) -> list[str]:
        return sorted(self._records)

    def record(self, name: str) -> ParamRecord:
        try:
            return self._records[name]
        except KeyError:
            raise KeyError(f"param {name} not found") from None

    def get(self, name: str, default: Any = None) -> Any:
        record = self._records.get(name)
        return default if record is None else record.value

    def pages(self) -> dict[str, list[ParamRecord]]:
        out: dict[str, list[ParamRecord]] = {}
        for record in self:
            out.setdefault(record.page, []).append(record)
        return out

    # ---- writes ---------------------------------------------------------
    def set(self, name: str, value: Any, *, origin: ParamWriteOrigin = ParamWriteOrigin.external) -> Any:
        record = self._require_record(name)
        try:
            normalized = coerce_param_value(record.kind, value)
        except ParamConversionError as exc:
            self._reject(name, exc, origin)
            raise
        record.value = normalized
        self._errors.pop(name, None)
        if origin == ParamWriteOrigin.script:
            self._scripted.add(name)
        return normalized

    def write_scripted(self, name: str, text: str) -> Any:
        record = self._require_record(name)
        try:
            value = parse_scripted_value(record.kind, text)
        except ParamConversionError as exc:
            self._reject(name, exc, ParamWriteOrigin.script)
            raise
        return self.set(name, value, origin=ParamWriteOrigin.script)

    def errors(self) -> dict[str, ParamConversionError]:
        return dict(self._errors)

    def error(self, name: str) -> ParamConversionError | None:
        return self._errors.get(name)

    def scripted(self) -> set[str]:
        return set(self._scripted)

    def clear_errors(self) -> None:
        self._errors.clear()

    def clear_scripted(self) -> None:
        self._scripted.clear()
        self._errors.clear()

    def _require_record(self, name: str) -> ParamRecord:
        record = self._records.get(name)
        if record is None:
            raise ParamConversionError("UNKNOWN_PARAM", f"param {name} not found", details={"name": name})
        return record

    def _reject(self, name: str, exc: ParamConversionError, origin: ParamWriteOrigin) -> None:
        exc.details.setdefault("name", name)
        exc.details.setdefault("origin", origin.value)
        self._errors[name] = exc
        logger.warning("param %s write rejected (%s): %s", name, origin.value, exc.message)

    # ---- hashing --------------------------------------------------------
    def content_hash(self) -> int:
        """
        Deterministic 64-bit fingerprint of all (name, kind, value) triples.

        Order, page and error markers do not participate.
        """
        payload = [
            [record.name, record.kind.value, record.value]
            for record in sorted(self._records.values(), key=lambda r: r.name)
        ]
        raw = json.dumps(payload, separators=(",", ":"), default=str).encode("utf-8")
        return int.from_bytes(hashlib.blake2b(raw, digest_size=8).digest(), "big")
