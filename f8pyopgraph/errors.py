from __future__ import annotations

from typing import Any


class OpGraphError(Exception):
    """Base class for operator graph engine failures."""


class CycleError(OpGraphError):
    """
    Raised when the topology has no valid execution order.

    `cycle` holds one concrete loop (first node repeated at the end) when it
    could be recovered, otherwise an empty list.
    """

    def __init__(self, cycle: list[int] | None = None) -> None:
        self.cycle = list(cycle or [])
        if self.cycle:
            msg = "graph has a cycle: " + " -> ".join(str(n) for n in self.cycle)
        else:
            msg = "graph has a cycle"
        super().__init__(msg)


class WouldCreateCycle(OpGraphError):
    """Raised when a connect request would close a directed loop."""

    def __init__(self, producer: int, consumer: int) -> None:
        self.producer = producer
        self.consumer = consumer
        super().__init__(f"connecting {producer} -> {consumer} would create a cycle")


class ResourceExhausted(OpGraphError):
    """Raised when the render layer pool has no free slot left."""

    def __init__(self, ceiling: int) -> None:
        self.ceiling = int(ceiling)
        super().__init__(f"no more render layers available (ceiling={self.ceiling})")


class DanglingReference(OpGraphError):
    """
    A node handle, operator name or port does not exist.

    Under correct bookkeeping this never happens; seeing it means an
    internal consistency violation.
    """

    def __init__(self, message: str, *, ref: Any = None) -> None:
        super().__init__(message)
        self.ref = ref


class PortOutOfRange(DanglingReference):
    """Port index outside the operator's declared arity."""


class DuplicateOperatorName(OpGraphError):
    """Raised when spawning an operator under a name that is already taken."""


class ParamConversionError(ValueError):
    """
    Structured error for rejecting parameter writes.
    """

    def __init__(self, code: str, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.code = str(code or "INVALID_VALUE")
        self.message = str(message)
        self.details = dict(details or {})
