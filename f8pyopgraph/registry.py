from __future__ import annotations

import importlib
from collections.abc import Callable
from typing import Any, ClassVar

from .op import Operator

OperatorFactory = Callable[[str], Operator]


class RegistryError(Exception):
    """Base class for registry failures."""


class OperatorAlreadyRegistered(RegistryError):
    """Raised when an operator class is already registered."""


class OperatorNotRegistered(RegistryError):
    """Raised when a requested operator class is missing."""


class OperatorRegistry:
    """
    Operator class name -> factory.

    The engine receives its registry explicitly; `instance()` only exists so
    plugin modules have a default place to register into.
    """

    _instance: ClassVar["OperatorRegistry | None"] = None

    @staticmethod
    def instance() -> "OperatorRegistry":
        if OperatorRegistry._instance is None:
            OperatorRegistry._instance = OperatorRegistry()
        return OperatorRegistry._instance

    def __init__(self) -> None:
        self._factories: dict[str, OperatorFactory] = {}
        self._types: dict[str, type[Operator]] = {}

    def __contains__(self, operator_class: object) -> bool:
        return str(operator_class) in self._factories

    def operator_classes(self) -> list[str]:
        return sorted(self._factories)

    def register(
        self,
        operator_class: str,
        factory: OperatorFactory,
        *,
        op_type: type[Operator] | None = None,
        overwrite: bool = False,
    ) -> None:
        operator_class = str(operator_class or "").strip()
        if not operator_class:
            raise ValueError("operator_class must be non-empty")
        if operator_class in self._factories and not overwrite:
            raise OperatorAlreadyRegistered(operator_class)
        self._factories[operator_class] = factory
        if op_type is not None:
            self._types[operator_class] = op_type
        else:
            self._types.pop(operator_class, None)

    def register_type(self, op_type: type[Operator], *, overwrite: bool = False) -> None:
        """
        Register an `Operator` subclass under its `OPERATOR_CLASS`.
        """
        self.register(op_type.OPERATOR_CLASS, op_type, op_type=op_type, overwrite=overwrite)

    def unregister(self, operator_class: str) -> None:
        self._factories.pop(str(operator_class), None)
        self._types.pop(str(operator_class), None)

    def create(self, operator_class: str, *, name: str) -> Operator:
        factory = self._factories.get(str(operator_class))
        if factory is None:
            raise OperatorNotRegistered(str(operator_class))
        op = factory(str(name))
        if not isinstance(op, Operator):
            raise RegistryError(f"factory for {operator_class} returned {type(op).__name__}, not an Operator")
        return op

    def describe(self) -> list[dict[str, Any]]:
        out: list[dict[str, Any]] = []
        for operator_class in self.operator_classes():
            op_type = self._types.get(operator_class)
            if op_type is None:
                out.append({"operatorClass": operator_class})
                continue
            desc = op_type.describe()
            desc["operatorClass"] = operator_class
            out.append(desc)
        return out

    def load_modules(self, modules: list[str]) -> list[str]:
        """
        Import operator plugin modules into this registry.

        A module registers by exposing `register_operators(registry)`. Returns the
        operator classes that were added.
        """
        before = set(self._factories)
        for m in modules:
            name = str(m or "").strip()
            if not name:
                continue
            module = importlib.import_module(name)
            hook = getattr(module, "register_operators", None)
            if not callable(hook):
                raise RegistryError(f"module {name} has no register_operators(registry)")
            hook(self)
        return sorted(set(self._factories) - before)
