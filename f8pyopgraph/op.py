from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar, Protocol, runtime_checkable

from .errors import PortOutOfRange
from .graph import EdgeDescriptor, NodeHandle
from .params import ParamRecord, ParamSet

if TYPE_CHECKING:
    from .config import EngineConfig
    from .engine import OpGraphEngine


class OpCategory(str, Enum):
    """Closed set of operator families."""

    component = "Component"
    material = "Material"
    mesh = "Mesh"
    texture = "Texture"

    @property
    def color(self) -> str:
        return _CATEGORY_COLORS[self]


_CATEGORY_COLORS = {
    OpCategory.component: "silver",
    OpCategory.material: "salmon",
    OpCategory.mesh: "navy",
    OpCategory.texture: "purple",
}


class OperatorLifecycle(str, Enum):
    spawned = "spawned"
    active = "active"
    despawning = "despawning"


@dataclass
class OpInputs:
    """
    Declared input arity plus the current input port -> (producer, out_port) map.
    """

    count: int = 0
    connections: dict[int, tuple[NodeHandle, int]] = field(default_factory=dict)

    def is_fully_connected(self) -> bool:
        return self.count == 0 or len(self.connections) == self.count

    def occupied_ports(self) -> list[int]:
        return sorted(self.connections)


@dataclass
class OpContext:
    """
    Per-call view of the engine handed to operator hooks.

    Operator bodies read upstream outputs and query the engine through this
    object; they never mutate topology through it.
    """

    engine: "OpGraphEngine"
    handle: NodeHandle
    tick: int = 0

    @property
    def config(self) -> "EngineConfig":
        return self.engine.config

    @property
    def operator(self) -> "Operator":
        return self.engine.operator(self.handle)

    def input(self, port: int, default: Any = None) -> Any:
        """
        Output value currently published on the producer feeding `port`.
        """
        conn = self.operator.inputs.connections.get(int(port))
        if conn is None:
            return default
        producer, out_port = conn
        return self.engine.operator(producer).outputs.get(out_port, default)

    def is_fully_connected(self) -> bool:
        return self.operator.is_fully_connected()

    def claim_layer(self) -> int:
        """
        Allocate one more render layer owned by this operator until it despawns.
        """
        layer = self.engine.next_open_layer()
        self.operator.extra_layers.append(layer)
        return layer


@runtime_checkable
class OperatorLike(Protocol):
    """
    Operator contract consumed by the engine.
    """

    name: str
    inputs: OpInputs
    params: ParamSet
    outputs: dict[int, Any]

    def spawn(self, ctx: OpContext) -> list[ParamRecord]: ...

    def update(self, ctx: OpContext) -> None: ...

    def should_execute(self, ctx: OpContext) -> bool: ...

    def execute(self, ctx: OpContext) -> None: ...

    def on_connect(self, ctx: OpContext, edge: EdgeDescriptor, fully_connected: bool) -> None: ...

    def on_disconnect(self, ctx: OpContext, edge: EdgeDescriptor, fully_connected: bool) -> None: ...


class Operator:
    """
    Base class for operators.

    Subclasses declare their class name, category and port arity as class
    constants and override the hooks they care about. `outputs` persists across
    ticks, so downstream readers keep seeing the last executed result when this
    operator is not flagged.
    """

    OPERATOR_CLASS: ClassVar[str] = ""
    CATEGORY: ClassVar[OpCategory] = OpCategory.component
    INPUTS: ClassVar[int] = 0
    OUTPUTS: ClassVar[int] = 0
    NEEDS_RENDER_LAYER: ClassVar[bool] = False

    def __init__(self, name: str) -> None:
        self.name = str(name)
        self.handle: NodeHandle | None = None
        self.inputs = OpInputs(count=int(self.INPUTS))
        self.params = ParamSet()
        self.outputs: dict[int, Any] = {}
        self.render_layer: int | None = None
        self.extra_layers: list[int] = []
        self.lifecycle = OperatorLifecycle.spawned
        self.param_hash: int | None = None
        self.last_error: BaseException | None = None
        self.execute_count = 0

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r} handle={self.handle}>"

    # ---- contract -------------------------------------------------------
    def spawn(self, ctx: OpContext) -> list[ParamRecord]:
        """
        Initialize operator-owned state and return the initial parameter records.
        """
        return []

    def update(self, ctx: OpContext) -> None:
        """
        Apply externally driven edits. Must stay cheap and must not touch topology.
        """
        return

    def should_execute(self, ctx: OpContext) -> bool:
        """
        Advisory run request, OR'd with the parameter hash check.

        Returning False never withholds a run the hash check asked for.
        """
        return False

    def execute(self, ctx: OpContext) -> None:
        return

    def on_connect(self, ctx: OpContext, edge: EdgeDescriptor, fully_connected: bool) -> None:
        return

    def on_disconnect(self, ctx: OpContext, edge: EdgeDescriptor, fully_connected: bool) -> None:
        return

    # ---- helpers --------------------------------------------------------
    @property
    def category(self) -> OpCategory:
        return self.CATEGORY

    def is_fully_connected(self) -> bool:
        return self.inputs.is_fully_connected()

    def claimed_layers(self) -> list[int]:
        main = [] if self.render_layer is None else [self.render_layer]
        return [*main, *self.extra_layers]

    def set_output(self, port: int, value: Any) -> None:
        port = int(port)
        if port < 0 or port >= self.OUTPUTS:
            raise PortOutOfRange(f"out port {port} missing on {self.name}", ref=(self.handle, port))
        self.outputs[port] = value

    @classmethod
    def describe(cls) -> dict[str, Any]:
        return {
            "operatorClass": cls.OPERATOR_CLASS,
            "category": cls.CATEGORY.value,
            "color": cls.CATEGORY.color,
            "inputs": int(cls.INPUTS),
            "outputs": int(cls.OUTPUTS),
            "renderLayer": bool(cls.NEEDS_RENDER_LAYER),
        }
