from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Union

from .config import EngineConfig
from .connections import ConnectionManager, ConnectRequest, DisconnectRequest
from .dirty import DirtyTracker
from .errors import CycleError, DanglingReference, DuplicateOperatorName, OpGraphError
from .graph import EdgeDescriptor, NodeHandle, NodeRegistry
from .op import OpContext, Operator, OperatorLifecycle
from .params import ParamWriteOrigin
from .registry import OperatorRegistry
from .render_layers import RenderLayerManager
from .scheduler import ExecutionScheduler

logger = logging.getLogger(__name__)

OpRef = Union[NodeHandle, int, str]


@dataclass
class TickReport:
    tick: int
    order: list[NodeHandle] = field(default_factory=list)
    flagged: list[NodeHandle] = field(default_factory=list)
    executed: list[NodeHandle] = field(default_factory=list)
    failed: list[NodeHandle] = field(default_factory=list)
    requests: int = 0
    request_errors: list[tuple[ConnectRequest | DisconnectRequest, OpGraphError]] = field(default_factory=list)


def default_registry() -> OperatorRegistry:
    from .operators import register_builtin_operators

    registry = OperatorRegistry()
    register_builtin_operators(registry)
    return registry


class OpGraphEngine:
    """
    Operator dataflow graph engine.

    Owns the topology, the operator instances, the render layer pool and the
    dirty flags. Every mutation goes through this object; one `tick()` applies
    queued topology changes, runs parameter updates and the dirty check, then
    executes flagged operators producers-first.
    """

    def __init__(self, config: EngineConfig | None = None, registry: OperatorRegistry | None = None) -> None:
        self.config = config or EngineConfig()
        self.registry = registry if registry is not None else default_registry()

        self._nodes = NodeRegistry()
        self._operators: dict[NodeHandle, Operator] = {}
        self._names: dict[str, NodeHandle] = {}
        self._name_counters: dict[str, int] = {}
        self._layers = RenderLayerManager(ceiling=self.config.max_render_layers)
        # Handed out by next_open_layer() and not yet seen in a tick reconcile.
        self._pending_layers: set[int] = set()
        self._dirty = DirtyTracker()
        self._connections = ConnectionManager(
            self._nodes,
            self._require_operator,
            self._context,
            reject_cycles=self.config.reject_cycles,
        )
        self._scheduler = ExecutionScheduler(self._nodes, self._operators.get, self._context)
        self._tick = 0
        self._touched: set[NodeHandle] | None = None

    @property
    def tick_index(self) -> int:
        return self._tick

    @property
    def nodes(self) -> NodeRegistry:
        return self._nodes

    @property
    def layers(self) -> RenderLayerManager:
        return self._layers

    def __len__(self) -> int:
        return len(self._operators)

    def __contains__(self, ref: object) -> bool:
        try:
            self._resolve(ref)  # type: ignore[arg-type]
        except (DanglingReference, TypeError, ValueError):
            return False
        return True

    # ---- lookup ---------------------------------------------------------
    def operator(self, ref: OpRef) -> Operator:
        return self._operators[self._resolve(ref)]

    def operators(self) -> list[tuple[NodeHandle, Operator]]:
        return [(h, self._operators[h]) for h in sorted(self._operators)]

    def lookup(self, name: str) -> NodeHandle:
        handle = self._names.get(str(name))
        if handle is None:
            raise DanglingReference(f"operator {name!r} not found", ref=name)
        return handle

    def name_of(self, handle: NodeHandle) -> str:
        return self._require_operator(handle).name

    def edges(self) -> list[EdgeDescriptor]:
        return self._nodes.edges()

    def _resolve(self, ref: OpRef) -> NodeHandle:
        if isinstance(ref, str):
            return self.lookup(ref)
        handle = NodeHandle(int(ref))
        if handle not in self._operators:
            raise DanglingReference(f"node {handle} not found", ref=handle)
        return handle

    def _require_operator(self, handle: NodeHandle) -> Operator:
        op = self._operators.get(handle)
        if op is None:
            raise DanglingReference(f"node {handle} has no live operator", ref=handle)
        return op

    def _context(self, handle: NodeHandle) -> OpContext:
        return OpContext(engine=self, handle=handle, tick=self._tick)

    # ---- lifecycle ------------------------------------------------------
    def spawn(self, operator_class: str, name: str | None = None) -> NodeHandle:
        """
        Create an operator and its graph node together.

        Claims a render layer first when the type needs one, so a full pool fails
        the spawn with `ResourceExhausted` before anything is added.
        """
        name = self._unique_name(operator_class, name)
        op = self.registry.create(operator_class, name=name)

        layer = None
        if op.NEEDS_RENDER_LAYER:
            self._sync_layers()
            layer = self._layers.next_open_layer()

        handle = self._nodes.add_node()
        op.handle = handle
        op.render_layer = layer
        self._operators[handle] = op
        self._names[name] = handle
        try:
            for record in op.spawn(self._context(handle)) or []:
                op.params.add(record)
        except Exception:
            logger.exception("[%s] spawn failed", name)
            del self._operators[handle]
            del self._names[name]
            self._nodes.remove_node(handle)
            self._pending_layers.difference_update(op.claimed_layers())
            op.render_layer = None
            self._sync_layers()
            raise
        op.lifecycle = OperatorLifecycle.active
        if self._touched is not None:
            self._touched.add(handle)
        logger.debug("[%s] spawned %s handle=%s layer=%s", name, operator_class, handle, layer)
        return handle

    def despawn(self, ref: OpRef) -> list[EdgeDescriptor]:
        """
        Remove an operator, its node and every incident edge.

        Consumers still alive get on_disconnect right away; a pending execute for
        this operator in the current pass is skipped; its layer goes back to the pool.
        """
        handle = self._resolve(ref)
        op = self._operators[handle]
        op.lifecycle = OperatorLifecycle.despawning
        self._dirty.discard(handle)
        removed = self._connections.detach(handle)
        del self._operators[handle]
        self._names.pop(op.name, None)
        if self._touched is not None:
            self._touched.discard(handle)
        op.inputs.connections.clear()
        self._pending_layers.difference_update(op.claimed_layers())
        self._sync_layers()
        logger.debug("[%s] despawned handle=%s (%d edges removed)", op.name, handle, len(removed))
        return removed

    def _unique_name(self, operator_class: str, name: str | None) -> str:
        if name is not None:
            name = str(name).strip()
            if not name:
                raise ValueError("operator name must be non-empty")
            if name not in self._names:
                return name
            if self.config.strict_names:
                raise DuplicateOperatorName(name)
            base = name
        else:
            base = str(operator_class).rsplit(".", 1)[-1]
        while True:
            n = self._name_counters.get(base, 0) + 1
            self._name_counters[base] = n
            candidate = f"{base}_{n}"
            if candidate not in self._names:
                return candidate

    # ---- topology -------------------------------------------------------
    def connect(self, producer: OpRef, out_port: int, consumer: OpRef, in_port: int) -> EdgeDescriptor:
        return self._connections.connect(self._resolve(producer), out_port, self._resolve(consumer), in_port)

    def disconnect(
        self,
        producer: OpRef,
        consumer: OpRef,
        *,
        out_port: int | None = None,
        in_port: int | None = None,
    ) -> EdgeDescriptor:
        return self._connections.disconnect(
            self._resolve(producer), self._resolve(consumer), out_port=out_port, in_port=in_port
        )

    def submit(self, request: Any) -> ConnectRequest | DisconnectRequest:
        """
        Queue a connect/disconnect request; it is applied at the start of the next tick.
        """
        return self._connections.submit(request)

    def pending_requests(self) -> int:
        return self._connections.pending()

    def is_fully_connected(self, ref: OpRef) -> bool:
        return self.operator(ref).is_fully_connected()

    def topological_order(self) -> list[NodeHandle]:
        return self._nodes.topological_order()

    # ---- params ---------------------------------------------------------
    def set_param(self, ref: OpRef, name: str, value: Any, *, origin: ParamWriteOrigin = ParamWriteOrigin.external) -> Any:
        return self.operator(ref).params.set(name, value, origin=origin)

    def write_scripted_param(self, ref: OpRef, name: str, text: str) -> Any:
        return self.operator(ref).params.write_scripted(name, text)

    def param_errors(self, ref: OpRef) -> dict[str, Any]:
        return self.operator(ref).params.errors()

    # ---- render layers --------------------------------------------------
    def next_open_layer(self) -> int:
        """
        Allocate the first free layer without reconciling.

        The slot is held as pending until the next tick reconciles; after that
        it stays reserved only while a live operator reports it from
        `claimed_layers()`.
        """
        layer = self._layers.next_open_layer()
        self._pending_layers.add(layer)
        return layer

    def _sync_layers(self) -> None:
        live = [layer for _, op in self.operators() for layer in op.claimed_layers()]
        self._layers.sync([*live, *sorted(self._pending_layers.difference(live))])

    # ---- tick -----------------------------------------------------------
    def tick(self) -> TickReport:
        """
        Advance one frame.

        Order: parameter updates, queued connect/disconnect requests, layer
        reconciliation, dirty check, scheduled execution. A cycle aborts the
        execution phase with `CycleError`; flagged operators stay flagged so
        they run once the graph is valid again.
        """
        self._tick += 1
        report = TickReport(tick=self._tick)

        for handle, op in self.operators():
            try:
                op.update(self._context(handle))
            except Exception:
                logger.exception("[%s] update failed", op.name)

        results = self._connections.drain()
        report.requests = len(results)
        report.request_errors = [(req, err) for req, err in results if err is not None]

        self._pending_layers.clear()
        self._sync_layers()

        for handle, op in self.operators():
            self._dirty.check(handle, op, self._context(handle))
        flagged = self._dirty.take()
        report.flagged = sorted(flagged)

        try:
            result = self._scheduler.run(flagged)
        except CycleError as exc:
            logger.error("tick %s: execution pass aborted: %s", self._tick, exc)
            for handle in flagged:
                if handle in self._operators:
                    self._dirty.mark(handle)
            raise
        report.order = result.order
        report.executed = result.executed
        report.failed = result.failed
        return report

    # ---- scripted ownership --------------------------------------------
    def begin_touch(self) -> None:
        """
        Start a touch session: operators not touched before `drop_untouched()` are despawned.
        """
        self._touched = set()

    def touch(self, ref: OpRef) -> NodeHandle:
        handle = self._resolve(ref)
        if self._touched is not None:
            self._touched.add(handle)
        return handle

    def drop_untouched(self) -> list[str]:
        touched = self._touched
        self._touched = None
        if touched is None:
            return []
        dropped: list[str] = []
        for handle, op in self.operators():
            if handle in touched:
                continue
            dropped.append(op.name)
            self.despawn(handle)
        return dropped

    # ---- consistency ----------------------------------------------------
    def check_consistency(self, *, repair: bool = True) -> list[str]:
        """
        Verify the node <-> operator bijection and connection maps against the topology.

        Returns a description of each violation found; with `repair`, orphans and
        stale edges are removed (consumers get on_disconnect).
        """
        issues: list[str] = []
        graph_nodes = set(self._nodes.nodes())
        live = set(self._operators)

        for handle in sorted(graph_nodes - live):
            issues.append(f"graph node {handle} has no operator")
            if not repair:
                continue
            for edge in self._nodes.remove_node(handle):
                other = self._operators.get(edge.consumer)
                if other is None or edge.consumer == handle:
                    continue
                if other.inputs.connections.get(edge.in_port) == (edge.producer, edge.out_port):
                    del other.inputs.connections[edge.in_port]
                self._notify_disconnect(other, edge)

        for handle in sorted(live - graph_nodes):
            op = self._operators[handle]
            issues.append(f"operator {op.name!r} has no graph node {handle}")
            if repair:
                del self._operators[handle]
                self._names.pop(op.name, None)
                for other_handle, other in self.operators():
                    for port, (src, src_port) in list(other.inputs.connections.items()):
                        if src != handle:
                            continue
                        del other.inputs.connections[port]
                        edge = EdgeDescriptor(producer=handle, out_port=src_port, consumer=other_handle, in_port=port)
                        self._notify_disconnect(other, edge)

        for name, handle in list(self._names.items()):
            op = self._operators.get(handle)
            if op is None or op.name != name:
                issues.append(f"name {name!r} maps to stale node {handle}")
                if repair:
                    del self._names[name]

        for handle, op in self.operators():
            if handle not in self._nodes:
                continue
            wired = {(e.in_port, e.producer, e.out_port): e for e in self._nodes.in_edges(handle)}
            mapped = {(port, src, src_port) for port, (src, src_port) in op.inputs.connections.items()}
            for key in sorted(set(wired) - mapped):
                issues.append(f"edge {wired[key]} missing from {op.name!r} connection map")
                if repair:
                    e = wired[key]
                    self._nodes.remove_edge(e.producer, e.consumer, out_port=e.out_port, in_port=e.in_port)
            for port, src, src_port in sorted(mapped - set(wired)):
                issues.append(f"{op.name!r} in{port} maps to {src}.out{src_port} with no edge")
                if repair:
                    del op.inputs.connections[port]
                    edge = EdgeDescriptor(producer=src, out_port=src_port, consumer=handle, in_port=port)
                    self._notify_disconnect(op, edge)

        for issue in issues:
            logger.warning("consistency: %s", issue)
        if repair and issues:
            self._sync_layers()
        return issues

    def _notify_disconnect(self, op: Operator, edge: EdgeDescriptor) -> None:
        try:
            op.on_disconnect(self._context(edge.consumer), edge, op.is_fully_connected())
        except Exception:
            logger.exception("[%s] on_disconnect failed for %s", op.name, edge)
