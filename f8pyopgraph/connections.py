from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from .errors import DanglingReference, OpGraphError, PortOutOfRange, WouldCreateCycle
from .graph import EdgeDescriptor, NodeHandle, NodeRegistry
from .op import OpContext, Operator

logger = logging.getLogger(__name__)

_Port = Annotated[int, Field(ge=0, le=255)]


class ConnectRequest(BaseModel):
    """Connect producer.out[producer_port] -> consumer.in[consumer_port]."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["connect"] = "connect"
    producer: Annotated[int, Field(ge=0)]
    producer_port: _Port = 0
    consumer: Annotated[int, Field(ge=0)]
    consumer_port: _Port = 0


class DisconnectRequest(BaseModel):
    """Disconnect producer.out[producer_port] -> consumer.in[consumer_port]."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["disconnect"] = "disconnect"
    producer: Annotated[int, Field(ge=0)]
    producer_port: _Port = 0
    consumer: Annotated[int, Field(ge=0)]
    consumer_port: _Port = 0


ConnectionRequest = Annotated[Union[ConnectRequest, DisconnectRequest], Field(discriminator="kind")]

_REQUEST_ADAPTER: TypeAdapter[ConnectRequest | DisconnectRequest] = TypeAdapter(ConnectionRequest)


def parse_request(payload: Any) -> ConnectRequest | DisconnectRequest:
    """
    Validate a request coming from the UI or the script console.

    Accepts an already built request or a mapping with a `kind` discriminator.
    """
    if isinstance(payload, (ConnectRequest, DisconnectRequest)):
        return payload
    return _REQUEST_ADAPTER.validate_python(payload)


class ConnectionManager:
    """
    Applies connect/disconnect on top of the topology store.

    Enforces one producer per input port: connecting into an occupied port first
    disconnects the previous edge (the consumer sees on_disconnect before
    on_connect), then adds the new one.
    """

    def __init__(
        self,
        nodes: NodeRegistry,
        lookup: Callable[[NodeHandle], Operator],
        make_context: Callable[[NodeHandle], OpContext],
        *,
        reject_cycles: bool = True,
    ) -> None:
        self._nodes = nodes
        self._lookup = lookup
        self._make_context = make_context
        self._reject_cycles = bool(reject_cycles)
        self._queue: deque[ConnectRequest | DisconnectRequest] = deque()

    # ---- direct operations ---------------------------------------------
    def connect(self, producer: NodeHandle, out_port: int, consumer: NodeHandle, in_port: int) -> EdgeDescriptor:
        producer_op = self._lookup(producer)
        consumer_op = self._lookup(consumer)
        out_port = int(out_port)
        in_port = int(in_port)
        if out_port < 0 or out_port >= producer_op.OUTPUTS:
            raise PortOutOfRange(f"out port {out_port} missing on {producer_op.name}", ref=(producer, out_port))
        if in_port < 0 or in_port >= consumer_op.INPUTS:
            raise PortOutOfRange(f"in port {in_port} missing on {consumer_op.name}", ref=(consumer, in_port))
        if self._reject_cycles and self._nodes.has_path(consumer, producer):
            logger.warning("rejected connect %s -> %s: would create a cycle", producer_op.name, consumer_op.name)
            raise WouldCreateCycle(int(producer), int(consumer))

        prev = consumer_op.inputs.connections.get(in_port)
        if prev is not None:
            prev_edge = EdgeDescriptor(producer=prev[0], out_port=prev[1], consumer=consumer, in_port=in_port)
            logger.debug("[%s] in%s occupied, replacing %s", consumer_op.name, in_port, prev_edge)
            self._disconnect_edge(prev_edge, consumer_op)

        consumer_op.inputs.connections[in_port] = (producer, out_port)
        edge = self._nodes.add_edge(producer, out_port, consumer, in_port)
        fully_connected = consumer_op.is_fully_connected()
        logger.debug("connected %s (fully_connected=%s)", edge, fully_connected)
        self._notify(consumer_op, "on_connect", edge, fully_connected)
        return edge

    def disconnect(
        self,
        producer: NodeHandle,
        consumer: NodeHandle,
        *,
        out_port: int | None = None,
        in_port: int | None = None,
    ) -> EdgeDescriptor:
        """
        Remove one producer -> consumer edge.

        Without ports, the lowest consumer input fed by `producer` is chosen.
        """
        self._lookup(producer)
        consumer_op = self._lookup(consumer)
        for port in consumer_op.inputs.occupied_ports():
            src, src_port = consumer_op.inputs.connections[port]
            if src != producer:
                continue
            if out_port is not None and src_port != int(out_port):
                continue
            if in_port is not None and port != int(in_port):
                continue
            edge = EdgeDescriptor(producer=producer, out_port=src_port, consumer=consumer, in_port=port)
            self._disconnect_edge(edge, consumer_op)
            return edge
        raise DanglingReference(f"no connection {producer} -> {consumer}", ref=(producer, consumer))

    def detach(self, handle: NodeHandle) -> list[EdgeDescriptor]:
        """
        Remove a node from the topology, tearing down every incident edge.

        Surviving consumers get their on_disconnect immediately.
        """
        removed = self._nodes.remove_node(handle)
        for edge in removed:
            if edge.consumer == handle:
                continue
            consumer_op = self._lookup(edge.consumer)
            if consumer_op.inputs.connections.get(edge.in_port) == (edge.producer, edge.out_port):
                del consumer_op.inputs.connections[edge.in_port]
            fully_connected = consumer_op.is_fully_connected()
            logger.debug("disconnected %s (producer despawned)", edge)
            self._notify(consumer_op, "on_disconnect", edge, fully_connected)
        return removed

    def _disconnect_edge(self, edge: EdgeDescriptor, consumer_op: Operator) -> None:
        self._nodes.remove_edge(edge.producer, edge.consumer, out_port=edge.out_port, in_port=edge.in_port)
        consumer_op.inputs.connections.pop(edge.in_port, None)
        fully_connected = consumer_op.is_fully_connected()
        logger.debug("disconnected %s (fully_connected=%s)", edge, fully_connected)
        self._notify(consumer_op, "on_disconnect", edge, fully_connected)

    def _notify(self, op: Operator, hook: str, edge: EdgeDescriptor, fully_connected: bool) -> None:
        ctx = self._make_context(edge.consumer)
        try:
            getattr(op, hook)(ctx, edge, fully_connected)
        except Exception:
            logger.exception("[%s] %s failed for %s", op.name, hook, edge)

    # ---- request queue --------------------------------------------------
    def submit(self, request: Any) -> ConnectRequest | DisconnectRequest:
        req = parse_request(request)
        self._queue.append(req)
        return req

    def pending(self) -> int:
        return len(self._queue)

    def drain(self) -> list[tuple[ConnectRequest | DisconnectRequest, OpGraphError | None]]:
        """
        Apply every queued request in arrival order.

        A failing request is logged and reported; it never stops the drain.
        """
        results: list[tuple[ConnectRequest | DisconnectRequest, OpGraphError | None]] = []
        while self._queue:
            req = self._queue.popleft()
            try:
                if isinstance(req, ConnectRequest):
                    self.connect(
                        NodeHandle(req.producer), req.producer_port, NodeHandle(req.consumer), req.consumer_port
                    )
                else:
                    self.disconnect(
                        NodeHandle(req.producer),
                        NodeHandle(req.consumer),
                        out_port=req.producer_port,
                        in_port=req.consumer_port,
                    )
            except OpGraphError as exc:
                logger.warning("%s request %s failed: %s", req.kind, req.model_dump(exclude={"kind"}), exc)
                results.append((req, exc))
                continue
            results.append((req, None))
        return results
