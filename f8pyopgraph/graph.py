from __future__ import annotations

import heapq
import itertools
import logging
from dataclasses import dataclass
from typing import NewType

from .errors import CycleError, DanglingReference

logger = logging.getLogger(__name__)

NodeHandle = NewType("NodeHandle", int)


@dataclass(frozen=True)
class EdgeDescriptor:
    producer: NodeHandle
    out_port: int
    consumer: NodeHandle
    in_port: int

    def __str__(self) -> str:
        return f"{self.producer}.out{self.out_port} -> {self.consumer}.in{self.in_port}"


class NodeRegistry:
    """
    Directed multigraph of node handles and port-labelled edges.

    Pure topology store: it knows nothing about arity or the one-producer-per-input
    rule, so it can back layout/visualization on its own. Handles are never reused,
    which keeps a stale handle from silently aliasing a newer node.
    """

    def __init__(self) -> None:
        self._ids = itertools.count()
        self._out: dict[NodeHandle, list[EdgeDescriptor]] = {}
        self._in: dict[NodeHandle, list[EdgeDescriptor]] = {}

    # ---- nodes ----------------------------------------------------------
    def add_node(self) -> NodeHandle:
        handle = NodeHandle(next(self._ids))
        self._out[handle] = []
        self._in[handle] = []
        return handle

    def remove_node(self, handle: NodeHandle) -> list[EdgeDescriptor]:
        """
        Remove a node and every edge incident on it.

        Returns the removed edges so the caller can notify surviving neighbours.
        """
        self._ensure_node(handle)
        removed: list[EdgeDescriptor] = []
        for edge in list(self._in[handle]):
            self._out[edge.producer].remove(edge)
            removed.append(edge)
        for edge in list(self._out[handle]):
            if edge.consumer == handle:
                continue
            self._in[edge.consumer].remove(edge)
            removed.append(edge)
        del self._out[handle]
        del self._in[handle]
        return removed

    def has_node(self, handle: NodeHandle) -> bool:
        return handle in self._out

    def __contains__(self, handle: object) -> bool:
        return handle in self._out

    def __len__(self) -> int:
        return len(self._out)

    def nodes(self) -> list[NodeHandle]:
        return sorted(self._out)

    # ---- edges ----------------------------------------------------------
    def add_edge(self, producer: NodeHandle, out_port: int, consumer: NodeHandle, in_port: int) -> EdgeDescriptor:
        self._ensure_node(producer)
        self._ensure_node(consumer)
        edge = EdgeDescriptor(producer=producer, out_port=int(out_port), consumer=consumer, in_port=int(in_port))
        self._out[producer].append(edge)
        self._in[consumer].append(edge)
        return edge

    def remove_edge(
        self,
        producer: NodeHandle,
        consumer: NodeHandle,
        *,
        out_port: int | None = None,
        in_port: int | None = None,
    ) -> EdgeDescriptor:
        """
        Remove one edge producer -> consumer.

        Ports narrow the match when given; otherwise the oldest matching edge goes.
        """
        self._ensure_node(producer)
        self._ensure_node(consumer)
        for edge in self._out[producer]:
            if edge.consumer != consumer:
                continue
            if out_port is not None and edge.out_port != int(out_port):
                continue
            if in_port is not None and edge.in_port != int(in_port):
                continue
            self._out[producer].remove(edge)
            self._in[consumer].remove(edge)
            return edge
        raise DanglingReference(f"no edge {producer} -> {consumer}", ref=(producer, consumer))

    def edges(self) -> list[EdgeDescriptor]:
        return [edge for handle in sorted(self._out) for edge in self._out[handle]]

    def in_edges(self, handle: NodeHandle) -> list[EdgeDescriptor]:
        self._ensure_node(handle)
        return list(self._in[handle])

    def out_edges(self, handle: NodeHandle) -> list[EdgeDescriptor]:
        self._ensure_node(handle)
        return list(self._out[handle])

    def successors(self, handle: NodeHandle) -> list[NodeHandle]:
        self._ensure_node(handle)
        return sorted({edge.consumer for edge in self._out[handle]})

    def predecessors(self, handle: NodeHandle) -> list[NodeHandle]:
        self._ensure_node(handle)
        return sorted({edge.producer for edge in self._in[handle]})

    def has_path(self, source: NodeHandle, target: NodeHandle) -> bool:
        """True when `target` is reachable from `source` (a node reaches itself)."""
        self._ensure_node(source)
        self._ensure_node(target)
        stack = [source]
        seen: set[NodeHandle] = set()
        while stack:
            n = stack.pop()
            if n == target:
                return True
            if n in seen:
                continue
            seen.add(n)
            stack.extend(edge.consumer for edge in self._out[n])
        return False

    # ---- ordering -------------------------------------------------------
    def topological_order(self) -> list[NodeHandle]:
        """
        Producers-before-consumers order over all nodes.

        Ties are broken by the smaller handle so the order is deterministic.
        Raises `CycleError` when no such order exists.
        """
        indegree: dict[NodeHandle, int] = {h: len(edges) for h, edges in self._in.items()}
        ready = [h for h, d in indegree.items() if d == 0]
        heapq.heapify(ready)
        order: list[NodeHandle] = []
        while ready:
            n = heapq.heappop(ready)
            order.append(n)
            for edge in self._out[n]:
                indegree[edge.consumer] -= 1
                if indegree[edge.consumer] == 0:
                    heapq.heappush(ready, edge.consumer)
        if len(order) != len(self._out):
            remaining = {h for h, d in indegree.items() if d > 0}
            raise CycleError(self._find_cycle(remaining))
        return order

    def _find_cycle(self, candidates: set[NodeHandle]) -> list[int]:
        visiting: set[NodeHandle] = set()
        visited: set[NodeHandle] = set()
        stack: list[NodeHandle] = []

        def _visit(n: NodeHandle) -> list[int] | None:
            if n in visited:
                return None
            if n in visiting:
                i = stack.index(n)
                return [int(x) for x in stack[i:]] + [int(n)]
            visiting.add(n)
            stack.append(n)
            for m in sorted({edge.consumer for edge in self._out[n]}):
                if m not in candidates:
                    continue
                found = _visit(m)
                if found is not None:
                    return found
            stack.pop()
            visiting.remove(n)
            visited.add(n)
            return None

        for n in sorted(candidates):
            found = _visit(n)
            if found is not None:
                return found
        return []

    def _ensure_node(self, handle: NodeHandle) -> None:
        if handle not in self._out:
            raise DanglingReference(f"node {handle} not found", ref=handle)
