from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from .graph import NodeHandle, NodeRegistry
from .op import OpContext, Operator, OperatorLifecycle

logger = logging.getLogger(__name__)


@dataclass
class ExecutionPass:
    order: list[NodeHandle] = field(default_factory=list)
    executed: list[NodeHandle] = field(default_factory=list)
    failed: list[NodeHandle] = field(default_factory=list)
    skipped: list[NodeHandle] = field(default_factory=list)


class ExecutionScheduler:
    """
    Runs flagged operators in topological order.

    Unflagged operators are skipped and keep their previous outputs. A cycle
    aborts the whole pass (`CycleError` propagates) since no run order exists.
    An operator whose body raises is logged and recorded; the pass goes on.
    """

    def __init__(
        self,
        nodes: NodeRegistry,
        lookup: Callable[[NodeHandle], Operator | None],
        make_context: Callable[[NodeHandle], OpContext],
    ) -> None:
        self._nodes = nodes
        self._lookup = lookup
        self._make_context = make_context

    def run(self, flagged: set[NodeHandle]) -> ExecutionPass:
        result = ExecutionPass(order=self._nodes.topological_order())
        for handle in result.order:
            if handle not in flagged:
                continue
            op = self._lookup(handle)
            # Despawned earlier in this pass.
            if op is None or op.lifecycle != OperatorLifecycle.active:
                result.skipped.append(handle)
                continue
            try:
                op.execute(self._make_context(handle))
            except Exception as exc:
                logger.exception("[%s] execute failed", op.name)
                op.last_error = exc
                result.failed.append(handle)
                continue
            op.last_error = None
            op.execute_count += 1
            result.executed.append(handle)
        return result
