from __future__ import annotations

import logging

from .graph import NodeHandle
from .op import OpContext, Operator

logger = logging.getLogger(__name__)


class DirtyTracker:
    """
    Decides which operators run this tick.

    Two signals are OR'd: the parameter hash changed since the last check, or
    the operator asked to run via `should_execute()`. Neither can veto the other.
    """

    def __init__(self) -> None:
        self._flagged: set[NodeHandle] = set()

    def mark(self, handle: NodeHandle) -> None:
        self._flagged.add(handle)

    def discard(self, handle: NodeHandle) -> None:
        self._flagged.discard(handle)

    def check(self, handle: NodeHandle, op: Operator, ctx: OpContext) -> bool:
        new_hash = op.params.content_hash()
        if op.param_hash != new_hash:
            op.param_hash = new_hash
            self._flagged.add(handle)
        try:
            wants_run = bool(op.should_execute(ctx))
        except Exception:
            logger.exception("[%s] should_execute failed", op.name)
            wants_run = False
        if wants_run:
            self._flagged.add(handle)
        return handle in self._flagged

    def take(self) -> set[NodeHandle]:
        """Return and clear the flagged set."""
        flagged = self._flagged
        self._flagged = set()
        return flagged
