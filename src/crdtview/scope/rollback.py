"""Rollback log: inverse operations recorded while a scope runs.

Inverses are expressed through the view API (restore a slot, truncate to a
prior length, re-insert removed elements) so that replaying them keeps view
identity and alias fan-out intact.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)

InverseOp = Callable[[], None]


class RollbackLog:
    def __init__(self) -> None:
        self._ops: list[InverseOp] = []
        self._enabled = True

    @property
    def can_rollback(self) -> bool:
        return self._enabled

    def log(self, op: InverseOp) -> None:
        if self._enabled:
            self._ops.append(op)

    def invalidate(self) -> None:
        """Disable logging and drop recorded inverses."""
        self._enabled = False
        self._ops.clear()

    def replay(self) -> int:
        """Run the recorded inverses newest first.  Returns how many ran.

        Logging is disabled first so inverses do not record inverses of
        their own.  A log can be replayed once.
        """
        if not self._enabled:
            return 0
        self._enabled = False
        ops, self._ops = self._ops, []
        for op in reversed(ops):
            op()
        logger.debug("rolled back %d operation(s)", len(ops))
        return len(ops)

    def __len__(self) -> int:
        return len(self._ops)
