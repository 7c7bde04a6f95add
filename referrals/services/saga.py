"""
Compensating-action sequences for multi-record writes.

Used as a context manager: each :meth:`Saga.step` runs an action and
remembers how to undo it.  If the block raises, completed steps are undone
in reverse order and the original error propagates.  If an undo itself
fails, :class:`DependencyUnavailable` is raised instead, naming the steps
that completed and the ones that could not be reverted.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional, Tuple

from referrals.exceptions import DependencyUnavailable

logger = logging.getLogger(__name__)


class Saga:
    def __init__(self, name: str):
        self.name = name
        self.completed: List[str] = []
        self._undo: List[Tuple[str, Callable[[], Any]]] = []

    def step(self, label: str, action: Callable[[], Any], compensate: Optional[Callable[[Any], Any]] = None):
        result = action()
        self.completed.append(label)
        if compensate is not None:
            self._undo.append((label, lambda: compensate(result)))
        return result

    def __enter__(self) -> 'Saga':
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            return False
        failed = []
        for label, undo in reversed(self._undo):
            try:
                undo()
            except Exception:
                logger.exception('%s: compensation for step %r failed', self.name, label)
                failed.append(label)
        if failed:
            raise DependencyUnavailable(
                f'{self.name} failed and could not be fully reverted',
                extra={'operation': self.name, 'completed': list(self.completed), 'notReverted': failed},
            ) from exc
        if self._undo:
            logger.warning('%s: reverted %s after %s', self.name, [l for l, _ in self._undo], exc_type.__name__)
        return False
