"""Bounded retry for optimistic-concurrency conflicts.

A unit of work that hits :class:`~quire.domain.errors.MergeConflictError`
is refreshed to the latest persisted state and re-run after a short
delay, up to a fixed number of attempts. Only merge conflicts are
retried; every other error propagates immediately.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from quire.domain.errors import MergeConflictError

if TYPE_CHECKING:
    from quire.config.models import RetryConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget; ``sleep`` is injectable so tests need not wait."""

    attempts: int = 3
    delay: float = 0.1
    sleep: Callable[[float], None] = time.sleep

    @classmethod
    def from_config(cls, config: RetryConfig) -> RetryPolicy:
        return cls(attempts=config.attempts, delay=config.delay)

    def run(
        self,
        operation: Callable[[], T],
        *,
        on_conflict: Callable[[MergeConflictError], None],
    ) -> T:
        """Call *operation* until it succeeds or the budget is spent.

        *on_conflict* runs between attempts (typically a refresh).

        Raises:
            MergeConflictError: The final attempt still conflicted.
        """
        for attempt in range(1, self.attempts + 1):
            try:
                return operation()
            except MergeConflictError as exc:
                if attempt >= self.attempts:
                    logger.warning(
                        "Giving up on %s after %d attempt(s)", exc.entity_id, attempt
                    )
                    raise
                logger.info(
                    "Merge conflict on %s, retrying (attempt %d of %d)",
                    exc.entity_id,
                    attempt + 1,
                    self.attempts,
                )
                on_conflict(exc)
                self.sleep(self.delay)
        msg = "RetryPolicy.attempts must be at least 1"
        raise ValueError(msg)
