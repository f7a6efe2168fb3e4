"""Admission control: global and per-target concurrency ceilings."""

import asyncio
import itertools
import logging
from collections import Counter
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from scanwarden.errors import AdmissionRejectedError, RejectReason
from scanwarden.models import ValidatedTarget

logger = logging.getLogger(__name__)

_token_ids = itertools.count(1)


@dataclass
class SlotToken:
    """Proof of one granted admission slot."""

    target: str
    token_id: int = field(default_factory=lambda: next(_token_ids))
    released: bool = False


class AdmissionController:
    """Bound how many scans run at once, overall and per target.

    One ``asyncio.Condition`` guards the counters. It is held only while
    checking and updating them, never while a scan runs.
    """

    def __init__(
        self,
        max_concurrent: int = 4,
        per_target_limit: int = 1,
        max_queue_depth: int = 16,
        duplicate_policy: str = "reject",
    ):
        if max_concurrent < 1 or per_target_limit < 1:
            raise ValueError("concurrency limits must be at least 1")
        if duplicate_policy not in ("reject", "queue"):
            raise ValueError(f"unknown duplicate policy: {duplicate_policy!r}")
        self.max_concurrent = max_concurrent
        self.per_target_limit = per_target_limit
        self.max_queue_depth = max(0, max_queue_depth)
        self.duplicate_policy = duplicate_policy

        self._cond = asyncio.Condition()
        self._running = 0
        self._waiting = 0
        self._per_target: Counter[str] = Counter()
        self._queued_per_target: Counter[str] = Counter()

    def _has_room(self, key: str) -> bool:
        return (
            self._running < self.max_concurrent
            and self._per_target[key] < self.per_target_limit
        )

    async def acquire(self, target: ValidatedTarget) -> SlotToken:
        """Wait for a slot for ``target`` or fail fast.

        Raises:
            AdmissionRejectedError: ``DuplicateTarget`` when running and queued scans
                of the target already reach its ceiling and the policy is
                ``reject``; ``Overloaded`` when
                the wait queue is full.
        """
        key = target.value
        async with self._cond:
            claimed = self._per_target[key] + self._queued_per_target[key]
            if claimed >= self.per_target_limit and self.duplicate_policy == "reject":
                logger.info("Rejected duplicate scan of %s", key)
                raise AdmissionRejectedError(RejectReason.DUPLICATE_TARGET, target=key)

            if not self._has_room(key):
                if self._waiting >= self.max_queue_depth:
                    logger.warning(
                        "Rejected scan of %s: %d running, %d queued",
                        key,
                        self._running,
                        self._waiting,
                    )
                    raise AdmissionRejectedError(RejectReason.OVERLOADED, target=key)
                self._waiting += 1
                self._queued_per_target[key] += 1
                try:
                    await self._cond.wait_for(lambda: self._has_room(key))
                finally:
                    self._waiting -= 1
                    self._queued_per_target[key] -= 1
                    if self._queued_per_target[key] <= 0:
                        del self._queued_per_target[key]

            self._running += 1
            self._per_target[key] += 1
            token = SlotToken(target=key)
            logger.debug(
                "Admitted %s (token %d, %d/%d running)",
                key,
                token.token_id,
                self._running,
                self.max_concurrent,
            )
            return token

    async def release(self, token: SlotToken) -> None:
        """Give a slot back. Releasing the same token twice is a no-op."""
        async with self._cond:
            if token.released:
                logger.debug("Token %d already released", token.token_id)
                return
            token.released = True
            self._running -= 1
            self._per_target[token.target] -= 1
            if self._per_target[token.target] <= 0:
                del self._per_target[token.target]
            self._cond.notify_all()

    @asynccontextmanager
    async def slot(self, target: ValidatedTarget) -> AsyncIterator[SlotToken]:
        """Hold a slot for the duration of the block, released on every path."""
        token = await self.acquire(target)
        try:
            yield token
        finally:
            await asyncio.shield(self.release(token))

    def stats(self) -> dict[str, int]:
        return {
            "running": self._running,
            "queued": self._waiting,
            "targets": len(self._per_target),
            "max_concurrent": self.max_concurrent,
            "max_queue_depth": self.max_queue_depth,
        }
