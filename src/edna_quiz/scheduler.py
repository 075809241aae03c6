"""Expired download-token reaper.

Redemption already rejects expired tokens; this only keeps the table small.
Runs as a plain asyncio task owned by the backend.
"""

from __future__ import annotations

import asyncio
import logging

from .repository import ResultRepository

logger = logging.getLogger(__name__)

DEFAULT_REAP_INTERVAL_HOURS = 24


class TokenReaper:
    """Periodically deletes download tokens past their expiry."""

    def __init__(self, repository: ResultRepository, interval_hours: int = DEFAULT_REAP_INTERVAL_HOURS):
        self._repository = repository
        self._task: asyncio.Task | None = None
        self._running = False
        self._interval_seconds = max(1, interval_hours) * 3600

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Start the background reap loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Token reaper started (interval: %d hours)", self._interval_seconds // 3600)

    async def stop(self):
        """Stop the background reap loop."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Token reaper stopped")

    async def reap_once(self) -> int:
        removed = await self._repository.reap_expired_tokens()
        if removed:
            logger.info("Reaped %d expired download token(s)", removed)
        return removed

    async def _run_loop(self):
        """Reap immediately, then once per interval."""
        while self._running:
            try:
                await self.reap_once()
            except asyncio.CancelledError:
                break
            except Exception as exc:
                logger.error("Expired token cleanup failed: %s", exc, exc_info=True)
            try:
                await asyncio.sleep(self._interval_seconds)
            except asyncio.CancelledError:
                break
