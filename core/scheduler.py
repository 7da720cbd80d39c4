"""Periodic, non-overlapping fan-out refresh of every tracked pool."""

from __future__ import annotations

import asyncio
import logging

from core.aggregator import PortfolioAggregator
from core.errors import NotFound, PositionNotTracked
from core.models import PortfolioSummary, PositionValuation
from core.valuator import PositionValuator

logger = logging.getLogger(__name__)


class RefreshScheduler:
    """Idle → Refreshing → Idle.

    A refresh_all() arriving while one is in flight returns immediately; it is
    not queued.  stop() only prevents the next tick, an in-flight cycle runs to
    completion.
    """

    def __init__(
        self,
        valuator: PositionValuator,
        aggregator: PortfolioAggregator,
        tracked: set[str],
        max_concurrency: int = 8,
    ) -> None:
        self._valuator = valuator
        self._aggregator = aggregator
        self._tracked = tracked
        self._semaphore = asyncio.Semaphore(max(1, max_concurrency))
        self._refreshing = False
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None

    # ── tracking set ──────────────────────────────────────────────

    def track(self, pool_address: str) -> None:
        self._tracked.add(pool_address)

    def untrack(self, pool_address: str) -> None:
        self._tracked.discard(pool_address)

    def tracked_pools(self) -> list[str]:
        return sorted(self._tracked)

    @property
    def is_refreshing(self) -> bool:
        return self._refreshing

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ── refresh ───────────────────────────────────────────────────

    async def _valuate_bounded(self, pool_address: str, force: bool) -> PositionValuation:
        async with self._semaphore:
            return await self._valuator.valuate(pool_address, reverify=force)

    async def refresh_all(self, *, force: bool = False) -> PortfolioSummary | None:
        """Revalue every tracked pool, then recompute the summary.

        Returns None without doing anything when a cycle is already running.
        """
        if self._refreshing:
            logger.debug("refresh already in progress, skipping")
            return None

        self._refreshing = True
        try:
            pools = sorted(self._tracked)
            results = await asyncio.gather(
                *(self._valuate_bounded(p, force) for p in pools),
                return_exceptions=True,
            )
            failed = 0
            for pool_address, result in zip(pools, results):
                if isinstance(result, BaseException):
                    failed += 1
                    self._log_failure(pool_address, result)
            logger.info("refreshed %d/%d positions", len(pools) - failed, len(pools))
            return self._aggregator.recompute()
        finally:
            self._refreshing = False

    async def refresh_one(self, pool_address: str) -> PositionValuation | None:
        """Revalue a single pool with cost-basis re-verification.

        PositionNotTracked propagates; any other failure is logged and leaves
        the previous valuation in place.
        """
        if pool_address not in self._tracked:
            raise PositionNotTracked(f"pool {pool_address} is not tracked")
        try:
            valuation = await self._valuator.valuate(pool_address, reverify=True)
        except PositionNotTracked:
            raise
        except Exception as exc:
            self._log_failure(pool_address, exc)
            valuation = None
        self._aggregator.recompute()
        return valuation

    @staticmethod
    def _log_failure(pool_address: str, exc: BaseException) -> None:
        if isinstance(exc, NotFound):
            logger.warning(
                "position for pool %s not found (%s); it may have been closed, consider untracking it",
                pool_address,
                exc,
            )
        else:
            logger.warning("refresh failed for pool %s: %s: %s", pool_address, type(exc).__name__, exc)

    # ── periodic loop ─────────────────────────────────────────────

    def start(self, interval_s: float) -> None:
        if self.is_running:
            logger.debug("scheduler already running")
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(interval_s))
        logger.info("refresh scheduler started (every %.0fs)", interval_s)

    def stop(self) -> None:
        self._stop_event.set()
        logger.info("refresh scheduler stopping")

    async def wait_stopped(self) -> None:
        if self._task is not None:
            await self._task
            self._task = None

    async def _run(self, interval_s: float) -> None:
        while not self._stop_event.is_set():
            try:
                await self.refresh_all()
            except Exception:
                logger.exception("refresh cycle crashed")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval_s)
            except asyncio.TimeoutError:
                continue
