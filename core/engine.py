"""PnLEngine: the explicitly constructed owner of the caches and refresh loop.

Wires ledger gateway, price oracle, cost-basis resolver, valuator, aggregator
and scheduler together and exposes the read/refresh surface used by the CLI
(or any other presentation layer).
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable

from core.aggregator import Observer, PortfolioAggregator
from core.cache import PnLCache
from core.config import RefreshConfig
from core.cost_basis import CostBasisResolver
from core.models import PortfolioSummary, PositionValuation, utcnow
from core.scheduler import RefreshScheduler
from core.valuator import PositionValuator
from tools.ledger_tool import LedgerTool
from tools.price_tool import PriceTool
from tools.token_utils import validate_address

logger = logging.getLogger(__name__)


class PnLEngine:
    def __init__(
        self,
        ledger: LedgerTool,
        oracle: PriceTool,
        wallet_address: str,
        *,
        refresh: RefreshConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.refresh_config = refresh or RefreshConfig()
        self._ledger = ledger
        self._cache = PnLCache()
        self._tracked: set[str] = set()

        resolver = CostBasisResolver(
            ledger,
            oracle,
            self._cache,
            stale_threshold=timedelta(seconds=self.refresh_config.stale_threshold_s),
            clock=clock,
        )
        self._valuator = PositionValuator(
            ledger, oracle, resolver, self._cache, wallet_address, self._tracked, clock=clock
        )
        self._aggregator = PortfolioAggregator(self._cache, clock=clock)
        self._scheduler = RefreshScheduler(
            self._valuator,
            self._aggregator,
            self._tracked,
            max_concurrency=self.refresh_config.max_concurrency,
        )

    # ── tracking ──────────────────────────────────────────────────

    def track(self, pool_address: str) -> None:
        if not validate_address(pool_address):
            raise ValueError(f"invalid pool address: {pool_address!r}")
        self._scheduler.track(pool_address)
        logger.info("tracking pool %s", pool_address)

    def untrack(self, pool_address: str) -> None:
        self._scheduler.untrack(pool_address)
        self._cache.discard(pool_address)
        self._aggregator.recompute()
        logger.info("untracked pool %s", pool_address)

    def tracked_pools(self) -> list[str]:
        return self._scheduler.tracked_pools()

    # ── triggers ──────────────────────────────────────────────────

    async def valuate(self, pool_address: str) -> PositionValuation:
        return await self._valuator.valuate(pool_address)

    async def refresh_all(self, *, force: bool = False) -> PortfolioSummary | None:
        return await self._scheduler.refresh_all(force=force)

    async def refresh_one(self, pool_address: str) -> PositionValuation | None:
        return await self._scheduler.refresh_one(pool_address)

    # ── readers ───────────────────────────────────────────────────

    def get_position_valuation(self, pool_address: str) -> PositionValuation | None:
        return self._cache.get_valuation(pool_address)

    def get_all_valuations(self) -> dict[str, PositionValuation]:
        return self._cache.valuations()

    def get_portfolio_summary(self) -> PortfolioSummary | None:
        return self._aggregator.summary

    def clear_caches(self) -> None:
        """Drop every cost basis, valuation and resolved position address."""
        self._cache.clear()
        self._aggregator.clear()
        logger.info("PnL caches cleared")

    def subscribe(self, callback: Observer) -> Callable[[], None]:
        return self._aggregator.subscribe(callback)

    # ── lifecycle ─────────────────────────────────────────────────

    def start(self, interval_s: float | None = None) -> None:
        self._scheduler.start(interval_s if interval_s is not None else self.refresh_config.interval_s)

    def stop(self) -> None:
        self._scheduler.stop()

    async def wait_stopped(self) -> None:
        await self._scheduler.wait_stopped()

    @property
    def is_running(self) -> bool:
        return self._scheduler.is_running

    async def health(self) -> dict[str, Any]:
        status = await self._ledger.health()
        status.update(
            tracked_pools=len(self._tracked),
            cached_valuations=len(self._cache.valuations()),
            scheduler_running=self._scheduler.is_running,
        )
        return status
