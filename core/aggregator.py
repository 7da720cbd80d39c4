"""Portfolio summary: a pure fold over the cached valuations, plus observers."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterable

from core.cache import PnLCache
from core.models import PortfolioSummary, PortfolioUpdated, PositionValuation, utcnow

logger = logging.getLogger(__name__)

Observer = Callable[[PortfolioUpdated], None]


def summarize(valuations: Iterable[PositionValuation], now: datetime) -> PortfolioSummary | None:
    """Fold *valuations* into a summary.  ``None`` when there is nothing to fold."""
    positions = tuple(sorted(valuations, key=lambda v: v.pool_address))
    if not positions:
        return None

    total_value = sum(v.current_total_value_usd for v in positions)
    total_initial = sum(v.cost_basis.initial_total_value_usd for v in positions)
    total_fees = sum(v.fees_earned_usd for v in positions)
    total_pnl = sum(v.pnl_usd for v in positions)
    total_pct = total_pnl / total_initial * 100 if total_initial > 0 else 0.0

    return PortfolioSummary(
        total_current_value_usd=total_value,
        total_initial_value_usd=total_initial,
        total_pnl_usd=total_pnl,
        total_pnl_percentage=total_pct,
        total_fees_earned_usd=total_fees,
        last_updated=now,
        positions=positions,
    )


def format_summary(summary: PortfolioSummary | None) -> str:
    """Render *summary* for the log.  Rows not refreshed for a while are marked stale."""
    if summary is None:
        return "No portfolio data yet."
    lines = [
        f"Portfolio: ${summary.total_current_value_usd:,.2f} "
        f"(initial ${summary.total_initial_value_usd:,.2f}, fees ${summary.total_fees_earned_usd:,.2f}) "
        f"PnL {summary.total_pnl_usd:+,.2f} USD ({summary.total_pnl_percentage:+.2f}%)"
    ]
    for v in summary.positions:
        lines.append(
            f"  {v.token_a_symbol}/{v.token_b_symbol} {v.pool_address[:8]}…  "
            f"${v.current_total_value_usd:,.2f} + ${v.fees_earned_usd:,.2f} fees  "
            f"PnL {v.pnl_usd:+,.2f} ({v.pnl_percentage:+.2f}%)"
            + (" (stale)" if v.is_stale(summary.last_updated) else "")
        )
    return "\n".join(lines)


class PortfolioAggregator:
    def __init__(self, cache: PnLCache, clock: Callable[[], datetime] = utcnow) -> None:
        self._cache = cache
        self._clock = clock
        self._observers: list[Observer] = []
        self.summary: PortfolioSummary | None = None

    def subscribe(self, callback: Observer) -> Callable[[], None]:
        """Register *callback* for PortfolioUpdated events; returns an unsubscribe function."""
        self._observers.append(callback)

        def unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def recompute(self) -> PortfolioSummary | None:
        summary = summarize(self._cache.valuations().values(), self._clock())
        self.summary = summary
        if summary is not None:
            self._publish(PortfolioUpdated(summary, len(summary.positions), summary.last_updated))
        return summary

    def clear(self) -> None:
        self.summary = None

    def _publish(self, event: PortfolioUpdated) -> None:
        for callback in list(self._observers):
            try:
                callback(event)
            except Exception:
                logger.exception("portfolio observer %r failed", callback)
