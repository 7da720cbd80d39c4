"""Price oracle facade: spot and historical USD prices per mint.

Zero is the "unknown" sentinel.  Any feed failure degrades to 0.0 and a
warning; callers treat a zero price as "this leg cannot be valued", never as
"this token is worthless".
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from core.config import PriceConfig
from tools.coingecko_tool import CoingeckoTool
from tools.jupiter_tool import JupiterPriceTool

logger = logging.getLogger(__name__)


class PriceTool:
    def __init__(
        self,
        config: PriceConfig | None = None,
        spot: JupiterPriceTool | None = None,
        history: CoingeckoTool | None = None,
    ) -> None:
        config = config or PriceConfig()
        self._window = timedelta(seconds=config.historical_window_s)
        self._spot = spot or JupiterPriceTool(
            api_key=config.jupiter_api_key, timeout=config.request_timeout
        )
        self._history = history or CoingeckoTool(demo_api_key=config.coingecko_demo_api_key)

    async def aclose(self) -> None:
        await self._spot.aclose()

    async def current_price(self, mint: str) -> float:
        try:
            return await self._spot.get_price(mint)
        except Exception as exc:
            logger.warning("spot price unavailable for %s, using 0: %s", mint, exc)
            return 0.0

    async def historical_price(self, mint: str, at: datetime) -> float:
        """Price nearest to *at* within the configured window, or 0.0."""
        try:
            points = await self._history.get_price_history(mint, at - self._window, at + self._window)
        except Exception as exc:
            logger.warning("historical price unavailable for %s at %s, using 0: %s", mint, at, exc)
            return 0.0

        target = at.timestamp()
        window_s = self._window.total_seconds()
        in_window = [p for p in points if abs(p[0] - target) <= window_s]
        if not in_window:
            logger.warning("no price point for %s within %s of %s", mint, self._window, at)
            return 0.0
        _, price = min(in_window, key=lambda p: abs(p[0] - target))
        return price
