"""CoinGecko API helper focused on historical USD prices of Solana tokens.

Uses the public API by default and a demo API key when one is configured.
The pycoingecko client is synchronous; calls are pushed to a worker thread so
the event loop keeps serving other positions.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any

from pycoingecko import CoinGeckoAPI

from core.errors import FeedUnavailable
from core.network_config import NATIVE_MINT

logger = logging.getLogger(__name__)

_PLATFORM = "solana"
# Mints CoinGecko tracks as native coins rather than as contract addresses.
_COIN_IDS = {NATIVE_MINT: "solana"}


class CoingeckoTool:
    """Lightweight wrapper around CoinGeckoAPI for market-chart ranges."""

    def __init__(self, demo_api_key: str | None = None, client: CoinGeckoAPI | None = None) -> None:
        if client is not None:
            self._client = client
        elif demo_api_key:
            logger.info("CoingeckoTool: using demo API key for CoinGecko")
            self._client = CoinGeckoAPI(demo_api_key=demo_api_key)
        else:
            logger.info("CoingeckoTool: using public CoinGecko API (no key)")
            self._client = CoinGeckoAPI()

    def _fetch_range(self, mint: str, start: int, end: int) -> dict[str, Any]:
        coin_id = _COIN_IDS.get(mint)
        if coin_id is not None:
            return self._client.get_coin_market_chart_range_by_id(
                id=coin_id, vs_currency="usd", from_timestamp=start, to_timestamp=end
            )
        return self._client.get_coin_market_chart_range_from_contract_address_by_id(
            id=_PLATFORM,
            contract_address=mint,
            vs_currency="usd",
            from_timestamp=start,
            to_timestamp=end,
        )

    async def get_price_history(
        self, mint: str, start: datetime, end: datetime
    ) -> list[tuple[float, float]]:
        """Return ``(unix_seconds, usd_price)`` points for *mint* in [start, end]."""
        try:
            data = await asyncio.to_thread(
                self._fetch_range, mint, int(start.timestamp()), int(end.timestamp())
            )
        except Exception as exc:
            raise FeedUnavailable(f"CoinGecko range request failed for {mint}: {exc}") from exc

        points: list[tuple[float, float]] = []
        for item in (data or {}).get("prices") or []:
            try:
                ts_ms, price = item[0], item[1]
                points.append((float(ts_ms) / 1000.0, float(price)))
            except (IndexError, TypeError, ValueError):
                continue
        logger.debug("coingecko: %d points for %s", len(points), mint)
        return points
