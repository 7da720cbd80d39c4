"""Spot USD prices from the Jupiter Price API (v3).

Uses the lite host by default and the keyed host when ``JUPITER_API_KEY`` is
configured.  Every failure surfaces as FeedUnavailable.
"""

from __future__ import annotations

import logging

import httpx

from core.errors import FeedUnavailable

logger = logging.getLogger(__name__)

JUP_LITE_BASE_URL = "https://lite-api.jup.ag"
JUP_BASE_URL = "https://api.jup.ag"


class JupiterPriceTool:
    def __init__(
        self,
        api_key: str | None = None,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = JUP_BASE_URL if api_key else JUP_LITE_BASE_URL
        headers = {"x-api-key": api_key} if api_key else None
        self._client = client or httpx.AsyncClient(timeout=timeout, headers=headers)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_price(self, mint: str) -> float:
        """Return the USD price of *mint*; raise FeedUnavailable if there is none."""
        try:
            resp = await self._client.get(f"{self._base_url}/price/v3", params={"ids": mint})
        except httpx.HTTPError as exc:
            raise FeedUnavailable(f"Jupiter price request failed for {mint}: {exc}") from exc
        if resp.status_code != 200:
            raise FeedUnavailable(f"Jupiter price error {resp.status_code}: {resp.text}")

        try:
            data = resp.json()
        except ValueError as exc:
            raise FeedUnavailable(f"Jupiter returned malformed JSON for {mint}") from exc

        entry = data.get(mint) if isinstance(data, dict) else None
        if not isinstance(entry, dict) or entry.get("usdPrice") is None:
            raise FeedUnavailable(f"Jupiter has no price for {mint}")
        try:
            price = float(entry["usdPrice"])
        except (TypeError, ValueError) as exc:
            raise FeedUnavailable(f"Jupiter price for {mint} is not a number") from exc

        logger.debug("jupiter: %s = %.6f USD", mint, price)
        return price
