"""Tests for tools/jupiter_tool.py, tools/coingecko_tool.py and tools/price_tool.py."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from core.config import PriceConfig
from core.errors import FeedUnavailable
from core.network_config import NATIVE_MINT
from tools.coingecko_tool import CoingeckoTool
from tools.jupiter_tool import JUP_BASE_URL, JUP_LITE_BASE_URL, JupiterPriceTool
from tools.price_tool import PriceTool

USDC = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
AT = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def _jupiter(handler, api_key=None) -> JupiterPriceTool:
    headers = {"x-api-key": api_key} if api_key else None
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), headers=headers)
    return JupiterPriceTool(api_key=api_key, client=client)


class TestJupiterPriceTool:
    @pytest.mark.asyncio
    async def test_returns_usd_price(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={USDC: {"usdPrice": 0.9998, "decimals": 6}})

        tool = _jupiter(handler)
        assert await tool.get_price(USDC) == pytest.approx(0.9998)
        assert str(seen[0].url).startswith(f"{JUP_LITE_BASE_URL}/price/v3")
        assert seen[0].url.params["ids"] == USDC

    @pytest.mark.asyncio
    async def test_keyed_host_when_api_key_set(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={USDC: {"usdPrice": 1}})

        tool = _jupiter(handler, api_key="k")
        await tool.get_price(USDC)
        assert str(seen[0].url).startswith(JUP_BASE_URL)
        assert seen[0].headers["x-api-key"] == "k"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(500, text="oops"),
            httpx.Response(200, json={}),
            httpx.Response(200, json={USDC: {"usdPrice": None}}),
            httpx.Response(200, json={USDC: {"usdPrice": "abc"}}),
            httpx.Response(200, text="not json"),
        ],
    )
    async def test_bad_responses_raise_feed_unavailable(self, response: httpx.Response) -> None:
        tool = _jupiter(lambda request: response)
        with pytest.raises(FeedUnavailable):
            await tool.get_price(USDC)

    @pytest.mark.asyncio
    async def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("down", request=request)

        with pytest.raises(FeedUnavailable):
            await _jupiter(handler).get_price(USDC)


class TestCoingeckoTool:
    @pytest.mark.asyncio
    async def test_wrapped_sol_uses_coin_id(self) -> None:
        client = MagicMock()
        client.get_coin_market_chart_range_by_id.return_value = {"prices": [[1_700_000_000_000, 61.5]]}
        tool = CoingeckoTool(client=client)

        points = await tool.get_price_history(NATIVE_MINT, AT - timedelta(hours=1), AT + timedelta(hours=1))

        assert points == [(1_700_000_000.0, 61.5)]
        kwargs = client.get_coin_market_chart_range_by_id.call_args.kwargs
        assert kwargs["id"] == "solana"
        assert kwargs["vs_currency"] == "usd"
        assert kwargs["to_timestamp"] - kwargs["from_timestamp"] == 7200

    @pytest.mark.asyncio
    async def test_other_mints_use_contract_address(self) -> None:
        client = MagicMock()
        client.get_coin_market_chart_range_from_contract_address_by_id.return_value = {
            "prices": [[1, 1.0], ["bad"], [2, 1.01]]
        }
        tool = CoingeckoTool(client=client)

        points = await tool.get_price_history(USDC, AT, AT)

        assert [p[1] for p in points] == [1.0, 1.01]
        kwargs = client.get_coin_market_chart_range_from_contract_address_by_id.call_args.kwargs
        assert kwargs["contract_address"] == USDC
        assert kwargs["id"] == "solana"

    @pytest.mark.asyncio
    async def test_client_error_raises_feed_unavailable(self) -> None:
        client = MagicMock()
        client.get_coin_market_chart_range_from_contract_address_by_id.side_effect = ValueError("429")
        with pytest.raises(FeedUnavailable):
            await CoingeckoTool(client=client).get_price_history(USDC, AT, AT)

    @patch("tools.coingecko_tool.CoinGeckoAPI")
    def test_demo_key_is_passed(self, mock_api_cls: MagicMock) -> None:
        CoingeckoTool(demo_api_key="demo")
        mock_api_cls.assert_called_once_with(demo_api_key="demo")


class TestPriceTool:
    def _tool(self, spot=None, history=None) -> PriceTool:
        return PriceTool(PriceConfig(), spot=spot or AsyncMock(), history=history or AsyncMock())

    @pytest.mark.asyncio
    async def test_current_price_passthrough(self) -> None:
        spot = AsyncMock()
        spot.get_price.return_value = 1.25
        assert await self._tool(spot=spot).current_price(USDC) == 1.25

    @pytest.mark.asyncio
    async def test_current_price_degrades_to_zero(self) -> None:
        spot = AsyncMock()
        spot.get_price.side_effect = FeedUnavailable("down")
        assert await self._tool(spot=spot).current_price(USDC) == 0.0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [OverflowError("int too large"), KeyError("data"), RuntimeError("boom")])
    async def test_current_price_unexpected_error_is_zero(self, error: Exception, caplog) -> None:
        spot = AsyncMock()
        spot.get_price.side_effect = error
        assert await self._tool(spot=spot).current_price(USDC) == 0.0
        assert "spot price unavailable" in caplog.text

    @pytest.mark.asyncio
    async def test_historical_unexpected_error_is_zero(self) -> None:
        history = AsyncMock()
        history.get_price_history.side_effect = ValueError("bad payload")
        assert await self._tool(history=history).historical_price(USDC, AT) == 0.0

    @pytest.mark.asyncio
    async def test_historical_picks_nearest_point(self) -> None:
        t = AT.timestamp()
        history = AsyncMock()
        history.get_price_history.return_value = [(t - 1800, 1.0), (t + 120, 2.0), (t + 3000, 3.0)]
        tool = self._tool(history=history)

        assert await tool.historical_price(USDC, AT) == 2.0
        _, start, end = history.get_price_history.call_args.args
        assert (start, end) == (AT - timedelta(hours=1), AT + timedelta(hours=1))

    @pytest.mark.asyncio
    async def test_historical_ignores_points_outside_window(self) -> None:
        t = AT.timestamp()
        history = AsyncMock()
        history.get_price_history.return_value = [(t - 7200, 1.0)]
        assert await self._tool(history=history).historical_price(USDC, AT) == 0.0

    @pytest.mark.asyncio
    async def test_historical_empty_or_failed_is_zero(self) -> None:
        history = AsyncMock()
        history.get_price_history.return_value = []
        assert await self._tool(history=history).historical_price(USDC, AT) == 0.0

        history.get_price_history.side_effect = FeedUnavailable("429")
        assert await self._tool(history=history).historical_price(USDC, AT) == 0.0

    @pytest.mark.asyncio
    async def test_aclose_closes_spot_client(self) -> None:
        spot = AsyncMock()
        await self._tool(spot=spot).aclose()
        spot.aclose.assert_awaited_once()
