"""Revalue one tracked pool's position against current ledger state and prices."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, Collection

from core.cache import PnLCache, WriteToken
from core.cost_basis import CostBasisResolver
from core.errors import PositionNotTracked
from core.models import PositionValuation, utcnow
from core.pool_math import get_withdraw_quote
from tools.ledger_tool import LedgerTool
from tools.price_tool import PriceTool
from tools.token_utils import to_ui_amount

logger = logging.getLogger(__name__)


def compute_pnl(current_value_usd: float, fees_usd: float, initial_value_usd: float) -> tuple[float, float]:
    """Return ``(pnl_usd, pnl_percentage)``; the percentage is 0 without a positive basis."""
    pnl = current_value_usd + fees_usd - initial_value_usd
    pct = pnl / initial_value_usd * 100 if initial_value_usd > 0 else 0.0
    return pnl, pct


class PositionValuator:
    def __init__(
        self,
        ledger: LedgerTool,
        oracle: PriceTool,
        resolver: CostBasisResolver,
        cache: PnLCache,
        wallet_address: str,
        tracked: Collection[str],
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._ledger = ledger
        self._oracle = oracle
        self._resolver = resolver
        self._cache = cache
        self._wallet = wallet_address
        self._tracked = tracked
        self._clock = clock

    async def _position_address(self, pool_address: str, token: WriteToken) -> str:
        address = self._cache.get_position_address(pool_address)
        if address is None:
            address = await self._ledger.find_position_for_pool(pool_address, self._wallet)
            self._cache.put_position_address(pool_address, address, token)
        return address

    async def valuate(self, pool_address: str, *, reverify: bool = False) -> PositionValuation:
        """Compute and cache a fresh valuation for *pool_address*.

        Raises PositionNotTracked, NotFound, LedgerUnavailable or
        CostBasisUnavailable.  On any failure the cached valuation for the pool
        is left exactly as it was.  A pool untracked, or a cache cleared, while
        this runs gets nothing written back.
        """
        if pool_address not in self._tracked:
            raise PositionNotTracked(f"pool {pool_address} is not tracked")
        token = self._cache.token(pool_address)

        pool = await self._ledger.fetch_pool_state(pool_address)
        position_address = await self._position_address(pool_address, token)
        position = await self._ledger.fetch_position_state(position_address)

        token_a, token_b = await asyncio.gather(
            self._ledger.get_token_info(pool.token_a_mint),
            self._ledger.get_token_info(pool.token_b_mint),
        )
        raw_a, raw_b = get_withdraw_quote(
            position.withdrawable_liquidity,
            pool.sqrt_price,
            pool.sqrt_min_price,
            pool.sqrt_max_price,
        )
        amount_a = to_ui_amount(raw_a, token_a.decimals)
        amount_b = to_ui_amount(raw_b, token_b.decimals)
        fee_a = to_ui_amount(position.fee_a_pending, token_a.decimals)
        fee_b = to_ui_amount(position.fee_b_pending, token_b.decimals)

        if position.withdrawable_liquidity == 0 and fee_a == 0 and fee_b == 0:
            logger.info("position %s in pool %s holds no liquidity or fees", position_address, pool_address)

        price_a, price_b = await asyncio.gather(
            self._oracle.current_price(pool.token_a_mint),
            self._oracle.current_price(pool.token_b_mint),
        )
        current_value = amount_a * price_a + amount_b * price_b
        fees_usd = fee_a * price_a + fee_b * price_b

        cost_basis = await self._resolver.resolve(
            pool_address, position_address, reverify=reverify, token=token
        )
        pnl, pct = compute_pnl(current_value, fees_usd, cost_basis.initial_total_value_usd)

        valuation = PositionValuation(
            pool_address=pool_address,
            position_address=position_address,
            current_token_a_amount=amount_a,
            current_token_b_amount=amount_b,
            current_fee_a_amount=fee_a,
            current_fee_b_amount=fee_b,
            current_token_a_price=price_a,
            current_token_b_price=price_b,
            current_total_value_usd=current_value,
            fees_earned_usd=fees_usd,
            pnl_usd=pnl,
            pnl_percentage=pct,
            last_updated=self._clock(),
            cost_basis=cost_basis,
            token_a_symbol=token_a.symbol,
            token_b_symbol=token_b.symbol,
        )
        stored = pool_address in self._tracked and self._cache.put_valuation(pool_address, valuation, token)
        if not stored:
            logger.info("discarding valuation for %s, untracked or caches cleared meanwhile", pool_address)
            return valuation
        logger.info(
            "valued %s/%s in %s: $%.2f (+$%.2f fees) pnl %+.2f (%+.2f%%)",
            token_a.symbol,
            token_b.symbol,
            pool_address,
            current_value,
            fees_usd,
            pnl,
            pct,
        )
        return valuation
