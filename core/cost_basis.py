"""Cost-basis reconstruction from a position's creation transaction.

The creation transaction is the oldest signature recorded for the position
address: DAMM v2 positions are created once and never re-initialised at the
same address.  Deposit legs are read from token-balance deltas and priced at
the transaction's block time.

Known approximation: legs are assigned by order of appearance (first positive
delta mint → token A, second → token B), which can misattribute legs when a
creation transaction touches more than two mints.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from core.cache import PnLCache, WriteToken
from core.errors import CostBasisUnavailable, LedgerUnavailable
from core.models import STALE_THRESHOLD, CostBasis, CreationTransaction, utcnow
from tools.ledger_tool import LedgerTool
from tools.price_tool import PriceTool
from tools.token_utils import to_ui_amount

logger = logging.getLogger(__name__)


def deposit_legs(tx: CreationTransaction) -> list[tuple[str, float]]:
    """Return ``[(mint, ui_amount), ...]`` for mints whose balance increased.

    Per token account: delta = post - pre (missing pre = 0).  Each mint keeps
    its largest single-account increase, ordered by first appearance.
    """
    pre = {b.account_index: b.amount for b in tx.pre_token_balances}
    legs: dict[str, tuple[int, int]] = {}  # mint -> (raw delta, decimals)
    for post in tx.post_token_balances:
        delta = post.amount - pre.get(post.account_index, 0)
        if delta <= 0:
            continue
        current = legs.get(post.mint)
        if current is None or delta > current[0]:
            legs[post.mint] = (delta, post.decimals)
    return [(mint, to_ui_amount(raw, decimals)) for mint, (raw, decimals) in legs.items()]


class CostBasisResolver:
    def __init__(
        self,
        ledger: LedgerTool,
        oracle: PriceTool,
        cache: PnLCache,
        stale_threshold: timedelta = STALE_THRESHOLD,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._ledger = ledger
        self._oracle = oracle
        self._cache = cache
        self._stale_threshold = stale_threshold
        self._clock = clock

    async def resolve(
        self,
        pool_address: str,
        position_address: str,
        *,
        reverify: bool = False,
        token: WriteToken | None = None,
    ) -> CostBasis:
        """Return the cost basis for the position valued under *pool_address*.

        A cached entry is returned as-is unless *reverify* is set and the entry
        is older than the staleness threshold.  A failed re-verification keeps
        the cached entry.  A result computed under a *token* that the cache no
        longer accepts is returned but not stored.
        """
        cached = self._cache.get_cost_basis(pool_address)
        if cached is not None:
            if not (reverify and cached.is_stale(self._clock(), self._stale_threshold)):
                logger.debug("cost basis cache hit for %s", pool_address)
                return cached.cost_basis
            logger.info("re-verifying cost basis for %s (resolved %s)", pool_address, cached.resolved_at)

        try:
            basis = await self.compute(position_address)
        except CostBasisUnavailable as exc:
            if cached is not None:
                logger.warning(
                    "re-verification failed for %s, keeping cached cost basis: %s",
                    pool_address,
                    exc,
                )
                return cached.cost_basis
            raise

        if not self._cache.put_cost_basis(pool_address, basis, self._clock(), token):
            logger.debug("cost basis for %s dropped, cache changed while resolving", pool_address)
        return basis

    async def compute(self, position_address: str) -> CostBasis:
        """Rebuild the cost basis from the ledger.  Never touches the cache."""
        try:
            tx = await self._ledger.get_creation_evidence(position_address)
        except LedgerUnavailable as exc:
            raise CostBasisUnavailable(f"creation transaction unavailable: {exc}") from exc

        if tx.block_time is None:
            raise CostBasisUnavailable(f"creation transaction {tx.signature} has no block time")

        legs = deposit_legs(tx)
        if not legs:
            raise CostBasisUnavailable(f"no deposit found in creation transaction {tx.signature}")
        if len(legs) > 2:
            logger.debug(
                "creation tx %s touched %d deposit mints; using the first two",
                tx.signature,
                len(legs),
            )

        created_at = datetime.fromtimestamp(tx.block_time, tz=timezone.utc)
        mint_a, amount_a = legs[0]
        mint_b, amount_b = legs[1] if len(legs) > 1 else (None, 0.0)

        if mint_b is not None:
            price_a, price_b = await asyncio.gather(
                self._oracle.historical_price(mint_a, created_at),
                self._oracle.historical_price(mint_b, created_at),
            )
        else:
            price_a, price_b = await self._oracle.historical_price(mint_a, created_at), 0.0

        basis = CostBasis(
            initial_token_a_amount=amount_a,
            initial_token_b_amount=amount_b,
            initial_token_a_price=price_a,
            initial_token_b_price=price_b,
            initial_total_value_usd=amount_a * price_a + amount_b * price_b,
            created_at=created_at,
            token_a_mint=mint_a,
            token_b_mint=mint_b,
            signature=tx.signature,
        )
        logger.info(
            "cost basis for %s: $%.2f (created %s, tx %s)",
            position_address,
            basis.initial_total_value_usd,
            created_at.isoformat(),
            tx.signature,
        )
        return basis
