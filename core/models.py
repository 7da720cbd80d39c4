"""Value objects passed between the ledger gateway, price feeds and PnL engine.

Everything here is a frozen dataclass: snapshots handed to readers can be
shared freely without copying the objects themselves.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

# A cost basis older than this is re-verified on the next explicit refresh and a
# valuation older than this is flagged stale.  Displayed numbers are never
# invalidated by it.
STALE_THRESHOLD = timedelta(minutes=5)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_older_than(stamp: datetime, now: datetime, threshold: timedelta = STALE_THRESHOLD) -> bool:
    return now - stamp > threshold


# ── ledger state ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TokenInfo:
    mint_address: str
    symbol: str
    decimals: int


@dataclass(frozen=True)
class PoolState:
    address: str
    token_a_mint: str
    token_b_mint: str
    liquidity: int
    sqrt_min_price: int   # Q64.64
    sqrt_max_price: int   # Q64.64
    sqrt_price: int       # Q64.64


@dataclass(frozen=True)
class PositionState:
    address: str
    pool: str
    nft_mint: str
    fee_a_pending: int
    fee_b_pending: int
    unlocked_liquidity: int
    vested_liquidity: int
    permanent_locked_liquidity: int

    @property
    def withdrawable_liquidity(self) -> int:
        """Liquidity the owner can pull out today (permanent locks excluded)."""
        return self.unlocked_liquidity + self.vested_liquidity


@dataclass(frozen=True)
class TokenBalance:
    account_index: int
    mint: str
    amount: int
    decimals: int


@dataclass(frozen=True)
class CreationTransaction:
    """Oldest transaction seen for a position address."""

    signature: str
    block_time: int | None
    pre_token_balances: tuple[TokenBalance, ...] = ()
    post_token_balances: tuple[TokenBalance, ...] = ()


# ── PnL values ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CostBasis:
    initial_token_a_amount: float
    initial_token_b_amount: float
    initial_token_a_price: float
    initial_token_b_price: float
    initial_total_value_usd: float
    created_at: datetime
    token_a_mint: str | None = None
    token_b_mint: str | None = None
    signature: str = ""


@dataclass(frozen=True)
class PositionValuation:
    pool_address: str
    position_address: str
    current_token_a_amount: float
    current_token_b_amount: float
    current_fee_a_amount: float
    current_fee_b_amount: float
    current_token_a_price: float
    current_token_b_price: float
    current_total_value_usd: float
    fees_earned_usd: float
    pnl_usd: float
    pnl_percentage: float
    last_updated: datetime
    cost_basis: CostBasis
    token_a_symbol: str = "UNKNOWN"
    token_b_symbol: str = "UNKNOWN"

    def is_stale(self, now: datetime | None = None, threshold: timedelta = STALE_THRESHOLD) -> bool:
        return is_older_than(self.last_updated, now or utcnow(), threshold)


@dataclass(frozen=True)
class PortfolioSummary:
    total_current_value_usd: float
    total_initial_value_usd: float
    total_pnl_usd: float
    total_pnl_percentage: float
    total_fees_earned_usd: float
    last_updated: datetime
    positions: tuple[PositionValuation, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class PortfolioUpdated:
    """Notification published after every successful summary recompute."""

    summary: PortfolioSummary
    position_count: int
    timestamp: datetime
