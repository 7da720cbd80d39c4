"""Shared fakes for engine-level tests: an in-memory ledger and price oracle."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from solders.pubkey import Pubkey

from core.errors import LedgerUnavailable, PoolNotFound, PositionNotFound
from core.models import (
    CreationTransaction,
    PoolState,
    PositionState,
    TokenBalance,
    TokenInfo,
)

WALLET = str(Pubkey.new_unique())
MINT_A = "So11111111111111111111111111111111111111112"
MINT_B = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"

CREATED_AT = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)
NOW = datetime(2025, 7, 1, 12, 0, tzinfo=timezone.utc)


class Clock:
    """Manually advanced clock."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeLedger:
    """Just enough of LedgerTool for the engine, backed by dicts."""

    def __init__(self) -> None:
        self.pools: dict[str, PoolState] = {}
        self.positions: dict[str, PositionState] = {}
        self.position_for_pool: dict[str, str] = {}
        self.creation: dict[str, CreationTransaction] = {}
        self.tokens: dict[str, TokenInfo] = {}
        # liquidity -> raw (amount_a, amount_b), consumed by the patched quote
        self.quotes: dict[int, tuple[int, int]] = {}
        self.failing_pools: set[str] = set()
        self.history_fails = False
        self.pool_fetches = 0
        self.creation_fetches = 0

    def add_position(
        self,
        pool_address: str,
        *,
        liquidity: int,
        amounts: tuple[int, int],
        fees: tuple[int, int] = (0, 0),
        deposit: tuple[int, int] = (100_000_000, 50_000_000),
        block_time: int | None = int(CREATED_AT.timestamp()),
    ) -> str:
        position_address = str(Pubkey.new_unique())
        self.pools[pool_address] = PoolState(
            address=pool_address,
            token_a_mint=MINT_A,
            token_b_mint=MINT_B,
            liquidity=liquidity,
            sqrt_min_price=1,
            sqrt_max_price=2**80,
            sqrt_price=2**64,
        )
        self.positions[position_address] = PositionState(
            address=position_address,
            pool=pool_address,
            nft_mint=str(Pubkey.new_unique()),
            fee_a_pending=fees[0],
            fee_b_pending=fees[1],
            unlocked_liquidity=liquidity,
            vested_liquidity=0,
            permanent_locked_liquidity=0,
        )
        self.position_for_pool[pool_address] = position_address
        self.quotes[liquidity] = amounts
        post = []
        if deposit[0]:
            post.append(TokenBalance(account_index=3, mint=MINT_A, amount=deposit[0], decimals=6))
        if deposit[1]:
            post.append(TokenBalance(account_index=4, mint=MINT_B, amount=deposit[1], decimals=6))
        self.creation[position_address] = CreationTransaction(
            signature=f"sig-{position_address[:6]}",
            block_time=block_time,
            pre_token_balances=(),
            post_token_balances=tuple(post),
        )
        return position_address

    async def fetch_pool_state(self, address: str) -> PoolState:
        self.pool_fetches += 1
        if address in self.failing_pools:
            raise LedgerUnavailable(f"rpc down for {address}")
        if address not in self.pools:
            raise PoolNotFound(address)
        return self.pools[address]

    async def fetch_position_state(self, address: str) -> PositionState:
        if address not in self.positions:
            raise PositionNotFound(address)
        return self.positions[address]

    async def find_position_for_pool(self, pool_address: str, owner: str) -> str:
        if pool_address not in self.position_for_pool:
            raise PositionNotFound(pool_address)
        return self.position_for_pool[pool_address]

    async def get_creation_evidence(self, position_address: str) -> CreationTransaction:
        self.creation_fetches += 1
        if self.history_fails:
            raise LedgerUnavailable("history unavailable")
        return self.creation[position_address]

    async def get_token_info(self, mint: str) -> TokenInfo:
        return self.tokens.get(mint, TokenInfo(mint, mint[:4], 6))

    async def health(self) -> dict:
        return {"initialized": True, "rpc_url": "fake", "connection_health": "healthy", "last_slot": 1}


class GatedLedger(FakeLedger):
    """Pool fetches block until ``gate`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.gate = asyncio.Event()

    async def fetch_pool_state(self, address: str) -> PoolState:
        await self.gate.wait()
        return await super().fetch_pool_state(address)


class FakeOracle:
    def __init__(self, current: dict[str, float] | None = None, historical: dict[str, float] | None = None) -> None:
        self.current = dict(current or {})
        self.historical = dict(historical or {})

    async def current_price(self, mint: str) -> float:
        return self.current.get(mint, 0.0)

    async def historical_price(self, mint: str, at: datetime) -> float:
        return self.historical.get(mint, 0.0)


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def oracle() -> FakeOracle:
    return FakeOracle(current={MINT_A: 1.10, MINT_B: 1.90}, historical={MINT_A: 1.0, MINT_B: 2.0})


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def quote(ledger: FakeLedger):
    """Route the bonding-curve quote through ``ledger.quotes``."""
    with patch(
        "core.valuator.get_withdraw_quote",
        side_effect=lambda liquidity, *_: ledger.quotes[liquidity],
    ) as mock_quote:
        yield mock_quote
