"""Solana ledger gateway for DAMM v2 pools and positions.

Wraps an async RPC client and returns decoded value objects.  Every call is a
single network round trip (or a bounded series of them); nothing in here
retries.  The periodic refresh is the retry mechanism.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from solana.rpc.async_api import AsyncClient as SolanaClient
from solana.rpc.commitment import Commitment
from solana.rpc.models import TokenAccountOpts
from solders.pubkey import Pubkey

from core.config import SolanaConfig
from core.errors import LedgerUnavailable, PoolNotFound, PositionNotFound
from core.models import CreationTransaction, PoolState, PositionState, TokenBalance, TokenInfo
from core.network_config import CP_AMM_PROGRAM_ID, METADATA_PROGRAM_ID, TOKEN_2022_PROGRAM_ID
from tools.account_layouts import (
    LayoutError,
    decode_metadata_symbol,
    decode_mint_decimals,
    decode_pool,
    decode_position,
)

logger = logging.getLogger(__name__)

UNKNOWN_SYMBOL = "UNKNOWN"
DEFAULT_DECIMALS = 9

_SIGNATURE_PAGE_SIZE = 1000
_MAX_SIGNATURE_PAGES = 10
_MULTIPLE_ACCOUNTS_BATCH = 100


def _to_pubkey(address: str, not_found: type[Exception]) -> Pubkey:
    try:
        return Pubkey.from_string(address)
    except ValueError as exc:
        raise not_found(f"invalid address {address!r}") from exc


def _token_balances(raw: Iterable[Any] | None) -> tuple[TokenBalance, ...]:
    balances: list[TokenBalance] = []
    for bal in raw or ():
        ui = bal.ui_token_amount
        balances.append(
            TokenBalance(
                account_index=int(bal.account_index),
                mint=str(bal.mint),
                amount=int(ui.amount),
                decimals=int(ui.decimals),
            )
        )
    return tuple(balances)


class LedgerTool:
    """Read-only view of DAMM v2 state over Solana JSON-RPC."""

    def __init__(self, config: SolanaConfig) -> None:
        self._rpc_url = config.rpc_url
        self._client = SolanaClient(
            config.rpc_url,
            commitment=Commitment(config.commitment),
            timeout=config.request_timeout,
        )
        self._token_cache: dict[str, TokenInfo] = {}

    @property
    def rpc_url(self) -> str:
        return self._rpc_url

    async def close(self) -> None:
        await self._client.close()

    # ── accounts ──────────────────────────────────────────────────

    async def _account_data(self, pubkey: Pubkey) -> bytes | None:
        try:
            resp = await self._client.get_account_info(pubkey)
        except Exception as exc:
            raise LedgerUnavailable(f"get_account_info({pubkey}) failed: {exc}") from exc
        account = resp.value
        if account is None or account.owner != CP_AMM_PROGRAM_ID:
            return None
        return bytes(account.data)

    async def fetch_pool_state(self, address: str) -> PoolState:
        """Return the decoded pool at *address* or raise PoolNotFound."""
        data = await self._account_data(_to_pubkey(address, PoolNotFound))
        if data is None:
            raise PoolNotFound(f"pool {address} not found")
        try:
            pool = decode_pool(address, data)
        except LayoutError as exc:
            raise PoolNotFound(f"{address}: {exc}") from exc
        logger.debug("pool %s: sqrt_price=%d liquidity=%d", address, pool.sqrt_price, pool.liquidity)
        return pool

    async def fetch_position_state(self, address: str) -> PositionState:
        """Return the decoded position at *address* or raise PositionNotFound."""
        data = await self._account_data(_to_pubkey(address, PositionNotFound))
        if data is None:
            raise PositionNotFound(f"position {address} not found")
        try:
            return decode_position(address, data)
        except LayoutError as exc:
            raise PositionNotFound(f"{address}: {exc}") from exc

    async def find_position_for_pool(self, pool_address: str, owner: str) -> str:
        """Return the address of *owner*'s position in *pool_address*.

        Positions are represented by Token-2022 NFTs held by the owner; each
        NFT mint maps to a position PDA.  If the owner holds several positions
        in the same pool the one with the most withdrawable liquidity wins.
        """
        owner_pk = _to_pubkey(owner, PositionNotFound)
        try:
            resp = await self._client.get_token_accounts_by_owner_json_parsed(
                owner_pk, TokenAccountOpts(program_id=TOKEN_2022_PROGRAM_ID)
            )
        except Exception as exc:
            raise LedgerUnavailable(f"token account lookup for {owner} failed: {exc}") from exc

        candidates: list[Pubkey] = []
        for keyed in resp.value or []:
            try:
                info = keyed.account.data.parsed["info"]
                amount = info["tokenAmount"]
                if str(amount["amount"]) != "1" or int(amount["decimals"]) != 0:
                    continue
                nft_mint = Pubkey.from_string(info["mint"])
            except (KeyError, TypeError, ValueError, AttributeError):
                continue
            position_pda, _ = Pubkey.find_program_address(
                [b"position", bytes(nft_mint)], CP_AMM_PROGRAM_ID
            )
            candidates.append(position_pda)

        logger.debug("owner %s holds %d position NFT candidates", owner, len(candidates))
        matches: list[PositionState] = []
        for start in range(0, len(candidates), _MULTIPLE_ACCOUNTS_BATCH):
            batch = candidates[start : start + _MULTIPLE_ACCOUNTS_BATCH]
            try:
                accounts = (await self._client.get_multiple_accounts(batch)).value
            except Exception as exc:
                raise LedgerUnavailable(f"position batch fetch failed: {exc}") from exc
            for pda, account in zip(batch, accounts):
                if account is None or account.owner != CP_AMM_PROGRAM_ID:
                    continue
                try:
                    position = decode_position(str(pda), bytes(account.data))
                except LayoutError:
                    continue
                if position.pool == pool_address:
                    matches.append(position)

        if not matches:
            raise PositionNotFound(f"no position for {owner} in pool {pool_address}")
        if len(matches) > 1:
            logger.info(
                "owner %s has %d positions in pool %s; valuing the largest",
                owner,
                len(matches),
                pool_address,
            )
        best = max(matches, key=lambda p: p.withdrawable_liquidity)
        return best.address

    # ── history ───────────────────────────────────────────────────

    async def get_creation_evidence(self, position_address: str) -> CreationTransaction:
        """Return the oldest transaction touching *position_address*.

        Signatures come back newest-first, so the history is paged backwards
        until a short page marks the beginning.
        """
        pubkey = _to_pubkey(position_address, LedgerUnavailable)
        try:
            oldest = None
            before = None
            for _ in range(_MAX_SIGNATURE_PAGES):
                resp = await self._client.get_signatures_for_address(
                    pubkey, before=before, limit=_SIGNATURE_PAGE_SIZE
                )
                page = resp.value or []
                if not page:
                    break
                oldest = page[-1]
                if len(page) < _SIGNATURE_PAGE_SIZE:
                    break
                before = oldest.signature
            else:
                logger.warning(
                    "history of %s exceeds %d signatures; using the oldest one fetched",
                    position_address,
                    _MAX_SIGNATURE_PAGES * _SIGNATURE_PAGE_SIZE,
                )

            if oldest is None:
                raise LedgerUnavailable(f"no transaction history for {position_address}")

            tx_resp = await self._client.get_transaction(
                oldest.signature, encoding="json", max_supported_transaction_version=0
            )
        except LedgerUnavailable:
            raise
        except Exception as exc:
            raise LedgerUnavailable(f"history fetch for {position_address} failed: {exc}") from exc

        tx = tx_resp.value
        meta = tx.transaction.meta if tx is not None else None
        if meta is None:
            raise LedgerUnavailable(f"creation transaction {oldest.signature} has no metadata")

        block_time = tx.block_time if tx.block_time is not None else oldest.block_time
        logger.debug("creation tx for %s: %s (block_time=%s)", position_address, oldest.signature, block_time)
        return CreationTransaction(
            signature=str(oldest.signature),
            block_time=block_time,
            pre_token_balances=_token_balances(meta.pre_token_balances),
            post_token_balances=_token_balances(meta.post_token_balances),
        )

    # ── tokens ────────────────────────────────────────────────────

    async def get_token_info(self, mint: str) -> TokenInfo:
        """Return symbol and decimals for *mint*.  Never raises.

        Falls back to UNKNOWN / 9 decimals when the mint cannot be read; only
        successfully decoded mints are cached.
        """
        cached = self._token_cache.get(mint)
        if cached is not None:
            return cached

        try:
            mint_pk = Pubkey.from_string(mint)
            metadata_pda, _ = Pubkey.find_program_address(
                [b"metadata", bytes(METADATA_PROGRAM_ID), bytes(mint_pk)], METADATA_PROGRAM_ID
            )
            mint_account, metadata_account = (
                await self._client.get_multiple_accounts([mint_pk, metadata_pda])
            ).value
            if mint_account is None:
                raise LayoutError("mint account missing")
            decimals = decode_mint_decimals(bytes(mint_account.data))
        except Exception as exc:
            logger.warning("using fallback token info for %s: %s", mint, exc)
            return TokenInfo(mint_address=mint, symbol=UNKNOWN_SYMBOL, decimals=DEFAULT_DECIMALS)

        symbol = UNKNOWN_SYMBOL
        if metadata_account is not None:
            try:
                symbol = decode_metadata_symbol(bytes(metadata_account.data))
            except LayoutError as exc:
                logger.info("no readable metadata for %s: %s", mint, exc)

        info = TokenInfo(mint_address=mint, symbol=symbol, decimals=decimals)
        self._token_cache[mint] = info
        return info

    # ── health ────────────────────────────────────────────────────

    async def get_slot(self) -> int:
        resp = await self._client.get_slot()
        return int(resp.value)

    async def health(self) -> dict[str, Any]:
        """Return a connection health snapshot.  Never raises."""
        status: dict[str, Any] = {
            "initialized": True,
            "rpc_url": self._rpc_url,
            "connection_health": "unknown",
            "last_slot": None,
        }
        try:
            status["last_slot"] = await self.get_slot()
            status["connection_health"] = "healthy"
        except Exception as exc:
            logger.error("RPC health check failed: %s", exc)
            status["connection_health"] = "unhealthy"
        return status
