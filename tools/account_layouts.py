"""Byte-level decoders for the on-chain accounts the ledger tool reads.

Only the fields the valuation engine needs are decoded.  Offsets include the
8-byte Anchor discriminator at the start of DAMM v2 accounts.
"""

from __future__ import annotations

import hashlib
import struct

from solders.pubkey import Pubkey

from core.models import PoolState, PositionState

# ── DAMM v2 pool ──────────────────────────────────────────────────────────────
# discriminator(8) + PoolFeesStruct(160) → token mints, vaults, partner, ...
_POOL_TOKEN_A_MINT = 168
_POOL_TOKEN_B_MINT = 200
_POOL_LIQUIDITY = 360
_POOL_SQRT_MIN_PRICE = 424
_POOL_SQRT_MAX_PRICE = 440
_POOL_SQRT_PRICE = 456
POOL_MIN_SIZE = 472

# ── DAMM v2 position ──────────────────────────────────────────────────────────
_POSITION_POOL = 8
_POSITION_NFT_MINT = 40
_POSITION_FEE_A_PENDING = 136
_POSITION_FEE_B_PENDING = 144
_POSITION_UNLOCKED_LIQUIDITY = 152
_POSITION_VESTED_LIQUIDITY = 168
_POSITION_PERMANENT_LOCKED_LIQUIDITY = 184
POSITION_MIN_SIZE = 200

# ── SPL mint / Metaplex metadata ──────────────────────────────────────────────
_MINT_DECIMALS = 44
MINT_MIN_SIZE = 82
_METADATA_NAME = 1 + 32 + 32  # key + update authority + mint


class LayoutError(ValueError):
    """Account data does not match the expected layout."""


def account_discriminator(name: str) -> bytes:
    """Anchor discriminator: first 8 bytes of sha256('account:<Name>')."""
    return hashlib.sha256(f"account:{name}".encode()).digest()[:8]


POOL_DISCRIMINATOR = account_discriminator("Pool")
POSITION_DISCRIMINATOR = account_discriminator("Position")


def _pubkey(data: bytes, offset: int) -> str:
    return str(Pubkey.from_bytes(data[offset : offset + 32]))


def _u64(data: bytes, offset: int) -> int:
    return struct.unpack_from("<Q", data, offset)[0]


def _u128(data: bytes, offset: int) -> int:
    return int.from_bytes(data[offset : offset + 16], "little")


def _check(data: bytes, discriminator: bytes, min_size: int, kind: str) -> None:
    if len(data) < min_size:
        raise LayoutError(f"{kind} account too short: {len(data)} < {min_size} bytes")
    if data[:8] != discriminator:
        raise LayoutError(f"account is not a {kind}")


def decode_pool(address: str, data: bytes) -> PoolState:
    _check(data, POOL_DISCRIMINATOR, POOL_MIN_SIZE, "pool")
    return PoolState(
        address=address,
        token_a_mint=_pubkey(data, _POOL_TOKEN_A_MINT),
        token_b_mint=_pubkey(data, _POOL_TOKEN_B_MINT),
        liquidity=_u128(data, _POOL_LIQUIDITY),
        sqrt_min_price=_u128(data, _POOL_SQRT_MIN_PRICE),
        sqrt_max_price=_u128(data, _POOL_SQRT_MAX_PRICE),
        sqrt_price=_u128(data, _POOL_SQRT_PRICE),
    )


def decode_position(address: str, data: bytes) -> PositionState:
    _check(data, POSITION_DISCRIMINATOR, POSITION_MIN_SIZE, "position")
    return PositionState(
        address=address,
        pool=_pubkey(data, _POSITION_POOL),
        nft_mint=_pubkey(data, _POSITION_NFT_MINT),
        fee_a_pending=_u64(data, _POSITION_FEE_A_PENDING),
        fee_b_pending=_u64(data, _POSITION_FEE_B_PENDING),
        unlocked_liquidity=_u128(data, _POSITION_UNLOCKED_LIQUIDITY),
        vested_liquidity=_u128(data, _POSITION_VESTED_LIQUIDITY),
        permanent_locked_liquidity=_u128(data, _POSITION_PERMANENT_LOCKED_LIQUIDITY),
    )


def decode_mint_decimals(data: bytes) -> int:
    if len(data) < MINT_MIN_SIZE:
        raise LayoutError(f"mint account too short: {len(data)} bytes")
    return data[_MINT_DECIMALS]


def decode_metadata_symbol(data: bytes) -> str:
    """Read the symbol string from a Metaplex metadata account.

    Name and symbol are Borsh strings (u32 length + bytes) padded with NULs.
    """
    try:
        offset = _METADATA_NAME
        (name_len,) = struct.unpack_from("<I", data, offset)
        offset += 4 + name_len
        (symbol_len,) = struct.unpack_from("<I", data, offset)
        offset += 4
        raw = data[offset : offset + symbol_len]
    except struct.error as exc:
        raise LayoutError(f"metadata account truncated: {exc}") from exc
    if len(raw) < symbol_len:
        raise LayoutError("metadata symbol truncated")
    symbol = raw.decode("utf-8", errors="ignore").rstrip("\x00").strip()
    if not symbol:
        raise LayoutError("metadata symbol is empty")
    return symbol
