"""
token_utils.py - Address and amount helpers shared by the ledger tool and engine.
"""

from __future__ import annotations

from solders.pubkey import Pubkey


def validate_address(address: str) -> bool:
    """Return True if *address* is a valid base58-encoded public key."""
    try:
        Pubkey.from_string(address)
        return True
    except (ValueError, TypeError):
        return False


def to_ui_amount(raw: int, decimals: int) -> float:
    """Scale a raw integer token amount down by its mint decimals."""
    if decimals <= 0:
        return float(raw)
    return raw / (10**decimals)
