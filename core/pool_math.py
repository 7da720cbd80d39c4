"""Constant-product curve helpers for DAMM v2 positions.

Square-root prices are Q64.64 fixed point; liquidity carries a further 2^64
scale, so token B amounts shift right by 128 bits.  All math is done on Python
ints, rounding down, matching what a withdrawal would actually pay out.
"""

from __future__ import annotations

_RESOLUTION = 64


def amount_a_from_liquidity(liquidity: int, sqrt_price: int, sqrt_max_price: int) -> int:
    """Δa = L * (√P_max - √P) / (√P * √P_max)"""
    if liquidity <= 0 or sqrt_price <= 0 or sqrt_price >= sqrt_max_price:
        return 0
    numerator = liquidity * (sqrt_max_price - sqrt_price)
    denominator = sqrt_price * sqrt_max_price
    return numerator // denominator


def amount_b_from_liquidity(liquidity: int, sqrt_price: int, sqrt_min_price: int) -> int:
    """Δb = L * (√P - √P_min) >> 128"""
    if liquidity <= 0 or sqrt_price <= sqrt_min_price:
        return 0
    return (liquidity * (sqrt_price - sqrt_min_price)) >> (_RESOLUTION * 2)


def get_withdraw_quote(
    liquidity: int,
    sqrt_price: int,
    sqrt_min_price: int,
    sqrt_max_price: int,
) -> tuple[int, int]:
    """Return raw (amount_a, amount_b) paid out for removing *liquidity*.

    The current price is clamped into [min, max] first: a pool sitting on a
    bound holds the whole position in a single token.
    """
    price = min(max(sqrt_price, sqrt_min_price), sqrt_max_price)
    return (
        amount_a_from_liquidity(liquidity, price, sqrt_max_price),
        amount_b_from_liquidity(liquidity, price, sqrt_min_price),
    )

