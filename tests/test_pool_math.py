"""Tests for core/pool_math.py."""

from __future__ import annotations

from core.pool_math import amount_a_from_liquidity, amount_b_from_liquidity, get_withdraw_quote

Q64 = 2**64


class TestAmounts:
    def test_price_one_full_range(self) -> None:
        # √P = 1 inside a sqrt range of [1/2, 2]
        liquidity = 1000 * Q64
        sqrt_p = Q64
        assert amount_a_from_liquidity(liquidity, sqrt_p, 2 * Q64) == 500
        assert amount_b_from_liquidity(liquidity, sqrt_p, Q64 // 2) == 500

    def test_zero_liquidity(self) -> None:
        assert get_withdraw_quote(0, Q64, Q64 // 2, 2 * Q64) == (0, 0)

    def test_rounds_down(self) -> None:
        assert amount_b_from_liquidity(3, Q64 * 2, Q64) == 0


class TestWithdrawQuote:
    def test_price_below_range_is_all_token_a(self) -> None:
        liquidity = 10 * Q64 * Q64
        a, b = get_withdraw_quote(liquidity, Q64 // 4, Q64 // 2, 2 * Q64)
        assert b == 0
        assert a == amount_a_from_liquidity(liquidity, Q64 // 2, 2 * Q64)

    def test_price_above_range_is_all_token_b(self) -> None:
        liquidity = 10 * Q64 * Q64
        a, b = get_withdraw_quote(liquidity, 4 * Q64, Q64 // 2, 2 * Q64)
        assert a == 0
        assert b == amount_b_from_liquidity(liquidity, 2 * Q64, Q64 // 2)

    def test_in_range_has_both(self) -> None:
        a, b = get_withdraw_quote(10 * Q64 * Q64, Q64, Q64 // 2, 2 * Q64)
        assert a > 0 and b > 0
