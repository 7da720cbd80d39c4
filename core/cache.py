"""In-process caches owned by the PnL engine.  Nothing here touches disk."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from core.models import STALE_THRESHOLD, CostBasis, PositionValuation, is_older_than

# (cache generation, pool generation) captured before a slow ledger round trip.
WriteToken = tuple[int, int]


@dataclass(frozen=True)
class CachedCostBasis:
    cost_basis: CostBasis
    resolved_at: datetime

    def is_stale(self, now: datetime, threshold: timedelta = STALE_THRESHOLD) -> bool:
        return is_older_than(self.resolved_at, now, threshold)


class PnLCache:
    """pool address → cost basis, valuation and resolved position address.

    Readers get copies of the mappings, never a reference into live state.
    Stored values are frozen dataclasses, so a shallow copy is enough.

    Writers that await the ledger between reading and writing pass the
    ``token()`` they took up front; a ``clear()`` or ``discard()`` in the
    meantime invalidates it and the write is dropped.
    """

    def __init__(self) -> None:
        self._cost_basis: dict[str, CachedCostBasis] = {}
        self._valuations: dict[str, PositionValuation] = {}
        self._positions: dict[str, str] = {}
        self._generation = 0
        self._pool_generations: dict[str, int] = {}

    def token(self, pool_address: str) -> WriteToken:
        return self._generation, self._pool_generations.get(pool_address, 0)

    def _accepts(self, pool_address: str, token: WriteToken | None) -> bool:
        return token is None or token == self.token(pool_address)

    # ── cost basis ────────────────────────────────────────────────

    def get_cost_basis(self, pool_address: str) -> CachedCostBasis | None:
        return self._cost_basis.get(pool_address)

    def put_cost_basis(
        self,
        pool_address: str,
        cost_basis: CostBasis,
        resolved_at: datetime,
        token: WriteToken | None = None,
    ) -> bool:
        if not self._accepts(pool_address, token):
            return False
        self._cost_basis[pool_address] = CachedCostBasis(cost_basis, resolved_at)
        return True

    # ── valuations ────────────────────────────────────────────────

    def get_valuation(self, pool_address: str) -> PositionValuation | None:
        return self._valuations.get(pool_address)

    def put_valuation(
        self, pool_address: str, valuation: PositionValuation, token: WriteToken | None = None
    ) -> bool:
        if not self._accepts(pool_address, token):
            return False
        self._valuations[pool_address] = valuation
        return True

    def valuations(self) -> dict[str, PositionValuation]:
        return dict(self._valuations)

    # ── position addresses ────────────────────────────────────────

    def get_position_address(self, pool_address: str) -> str | None:
        return self._positions.get(pool_address)

    def put_position_address(
        self, pool_address: str, position_address: str, token: WriteToken | None = None
    ) -> bool:
        if not self._accepts(pool_address, token):
            return False
        self._positions[pool_address] = position_address
        return True

    # ── maintenance ───────────────────────────────────────────────

    def discard(self, pool_address: str) -> None:
        self._cost_basis.pop(pool_address, None)
        self._valuations.pop(pool_address, None)
        self._positions.pop(pool_address, None)
        self._pool_generations[pool_address] = self._pool_generations.get(pool_address, 0) + 1

    def clear(self) -> None:
        self._cost_basis.clear()
        self._valuations.clear()
        self._positions.clear()
        self._generation += 1
