"""Exception taxonomy shared by the ledger gateway, price feeds and PnL engine."""

from __future__ import annotations


class PnLError(Exception):
    """Base class for every error raised by the valuation engine."""


class NotFound(PnLError):
    """Account is absent on the ledger (the position may have been closed)."""


class PoolNotFound(NotFound):
    """Pool account missing, owned by another program, or not a pool."""


class PositionNotFound(NotFound):
    """No position for the tracked pool could be found on the ledger."""


class LedgerUnavailable(PnLError):
    """The RPC node could not be reached or returned an unusable response."""


class CostBasisUnavailable(PnLError):
    """The position's creation transaction is missing or could not be parsed."""


class FeedUnavailable(PnLError):
    """A price feed failed; callers degrade to a zero price."""


class PositionNotTracked(PnLError):
    """Caller asked for a pool the engine was never told to track."""
