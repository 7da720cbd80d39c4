"""Load and validate application configuration from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from urllib.parse import urlparse

from dotenv import load_dotenv

from core.network_config import PUBLIC_MAINNET_RPC_HOST
from tools.token_utils import validate_address

load_dotenv()

_RPC_SCHEMES = ("http", "https", "ws", "wss")


@dataclass(frozen=True)
class SolanaConfig:
    rpc_url: str
    wallet_address: str  # owner of the tracked position NFTs
    commitment: str = "confirmed"
    request_timeout: float = 20.0


@dataclass(frozen=True)
class PriceConfig:
    jupiter_api_key: str | None = None  # keyed host when set, lite host otherwise
    coingecko_demo_api_key: str | None = None
    request_timeout: float = 10.0
    # Historical lookups search at ± this many seconds around the block time.
    historical_window_s: int = 3600


@dataclass(frozen=True)
class RefreshConfig:
    interval_s: float = 60.0
    max_concurrency: int = 8
    stale_threshold_s: float = 300.0


@dataclass(frozen=True)
class AppConfig:
    solana: SolanaConfig
    prices: PriceConfig
    refresh: RefreshConfig
    pool_addresses: tuple[str, ...] = ()


def _getenv(name: str, default: str | None = None) -> str | None:
    """os.getenv wrapper that strips inline comments (e.g. '60  # note' → '60')."""
    raw = os.getenv(name, default)
    if raw is None:
        return None
    # Split on first ' #' (space-hash) to drop inline comments, then strip
    return raw.split(" #")[0].strip()


def _require(name: str) -> str:
    value = _getenv(name)
    if not value:
        raise EnvironmentError(f"Required environment variable {name} is not set")
    return value


def _getlist(name: str) -> tuple[str, ...]:
    raw = _getenv(name, "") or ""
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def validate_rpc_url(rpc_url: str) -> None:
    """Raise EnvironmentError unless *rpc_url* is a usable dedicated endpoint."""
    parsed = urlparse(rpc_url)
    if parsed.scheme not in _RPC_SCHEMES or not parsed.netloc:
        raise EnvironmentError(f"SOLANA_RPC_URL is not a valid URL: {rpc_url!r}")
    if PUBLIC_MAINNET_RPC_HOST in parsed.netloc.lower():
        raise EnvironmentError(
            "SOLANA_RPC_URL points at the public mainnet endpoint; "
            "configure a dedicated RPC endpoint instead"
        )


def _validate_addresses(name: str, addresses: tuple[str, ...]) -> None:
    bad = [a for a in addresses if not validate_address(a)]
    if bad:
        raise EnvironmentError(f"{name} contains invalid addresses: {', '.join(bad)}")


def load_config() -> AppConfig:
    """Build AppConfig from environment. Raises EnvironmentError on missing or bad keys."""
    rpc_url = _require("SOLANA_RPC_URL")
    validate_rpc_url(rpc_url)
    wallet = _require("WALLET_ADDRESS")
    _validate_addresses("WALLET_ADDRESS", (wallet,))
    pools = _getlist("DAMM_POOL_ADDRESSES")
    _validate_addresses("DAMM_POOL_ADDRESSES", pools)

    return AppConfig(
        solana=SolanaConfig(
            rpc_url=rpc_url,
            wallet_address=wallet,
            commitment=_getenv("SOLANA_COMMITMENT", "confirmed"),  # type: ignore[arg-type]
            request_timeout=float(_getenv("RPC_TIMEOUT_SECONDS", "20")),  # type: ignore[arg-type]
        ),
        prices=PriceConfig(
            jupiter_api_key=_getenv("JUPITER_API_KEY") or None,
            coingecko_demo_api_key=_getenv("COINGECKO_DEMO_API_KEY") or None,
            request_timeout=float(_getenv("PRICE_TIMEOUT_SECONDS", "10")),  # type: ignore[arg-type]
        ),
        refresh=RefreshConfig(
            interval_s=float(_getenv("REFRESH_INTERVAL_SECONDS", "60")),  # type: ignore[arg-type]
            max_concurrency=int(_getenv("MAX_CONCURRENCY", "8")),  # type: ignore[arg-type]
            stale_threshold_s=float(_getenv("STALE_THRESHOLD_SECONDS", "300")),  # type: ignore[arg-type]
        ),
        pool_addresses=pools,
    )
