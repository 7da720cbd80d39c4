"""Entry point: load config → probe RPC → track pools → refresh (once or forever)."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from tenacity import retry, stop_after_attempt, wait_exponential

from core.aggregator import format_summary
from core.config import AppConfig, load_config
from core.engine import PnLEngine
from core.models import PortfolioUpdated
from core.network_config import NetworkDetector, NetworkType
from tools.ledger_tool import LedgerTool
from tools.price_tool import PriceTool

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
    stream=sys.stdout,
)

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="DAMM v2 position PnL tracker")
    parser.add_argument(
        "--once",
        action="store_true",
        help="run a single refresh, print the summary and exit",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="refresh period in seconds (overrides REFRESH_INTERVAL_SECONDS)",
    )
    parser.add_argument(
        "--pool",
        action="append",
        default=[],
        metavar="ADDRESS",
        help="extra pool address to track (repeatable)",
    )
    return parser.parse_args(argv)


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)
async def probe_rpc(ledger: LedgerTool) -> int:
    slot = await ledger.get_slot()
    logger.info("RPC reachable at slot %d", slot)
    return slot


def log_portfolio(event: PortfolioUpdated) -> None:
    logger.info(
        "%d position(s) at %s\n%s",
        event.position_count,
        event.timestamp.isoformat(),
        format_summary(event.summary),
    )


async def run(config: AppConfig, args: argparse.Namespace) -> int:
    ledger = LedgerTool(config.solana)
    oracle = PriceTool(config.prices)
    engine = PnLEngine(ledger, oracle, config.solana.wallet_address, refresh=config.refresh)
    try:
        try:
            await probe_rpc(ledger)
        except Exception as exc:
            logger.error("RPC endpoint %s unreachable: %s", ledger.rpc_url, exc)
            return 1

        if NetworkDetector.detect(ledger.rpc_url) is NetworkType.DEVNET:
            logger.warning("devnet RPC detected; USD figures use mainnet prices")

        try:
            for pool in (*config.pool_addresses, *args.pool):
                engine.track(pool)
        except ValueError as exc:
            logger.error("%s", exc)
            return 1
        if not engine.tracked_pools():
            logger.warning("no pools to track; set DAMM_POOL_ADDRESSES or pass --pool")
            return 1

        engine.subscribe(log_portfolio)

        if args.once:
            summary = await engine.refresh_all()
            print(format_summary(summary))
            return 0

        engine.start(args.interval)
        try:
            await engine.wait_stopped()
        except asyncio.CancelledError:
            engine.stop()
            raise
        return 0
    finally:
        await oracle.aclose()
        await ledger.close()


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    try:
        config = load_config()
    except EnvironmentError as exc:
        logger.error("configuration error: %s", exc)
        sys.exit(1)

    logger.info("config loaded: rpc=%s wallet=%s", config.solana.rpc_url, config.solana.wallet_address)
    try:
        code = asyncio.run(run(config, args))
    except KeyboardInterrupt:
        logger.info("interrupted, shutting down")
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    main()
