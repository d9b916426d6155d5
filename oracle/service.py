from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional

from .config import OracleSettings, load_config
from .entropy import EntropySource, HttpBeaconSource, HttpBeaconSourceConfig, SystemEntropySource
from .raffle_client import RaffleApiClient
from .scheduler import KeeperResult, KeeperScheduler


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )


def build_entropy(settings: OracleSettings) -> EntropySource:
    entropy_settings = settings.entropy
    if entropy_settings.source == "system":
        return SystemEntropySource()
    if entropy_settings.source == "http":
        if not entropy_settings.url:
            raise RuntimeError("ENTROPY__URL is not configured.")
        return HttpBeaconSource(
            HttpBeaconSourceConfig(
                url=entropy_settings.url,
                randomness_key=entropy_settings.randomness_key,
                round_key=entropy_settings.round_key,
                timeout_seconds=entropy_settings.timeout_seconds,
            )
        )
    raise RuntimeError(f"Unknown ENTROPY__SOURCE: {entropy_settings.source}")


async def run(args: argparse.Namespace) -> Optional[KeeperResult]:
    settings = load_config(args.env_file)
    configure_logging(args.verbose)
    logger = logging.getLogger("raffle.oracle")

    entropy = build_entropy(settings)
    client = RaffleApiClient(settings)
    scheduler = KeeperScheduler(settings, entropy, client, logger=logger)

    try:
        if args.replay is not None:
            scheduler.replay(args.replay)

        if args.once or settings.run_once:
            result = await scheduler.run_once()
            logger.info(
                "Keeper pass done: upkeep=%s fulfilled=%s",
                result.upkeep_request_id,
                [f.request_id for f in result.fulfillments],
            )
            return result

        await scheduler.run_forever()
        return None
    finally:
        client.close()


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Raffle keeper and randomness oracle")
    parser.add_argument("--env-file", type=str, default=None, help="Path to .env file with credentials")
    parser.add_argument("--once", action="store_true", help="Run a single pass and exit.")
    parser.add_argument(
        "--replay",
        type=int,
        default=None,
        metavar="REQUEST_ID",
        help="Retry a request whose payout failed before starting.",
    )
    parser.add_argument(
        "--verbose", action="store_true", help="Enable debug logging (default INFO)."
    )
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> None:
    args = parse_args(argv)
    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        print("Keeper stopped by user.")


if __name__ == "__main__":
    main()
