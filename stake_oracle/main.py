#!/usr/bin/env python3
"""Stake Oracle.

Aggregates peer price submissions into a stake-weighted consensus price,
rejecting Sybil identities and statistical outliers and slashing repeat
offenders.

Reads a round of submissions from a JSON file; see demo/ for an example.
"""

import argparse
import asyncio
import json
import logging
import os
import sqlite3
import sys

from .src.ConsensusConfig import ConsensusConfig
from .src.ConsensusOrchestrator import ConsensusError, ConsensusResult
from .src.fetchers import FetcherError, get_available_fetchers, get_fetcher
from .src.OracleAggregator import OracleAggregator
from .src.ReputationStore import SQLiteReputationStore
from .src.StakeDiscovery import DEFAULT_REPUTATION_TOKEN, PriceObservation

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def load_observations(path: str) -> list[PriceObservation]:
    """Load a round of submissions from a JSON file.

    Format: [{"peerId": "peer_1", "price": 64200}, ...]

    :param path: Path to the JSON file.
    :returns: List of observations in file order.
    :raises ValueError: If the file is not a list of valid submissions.
    """
    with open(path, "r") as file:
        data = json.load(file)

    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a JSON list of submissions")

    return [PriceObservation.from_dict(item) for item in data]


def log_result(result: ConsensusResult) -> None:
    """Log a consensus result block."""
    logger.info("=" * 60)
    logger.info("Consensus Reached")
    logger.info("=" * 60)
    logger.info(f"Final Price:       {result.final_price}")
    logger.info(f"Participants:      {result.participants}")
    logger.info(f"Total Weight:      {result.total_weight:.2f}")
    logger.info(f"Median / StdDev:   {result.median} / {result.std_dev:.2f}")
    if result.outliers:
        logger.info(f"Outliers:          {result.outliers}")
    if result.rejected:
        logger.info(f"Rejected:          {result.rejected}")
    logger.info("=" * 60)


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser."""
    available_sources = get_available_fetchers()

    parser = argparse.ArgumentParser(
        description="Stake Oracle: Reputation-weighted price consensus",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Available balance sources:
  {', '.join(available_sources)}

Examples:
  # Run a round with balances from a local table
  python -m stake_oracle.main round --submissions demo/submissions.json \\
      --source static --endpoint demo/balances.json

  # Resolve balances from a token indexer
  python -m stake_oracle.main round --submissions round.json \\
      --source indexer --endpoint https://api.tap.trac.network --token TRAC

  # Inspect peer reputation
  python -m stake_oracle.main reputation peer_malicious
  python -m stake_oracle.main reputation --all

Environment variables (CLI args take precedence):
  REPUTATION_DB_PATH, MINIMUM_STAKE_THRESHOLD, SLASHING_THRESHOLD,
  OUTLIER_Z_SCORE_LIMIT, BALANCE_TIMEOUT, BALANCE_SOURCE, BALANCE_ENDPOINT,
  BALANCE_API_KEY, REPUTATION_TOKEN
""",
    )

    parser.add_argument(
        "--db",
        type=str,
        help="Reputation database path, ':memory:' for ephemeral (default: peer_reputation.db)",
        default=os.environ.get("REPUTATION_DB_PATH") or "peer_reputation.db",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    round_parser = subparsers.add_parser("round", help="Run one consensus round")

    round_parser.add_argument(
        "--submissions",
        type=str,
        required=True,
        help="JSON file with a list of {peerId, price} submissions",
    )

    round_parser.add_argument(
        "--source",
        type=str,
        help=f"Balance source. Available: {', '.join(available_sources)}",
        default=os.environ.get("BALANCE_SOURCE") or "static",
    )

    round_parser.add_argument(
        "--endpoint",
        type=str,
        help="Balance source location (file path, indexer URL or RPC URL)",
        default=os.environ.get("BALANCE_ENDPOINT"),
    )

    round_parser.add_argument(
        "--api-key",
        dest="api_key",
        type=str,
        help="API key for the balance source",
        default=os.environ.get("BALANCE_API_KEY"),
    )

    round_parser.add_argument(
        "--token",
        type=str,
        help=f"Reputation token ticker or contract address (default: {DEFAULT_REPUTATION_TOKEN})",
        default=os.environ.get("REPUTATION_TOKEN") or DEFAULT_REPUTATION_TOKEN,
    )

    round_parser.add_argument(
        "--min-stake",
        dest="min_stake",
        type=float,
        help="Minimum balance required to participate (default: 100)",
        default=float(os.environ.get("MINIMUM_STAKE_THRESHOLD") or "100"),
    )

    round_parser.add_argument(
        "--slashing-threshold",
        dest="slashing_threshold",
        type=int,
        help="Offenses before a peer is blacklisted (default: 3)",
        default=int(os.environ.get("SLASHING_THRESHOLD") or "3"),
    )

    round_parser.add_argument(
        "--z-limit",
        dest="z_limit",
        type=float,
        help="Z-score above which a price is an outlier (default: 2.0)",
        default=float(os.environ.get("OUTLIER_Z_SCORE_LIMIT") or "2.0"),
    )

    round_parser.add_argument(
        "--balance-timeout",
        dest="balance_timeout",
        type=float,
        help="Seconds allowed for each balance lookup (default: 2.0)",
        default=float(os.environ.get("BALANCE_TIMEOUT") or "2.0"),
    )

    reputation_parser = subparsers.add_parser(
        "reputation", help="Show peer reputation status"
    )
    reputation_parser.add_argument("peers", nargs="*", help="Peer ids to query")
    reputation_parser.add_argument(
        "--all",
        action="store_true",
        help="List every stored reputation record",
    )

    return parser


async def run_round(args: argparse.Namespace, config: ConsensusConfig) -> int:
    """Run one round and log the outcome.

    :returns: Process exit code.
    """
    observations = load_observations(args.submissions)
    store = SQLiteReputationStore(args.db)
    try:
        fetcher = get_fetcher(
            args.source,
            endpoint=args.endpoint,
            api_key=args.api_key,
            timeout=config.balance_timeout,
        )
    except FetcherError:
        store.close()
        raise
    aggregator = OracleAggregator(store, fetcher, config=config, token=args.token)

    try:
        logger.info(f"Resolving balances for {len(observations)} submissions...")
        result = await aggregator.run_round(observations)
    except ConsensusError as e:
        logger.error(f"Consensus failed: {e} {e.metadata}")
        return 1
    finally:
        await aggregator.close()

    log_result(result)
    return 0


def show_reputation(args: argparse.Namespace) -> int:
    """Log the reputation of the requested peers.

    :returns: Process exit code.
    """
    with SQLiteReputationStore(args.db) as store:
        records = store.records() if args.all else [store.get(p) for p in args.peers]

    for record in records:
        status = "BLACKLISTED" if record.blacklisted else "active"
        logger.info(f"{record.peer_id}: offenses={record.offense_count} ({status})")
    if not records:
        logger.info("No reputation records")
    return 0


def main() -> None:
    """Main entry point for the Stake Oracle CLI."""
    parser = build_parser()
    args = parser.parse_args()

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.command == "reputation":
        if not args.peers and not args.all:
            parser.error("Specify peer ids or --all")
        try:
            sys.exit(show_reputation(args))
        except sqlite3.Error as e:
            logger.error(f"Fatal error: {e}")
            sys.exit(1)

    # Validate arguments
    if args.source not in get_available_fetchers():
        parser.error(
            f"Unknown source: {args.source}. "
            f"Available: {', '.join(get_available_fetchers())}"
        )

    try:
        config = ConsensusConfig(
            minimum_stake_threshold=args.min_stake,
            slashing_threshold=args.slashing_threshold,
            outlier_z_score_limit=args.z_limit,
            balance_timeout=args.balance_timeout,
        )
    except ValueError as e:
        parser.error(str(e))

    # Log configuration
    logger.info("=" * 60)
    logger.info("Stake Oracle - Reputation-Weighted Consensus")
    logger.info("=" * 60)
    logger.info(f"Reputation DB:     {args.db}")
    logger.info(f"Balance Source:    {args.source}")
    logger.info(f"Token:             {args.token}")
    logger.info(f"Min Stake:         {config.minimum_stake_threshold}")
    logger.info(f"Slashing After:    {config.slashing_threshold} offenses")
    logger.info(f"Outlier Z Limit:   {config.outlier_z_score_limit}")
    logger.info(f"Balance Timeout:   {config.balance_timeout}s")
    logger.info("=" * 60)

    try:
        sys.exit(asyncio.run(run_round(args, config)))
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except (OSError, ValueError, FetcherError, sqlite3.Error) as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
