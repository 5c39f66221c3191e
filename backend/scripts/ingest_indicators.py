import argparse

from loguru import logger

from seedbank.core.errors import SeedbankError
from seedbank.db import init_db
from ingestion.client import IndicatorFeedClient
from ingestion.service import ingest_indicator_snapshots


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Ingest indicator snapshots for decisions")
    parser.add_argument(
        "decision_ids",
        nargs="+",
        metavar="DECISION_ID",
        help="Decision identifiers whose indicator snapshots should be pulled",
    )
    parser.add_argument(
        "--since",
        default=None,
        help="Only request snapshots observed after this ISO-8601 timestamp",
    )
    parser.add_argument("--base-url", default=None, help="Override the indicator feed base URL")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    init_db()

    total = 0
    with IndicatorFeedClient(base_url=args.base_url) as client:
        for decision_id in args.decision_ids:
            try:
                summary = ingest_indicator_snapshots(decision_id, client=client, since=args.since)
            except SeedbankError as exc:
                logger.warning("Skipping decision {}: {}", decision_id, exc)
                continue
            total += summary.snapshots

    logger.info("Ingested {} snapshots for {} decisions", total, len(args.decision_ids))


if __name__ == "__main__":
    main()
