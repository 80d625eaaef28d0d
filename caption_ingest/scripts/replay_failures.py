from __future__ import annotations

import argparse
import time

from caption_ingest.config import settings
from caption_ingest.ingestion import replay_failed_deliveries
from caption_ingest.logging_utils import configure_logging, get_logger


def main() -> None:
    configure_logging(settings.log_level)
    logger = get_logger(__name__)
    parser = argparse.ArgumentParser(
        description="Re-persist webhook deliveries that were acknowledged but not stored."
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=50,
        help="Maximum ledger rows to replay per pass.",
    )
    parser.add_argument(
        "--watch",
        action="store_true",
        help="Keep polling the ledger instead of exiting after one pass.",
    )
    parser.add_argument(
        "--poll-seconds",
        type=int,
        default=30,
        help="Polling interval in seconds when using --watch.",
    )
    args = parser.parse_args()

    if args.limit <= 0:
        raise SystemExit("--limit must be > 0")
    if args.poll_seconds <= 0:
        raise SystemExit("--poll-seconds must be > 0")

    while True:
        try:
            summary = replay_failed_deliveries(limit=args.limit)
            logger.info(
                "replay_failures.pass scanned=%s replayed=%s failed=%s",
                summary["scanned"],
                summary["replayed"],
                summary["failed"],
            )
        except Exception as exc:  # pragma: no cover - runtime hardening for service loop
            logger.exception("replay_failures.pass_failed error=%s", str(exc))
            if not args.watch:
                raise
        if not args.watch:
            return
        time.sleep(args.poll_seconds)


if __name__ == "__main__":
    main()
