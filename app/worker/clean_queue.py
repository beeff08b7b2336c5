"""Drain the download queue and mark every in-flight migration as cancelled."""

import argparse
import sys
from logging import getLogger

from app.core.config import settings
from app.core.logging import configure_logging
from app.worker.runtime import build_queue_control

logger = getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Cancel all pending and running course migrations.")
    parser.add_argument("--queue", default=settings.download_queue, help="Celery queue to clean")
    args = parser.parse_args(argv)

    configure_logging(settings)
    control = build_queue_control(settings)
    control.queue_name = args.queue

    logger.info("Cleaning queue %s on %s", args.queue, settings.broker_url)
    try:
        result = control.cancel_all()
    except Exception:
        logger.exception("Queue cleanup failed")
        return 1

    logger.info("Queue cleaned: %s", result.to_dict())
    return 0


if __name__ == "__main__":
    sys.exit(main())
