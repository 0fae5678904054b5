"""
Rebuild catchment to grid-cell associations.

Run after seeding the grid catalog, or to repair associations left
stale by failed re-indexes. Each catchment is re-indexed in its own
transaction; failures are reported and do not stop the run.

Usage:
    python -m scripts.reindex_catchments

    python -m scripts.reindex_catchments --catchment-id c1 --catchment-id c2
"""

import argparse
import sys
import time

import structlog

from core.catchment_repository import CatchmentRepository

logger = structlog.get_logger(__name__)


def main(
    argv: list[str] | None = None, repository: CatchmentRepository | None = None
) -> int:
    parser = argparse.ArgumentParser(
        description="Re-index catchments against the grid catalog",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--catchment-id",
        action="append",
        dest="catchment_ids",
        default=None,
        help="Catchment to re-index (repeatable; default: all)",
    )
    args = parser.parse_args(argv)

    if repository is None:
        from core.logging_config import configure_logging

        configure_logging()
        repository = CatchmentRepository()

    start_time = time.time()
    report = repository.reindex_all(args.catchment_ids)

    for catchment_id, reason in sorted(report.failed.items()):
        logger.warning("reindex_failed", catchment_id=catchment_id, reason=reason)
    logger.info(
        "reindex_finished",
        reindexed=report.reindexed,
        failed=len(report.failed),
        elapsed_s=round(time.time() - start_time, 2),
    )
    return 0 if report.ok else 1


if __name__ == "__main__":
    sys.exit(main())
