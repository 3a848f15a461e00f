"""
Resume or abandon interrupted bulk operations.

Run after a crash or deploy to finish imports and deletes that were cut
short. Without arguments every pending operation is resumed.

    python -m deckvault.jobs.resume_operations --list
    python -m deckvault.jobs.resume_operations --kind import
    python -m deckvault.jobs.resume_operations --kind delete --abandon
"""

import argparse
import asyncio
import logging

from deckvault.config import settings
from deckvault.db.database import async_session_factory, init_db
from deckvault.models.checkpoint import OperationKind
from deckvault.services.bulk_operations import (
    BulkOperationController,
    OperationOutcome,
    OperationStatus,
    summarize,
)
from deckvault.services.card_catalog import ScryfallCatalog
from deckvault.services.checkpoints import CheckpointWriter, SqlCheckpointStore
from deckvault.services.progress import LoggingProgress

logger = logging.getLogger(__name__)


def build_controller(catalog: ScryfallCatalog) -> BulkOperationController:
    store = SqlCheckpointStore(async_session_factory, settings.checkpoint_quota_bytes)
    return BulkOperationController(async_session_factory, catalog, CheckpointWriter(store))


async def run_resume(
    controller: BulkOperationController,
    kinds: list[OperationKind] | None = None,
    abandon: bool = False,
) -> dict[OperationKind, OperationOutcome | bool]:
    """
    Resume (or abandon) pending operations.

    Args:
        controller: Controller bound to the checkpoint store to read
        kinds: Operation kinds to handle. If None, handles every kind.
        abandon: Drop the checkpoints instead of resuming

    Returns:
        Dict mapping kind to its outcome, or to whether it was abandoned
    """
    results: dict[OperationKind, OperationOutcome | bool] = {}
    for kind in kinds or list(OperationKind):
        if abandon:
            results[kind] = await controller.abandon(kind)
            continue

        outcome = await controller.resume(kind, LoggingProgress(kind.value))
        if outcome.status == OperationStatus.NOTHING_TO_RESUME:
            logger.info("No interrupted %s", kind.value)
        elif outcome.status in (OperationStatus.COMPLETE, OperationStatus.PARTIAL):
            logger.info("Resumed %s: %s", kind.value, outcome.message)
        else:
            logger.error("Could not resume %s: %s", kind.value, outcome.message)
        results[kind] = outcome
    return results


async def run_list(controller: BulkOperationController) -> list[str]:
    lines = summarize(await controller.pending())
    if not lines:
        logger.info("No interrupted operations")
    for line in lines:
        logger.info("Pending %s", line)
    return lines


async def _main(args: argparse.Namespace) -> int:
    await init_db()
    catalog = ScryfallCatalog()
    try:
        controller = build_controller(catalog)
        if args.list:
            await run_list(controller)
            return 0

        kinds = [OperationKind(args.kind)] if args.kind else None
        results = await run_resume(controller, kinds, abandon=args.abandon)
        failed = [
            kind
            for kind, result in results.items()
            if isinstance(result, OperationOutcome)
            and result.status in (OperationStatus.ERROR, OperationStatus.BUSY)
        ]
        return 1 if failed else 0
    finally:
        await catalog.aclose()


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Resume interrupted bulk operations")
    parser.add_argument("--list", action="store_true", help="Only list pending operations")
    parser.add_argument(
        "--kind",
        choices=[kind.value for kind in OperationKind],
        help="Only handle this operation kind",
    )
    parser.add_argument(
        "--abandon",
        action="store_true",
        help="Drop the checkpoints instead of resuming",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    raise SystemExit(asyncio.run(_main(args)))


if __name__ == "__main__":
    main()
