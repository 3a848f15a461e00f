"""
Resumable bulk import and delete.

Each operation is a small state machine whose position is persisted as a
checkpoint after every stage transition, and after every card while an
import is processing or a delete is deleting cards. A process that dies
mid-operation leaves a non-terminal checkpoint behind; `resume` picks it
up from the last recorded position.

Import:  fetching -> processing -> saving -> allocating -> complete
Delete:  deleting_cards -> deleting_deck -> complete

Any stage can fail into `error`. The failed stage is recorded and `resume`
re-enters the nearest stage that is safe to repeat: allocating for an
import whose cards were already saved (allocation uses target quantities,
so repeating it never doubles a slot), fetching otherwise, and
deleting_cards for a delete.

Known window: the saving stage commits the inventory and then writes the
checkpoint. A crash between the two re-runs saving on resume and adds the
imported copies to the inventory a second time.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from deckvault.config import ALLOCATION_CHUNK_SIZE, settings
from deckvault.db.containers import (
    container_card_ids,
    create_container,
    delete_container,
    get_container,
)
from deckvault.db.inventory import purge_card_from_container, upsert_imported_card
from deckvault.models.allocation import BulkAllocationItem, Section
from deckvault.models.card import CardIdentifier, CatalogCard
from deckvault.models.checkpoint import (
    DeleteCheckpoint,
    DeleteStage,
    ImportCheckpoint,
    ImportStage,
    OperationKind,
    PendingCard,
    PlannedAllocation,
)
from deckvault.models.container import ContainerKind, DeckFormat
from deckvault.models.failure import (
    CheckpointPayloadLostError,
    FailureKind,
    FatalStageFailure,
    StaleCheckpointError,
)
from deckvault.parsers.csv_format import is_csv_format, parse_csv_import
from deckvault.parsers.deck_text import ParsedCard, parse_deck_text
from deckvault.services.card_catalog import CardCatalog, CatalogError
from deckvault.services.checkpoints import Checkpoint, CheckpointWriter
from deckvault.services.ledger import AllocationLedger
from deckvault.services.progress import LoggingProgress, ProgressReporter

logger = logging.getLogger(__name__)


# =============================================================================
# REQUESTS AND OUTCOMES
# =============================================================================


@dataclass
class ImportRequest:
    """
    A bulk import into a new container.

    Either `text` (a deck list or a Moxfield/ManaBox CSV export) or an
    already parsed `cards` list must be given.
    """

    container_name: str
    text: str = ""
    cards: list[ParsedCard] | None = None
    kind: ContainerKind = ContainerKind.DECK
    include_sideboard: bool = True
    format: DeckFormat | None = None
    commander: str | None = None
    description: str = ""


@dataclass
class DeleteRequest:
    """Delete a container, and with `delete_cards` the cards allocated to it."""

    container_id: int
    delete_cards: bool = False


class OperationStatus(str, Enum):
    COMPLETE = "complete"
    PARTIAL = "partial"
    ERROR = "error"
    BUSY = "busy"
    NOTHING_TO_RESUME = "nothing_to_resume"


@dataclass
class OperationOutcome:
    """
    What a start or resume call achieved.

    `degraded` is True when a checkpoint could not be stored in full during
    the run; the operation finished but could not have been resumed after a
    restart at that point.
    """

    kind: OperationKind
    status: OperationStatus
    container_id: int | None = None
    container_name: str = ""
    succeeded: int = 0
    failed: int = 0
    allocated: int = 0
    wishlisted: int = 0
    lookup_misses: int = 0
    skipped_lines: int = 0
    message: str = ""
    degraded: bool = False
    failure_kind: FailureKind | None = None


class OperationGuard:
    """
    One running operation per kind.

    An import and a delete may run at the same time; two imports may not.
    """

    def __init__(self) -> None:
        self._running: set[OperationKind] = set()

    def acquire(self, kind: OperationKind) -> bool:
        if kind in self._running:
            return False
        self._running.add(kind)
        return True

    def release(self, kind: OperationKind) -> None:
        self._running.discard(kind)

    def is_running(self, kind: OperationKind) -> bool:
        return kind in self._running

    def reset(self) -> None:
        self._running.clear()


# =============================================================================
# CONTROLLER
# =============================================================================


def _pending_from_parsed(card: ParsedCard) -> PendingCard:
    return PendingCard(
        name=card.name,
        quantity=card.quantity,
        section=card.section,
        set_code=card.set_code,
        collector_number=card.collector_number,
        foil=card.foil,
        condition=card.condition,
        language=card.language,
        scryfall_id=card.scryfall_id,
        price=card.price,
    )


def _identifier_of(card: PendingCard) -> CardIdentifier:
    return CardIdentifier(name=card.name, set_code=card.set_code, scryfall_id=card.scryfall_id)


def _apply_catalog(card: PendingCard, found: CatalogCard) -> None:
    """Copy catalog metadata onto a pending card and mark it resolved."""
    if not found.is_placeholder:
        card.name = found.name
        card.scryfall_id = found.scryfall_id
        card.set_code = found.set_code or card.set_code
        card.collector_number = found.collector_number or card.collector_number
        card.image = found.image
    card.price = found.price_for(card.foil) or card.price
    card.resolved = True


class BulkOperationController:
    """
    Runs, checkpoints and resumes bulk imports and deletes.

    Every stage opens its own session and commits before the checkpoint that
    records it is written, so a checkpoint never describes uncommitted work.
    Start and resume never raise for a failure inside a stage: the failure
    is recorded in the checkpoint and returned as an error outcome.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        catalog: CardCatalog,
        checkpoints: CheckpointWriter,
        guard: OperationGuard | None = None,
        fallback_limit: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.catalog = catalog
        self.checkpoints = checkpoints
        self.guard = guard or OperationGuard()
        self.fallback_limit = (
            settings.catalog_fallback_limit if fallback_limit is None else fallback_limit
        )
        self._degraded: dict[OperationKind, bool] = {}
        self._expected_version: dict[OperationKind, int | None] = {}

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def start_import(
        self, request: ImportRequest, progress: ProgressReporter | None = None
    ) -> OperationOutcome:
        """
        Import cards into a new container.

        Raises:
            FatalStageFailure: If the container cannot be created. No
                checkpoint is written in that case.
        """
        kind = OperationKind.IMPORT
        progress = progress or LoggingProgress(kind.value)
        if not self.guard.acquire(kind):
            return self._busy(kind)
        try:
            self._begin(kind)
            cards, skipped = self._parse(request)
            progress.update(0, f"Parsed {len(cards)} cards")

            try:
                async with self._session_factory() as session:
                    container = await create_container(
                        session,
                        request.kind,
                        request.container_name,
                        format_name=request.format,
                        commander=request.commander,
                        description=request.description,
                    )
                    await session.commit()
            except (ValueError, SQLAlchemyError) as e:
                message = f"Could not create {request.kind.value} '{request.container_name}'"
                progress.error(message)
                raise FatalStageFailure(message, detail=str(e)) from e

            logger.info(
                "Importing %d cards into %s %d (%s)",
                len(cards),
                request.kind.value,
                container.id,
                container.name,
            )
            record = ImportCheckpoint(
                container_id=container.id,
                container_name=container.name,
                stage=ImportStage.FETCHING,
                total_cards=len(cards),
                skipped_lines=skipped,
                pending_cards=[_pending_from_parsed(card) for card in cards],
            )
            await self._save(record)
            return await self._run_import(record, progress)
        finally:
            self.guard.release(kind)

    async def start_delete(
        self, request: DeleteRequest, progress: ProgressReporter | None = None
    ) -> OperationOutcome:
        """
        Delete a container, optionally with the cards allocated to it.

        Raises:
            FatalStageFailure: If the container does not exist.
        """
        kind = OperationKind.DELETE
        progress = progress or LoggingProgress(kind.value)
        if not self.guard.acquire(kind):
            return self._busy(kind)
        try:
            self._begin(kind)
            async with self._session_factory() as session:
                container = await get_container(session, request.container_id)
                if container is None:
                    message = f"Container {request.container_id} does not exist"
                    progress.error(message)
                    raise FatalStageFailure(message)
                name = container.name
                card_ids = (
                    await container_card_ids(session, container.id)
                    if request.delete_cards
                    else []
                )

            record = DeleteCheckpoint(
                container_id=request.container_id,
                container_name=name,
                stage=DeleteStage.DELETING_CARDS,
                delete_cards=request.delete_cards,
                card_count=len(card_ids),
                card_ids=card_ids,
            )
            await self._save(record)
            progress.update(0, f"Deleting '{name}'")
            return await self._run_delete(record, progress)
        finally:
            self.guard.release(kind)

    async def resume(
        self, kind: OperationKind, progress: ProgressReporter | None = None
    ) -> OperationOutcome:
        """Continue an interrupted or failed operation from its checkpoint."""
        progress = progress or LoggingProgress(kind.value)
        if not self.guard.acquire(kind):
            return self._busy(kind)
        try:
            progress.update(0, f"Resuming {kind.value}")
            record = await self.checkpoints.read(kind)
            if record is None:
                return OperationOutcome(
                    kind=kind,
                    status=OperationStatus.NOTHING_TO_RESUME,
                    message=f"No interrupted {kind.value} to resume",
                )
            if record.is_terminal:
                await self.checkpoints.clear(kind)
                progress.complete(f"'{record.container_name}' was already finished")
                return self._outcome(record, OperationStatus.COMPLETE, "Already finished")

            self._begin(kind)
            self._expected_version[kind] = record.version
            logger.info(
                "Resuming %s of '%s' at stage %s",
                kind.value,
                record.container_name,
                record.stage.value,
            )

            try:
                if isinstance(record, ImportCheckpoint):
                    return await self._resume_import(record, progress)
                if isinstance(record, DeleteCheckpoint):
                    return await self._resume_delete(record, progress)
                raise TypeError(f"Unknown checkpoint record: {record!r}")
            except StaleCheckpointError as e:
                logger.warning("Refusing to resume %s: %s", kind.value, e.detail)
                outcome = self._outcome(record, OperationStatus.BUSY, e.message)
                outcome.failure_kind = e.kind
                return outcome
        finally:
            self.guard.release(kind)

    async def abandon(self, kind: OperationKind) -> bool:
        """
        Drop an interrupted operation's checkpoint.

        Work already committed stays. Returns False if there was nothing to
        abandon or the operation is running.
        """
        if self.guard.is_running(kind):
            logger.warning("Not abandoning %s: it is running", kind.value)
            return False
        record = await self.checkpoints.read(kind)
        if record is None:
            return False
        await self.checkpoints.clear(kind)
        logger.info("Abandoned %s of '%s'", kind.value, record.container_name)
        return True

    async def pending(self) -> list[Checkpoint]:
        """Checkpoints of operations that have not finished, failed ones included."""
        records: list[Checkpoint] = []
        for kind in OperationKind:
            record = await self.checkpoints.read(kind)
            if record is not None and not record.is_terminal:
                records.append(record)
        return records

    # -------------------------------------------------------------------------
    # Import pipeline
    # -------------------------------------------------------------------------

    @staticmethod
    def _parse(request: ImportRequest) -> tuple[list[ParsedCard], int]:
        if request.cards is not None:
            cards = [
                card
                for card in request.cards
                if request.include_sideboard or card.section != Section.SIDEBOARD
            ]
            return cards, 0
        if is_csv_format(request.text):
            return parse_csv_import(request.text)
        parsed = parse_deck_text(request.text, include_sideboard=request.include_sideboard)
        return parsed.cards, parsed.skipped

    async def _resume_import(
        self, record: ImportCheckpoint, progress: ProgressReporter
    ) -> OperationOutcome:
        async with self._session_factory() as session:
            container = await get_container(session, record.container_id)
        if container is None:
            await self.checkpoints.clear(OperationKind.IMPORT)
            message = f"Container '{record.container_name}' no longer exists"
            progress.error(message)
            outcome = self._outcome(record, OperationStatus.ERROR, message)
            outcome.failure_kind = FailureKind.FATAL_STAGE
            return outcome

        if record.stage == ImportStage.ERROR:
            record.stage = (
                ImportStage.ALLOCATING if record.created_card_ids else ImportStage.FETCHING
            )
            record.failed_stage = None
            record.error = None

        if (
            record.stage in (ImportStage.FETCHING, ImportStage.PROCESSING)
            and record.pending_cards is None
        ):
            error = CheckpointPayloadLostError(record.container_name)
            progress.error(error.message)
            outcome = self._outcome(record, OperationStatus.ERROR, error.message)
            outcome.failure_kind = error.kind
            return outcome

        return await self._run_import(record, progress)

    async def _run_import(
        self, record: ImportCheckpoint, progress: ProgressReporter
    ) -> OperationOutcome:
        try:
            while not record.is_terminal:
                if record.stage == ImportStage.FETCHING:
                    await self._import_fetch(record, progress)
                elif record.stage == ImportStage.PROCESSING:
                    await self._import_process(record, progress)
                elif record.stage == ImportStage.SAVING:
                    await self._import_save(record, progress)
                elif record.stage == ImportStage.ALLOCATING:
                    await self._import_allocate(record, progress)
                else:
                    raise RuntimeError(f"Cannot run import from stage {record.stage.value}")
        except StaleCheckpointError:
            raise
        except Exception as e:
            return await self._fail(record, record.stage, e, progress)

        await self.checkpoints.clear(OperationKind.IMPORT)
        message = (
            f"Imported {record.total_cards} cards into '{record.container_name}': "
            f"{record.allocated_copies} allocated, {record.wishlisted_copies} wishlisted"
        )
        if record.lookup_misses:
            message += f", {record.lookup_misses} not found in the catalog"
        progress.complete(message)
        logger.info(message)

        status = OperationStatus.PARTIAL if record.failed_items else OperationStatus.COMPLETE
        return self._outcome(record, status, message)

    @staticmethod
    def _require_pending(record: ImportCheckpoint) -> list[PendingCard]:
        if record.pending_cards is None:
            raise CheckpointPayloadLostError(record.container_name)
        return record.pending_cards

    async def _import_fetch(self, record: ImportCheckpoint, progress: ProgressReporter) -> None:
        pending = self._require_pending(record)
        unresolved = [card for card in pending if not card.resolved]
        progress.update(0, f"Looking up {len(unresolved)} cards")

        if unresolved:
            try:
                found = await self.catalog.resolve_batch(
                    [_identifier_of(card) for card in unresolved]
                )
            except CatalogError as e:
                logger.warning("Batch catalog lookup failed, falling back to single lookups: %s", e)
                found = {}
            for card in unresolved:
                match = found.get(_identifier_of(card).key)
                if match is not None:
                    _apply_catalog(card, match)

        record.stage = ImportStage.PROCESSING
        record.current_card = 0
        await self._save(record)
        progress.update(10, f"Found {sum(c.resolved for c in pending)}/{len(pending)} cards")

    async def _import_process(
        self, record: ImportCheckpoint, progress: ProgressReporter
    ) -> None:
        pending = self._require_pending(record)
        total = len(pending)
        budget = self.fallback_limit

        for index in range(record.current_card, total):
            card = pending[index]
            if not card.resolved:
                match: CatalogCard | None = None
                if budget > 0:
                    budget -= 1
                    try:
                        match = await self.catalog.resolve(
                            card.scryfall_id or card.name, card.set_code or None
                        )
                    except CatalogError as e:
                        logger.warning("Catalog lookup failed for %s: %s", card.name, e)
                if match is None:
                    match = CatalogCard.placeholder(card.name, card.set_code)
                    card.lookup_missed = True
                    record.lookup_misses += 1
                    logger.info("No catalog match for %s; using a placeholder", card.name)
                _apply_catalog(card, match)

            record.current_card = index + 1
            await self._save(record)
            progress.update(10 + 40 * (index + 1) // total, f"Processed {card.name}")

        # Persisted by _save_inventory, after the per-card payload is dropped
        record.stage = ImportStage.SAVING

    async def _import_save(self, record: ImportCheckpoint, progress: ProgressReporter) -> None:
        if record.pending_cards is not None:
            await self._save_inventory(record, record.pending_cards, progress)

        record.stage = ImportStage.ALLOCATING
        await self._save(record)
        progress.update(70, f"Saved {len(record.created_card_ids)} cards")

    async def _save_inventory(
        self, record: ImportCheckpoint, pending: list[PendingCard], progress: ProgressReporter
    ) -> None:
        progress.update(50, f"Saving {len(pending)} cards")

        plan: dict[tuple[int, Section], int] = {}
        card_ids: list[int] = []
        async with self._session_factory() as session:
            container = await get_container(session, record.container_id)
            if container is None:
                raise FatalStageFailure(f"Container '{record.container_name}' disappeared")
            is_binder = container.kind == ContainerKind.BINDER

            for item in pending:
                card = await upsert_imported_card(session, item)
                section = Section.MAINBOARD if is_binder else item.section
                plan[(card.id, section)] = plan.get((card.id, section), 0) + item.quantity
                if card.id not in card_ids:
                    card_ids.append(card.id)
            await session.commit()

        record.created_card_ids = card_ids
        record.allocation_plan = [
            PlannedAllocation(card_id=card_id, quantity=quantity, section=section)
            for (card_id, section), quantity in plan.items()
        ]
        record.allocated_count = 0
        record.pending_cards = None
        await self._save(record)
        progress.update(60, f"Saved {len(card_ids)} cards")

    async def _import_allocate(
        self, record: ImportCheckpoint, progress: ProgressReporter
    ) -> None:
        plan = record.allocation_plan
        total = len(plan)

        while record.allocated_count < total:
            chunk = plan[record.allocated_count : record.allocated_count + ALLOCATION_CHUNK_SIZE]
            items = [
                BulkAllocationItem(card_id=p.card_id, quantity=p.quantity, section=p.section)
                for p in chunk
            ]
            async with self._session_factory() as session:
                result = await AllocationLedger(session).bulk_allocate(
                    record.container_id, items
                )
                await session.commit()

            record.allocated_count += len(chunk)
            record.allocated_copies += result.allocated
            record.wishlisted_copies += result.wishlisted
            record.failed_items += result.failed
            await self._save(record)
            progress.update(
                70 + 25 * record.allocated_count // total,
                f"Allocated {record.allocated_count}/{total}",
            )

        record.stage = ImportStage.COMPLETE
        await self._save(record)

    # -------------------------------------------------------------------------
    # Delete pipeline
    # -------------------------------------------------------------------------

    async def _resume_delete(
        self, record: DeleteCheckpoint, progress: ProgressReporter
    ) -> OperationOutcome:
        if record.stage == DeleteStage.ERROR:
            record.stage = DeleteStage.DELETING_CARDS
            record.failed_stage = None
            record.error = None
        return await self._run_delete(record, progress)

    async def _run_delete(
        self, record: DeleteCheckpoint, progress: ProgressReporter
    ) -> OperationOutcome:
        try:
            while not record.is_terminal:
                if record.stage == DeleteStage.DELETING_CARDS:
                    await self._delete_cards(record, progress)
                elif record.stage == DeleteStage.DELETING_DECK:
                    await self._delete_container(record, progress)
                else:
                    raise RuntimeError(f"Cannot run delete from stage {record.stage.value}")
        except StaleCheckpointError:
            raise
        except Exception as e:
            return await self._fail(record, record.stage, e, progress)

        await self.checkpoints.clear(OperationKind.DELETE)
        message = f"Deleted '{record.container_name}'"
        if record.delete_cards:
            message += f" and {record.deleted_count} cards"
        if record.failed_count:
            message += f" ({record.failed_count} cards could not be deleted)"
        progress.complete(message)
        logger.info(message)

        status = OperationStatus.PARTIAL if record.failed_count else OperationStatus.COMPLETE
        return self._outcome(record, status, message)

    async def _delete_cards(self, record: DeleteCheckpoint, progress: ProgressReporter) -> None:
        if record.delete_cards and not record.card_ids:
            # Stripped record: a card still allocated to the container is not deleted yet
            async with self._session_factory() as session:
                record.card_ids = await container_card_ids(session, record.container_id)

        total = max(record.card_count, 1)
        while record.card_ids:
            card_id = record.card_ids[0]
            try:
                async with self._session_factory() as session:
                    purged = await purge_card_from_container(
                        session, card_id, record.container_id
                    )
                    await session.commit()
            except SQLAlchemyError as e:
                record.failed_count += 1
                logger.warning("Could not delete card %d: %s", card_id, e)
            else:
                if purged:
                    record.deleted_count += 1
                else:
                    logger.info("Card %d was already gone", card_id)

            # Handled ids leave the checkpoint
            record.card_ids = record.card_ids[1:]
            await self._save(record)
            done = record.card_count - len(record.card_ids)
            progress.update(min(90, 90 * done // total), f"Deleted {done}/{record.card_count}")

        record.stage = DeleteStage.DELETING_DECK
        await self._save(record)

    async def _delete_container(
        self, record: DeleteCheckpoint, progress: ProgressReporter
    ) -> None:
        progress.update(90, f"Deleting '{record.container_name}'")
        async with self._session_factory() as session:
            await delete_container(session, record.container_id)
            await session.commit()

        record.stage = DeleteStage.COMPLETE
        await self._save(record)

    # -------------------------------------------------------------------------
    # Checkpointing
    # -------------------------------------------------------------------------

    def _begin(self, kind: OperationKind) -> None:
        self._degraded[kind] = False
        self._expected_version[kind] = None

    async def _save(self, record: Checkpoint) -> None:
        """
        Persist a checkpoint, bumping its version.

        The first write of a resumed run checks that nobody else wrote the
        record since it was read.
        """
        kind = record.operation
        expected = self._expected_version.get(kind)
        if expected is not None:
            current = await self.checkpoints.read(kind)
            found = current.version if current is not None else -1
            if found != expected:
                raise StaleCheckpointError(expected, found)
            self._expected_version[kind] = None

        record.version += 1
        outcome = await self.checkpoints.write(kind, record)
        if outcome.degraded:
            self._degraded[kind] = True

    async def _fail(
        self,
        record: Checkpoint,
        stage: ImportStage | DeleteStage,
        error: Exception,
        progress: ProgressReporter,
    ) -> OperationOutcome:
        kind = record.operation
        logger.exception(
            "%s of '%s' failed at stage %s", kind.value, record.container_name, stage.value
        )

        if isinstance(record, ImportCheckpoint):
            record.failed_stage = ImportStage(stage.value)
            record.stage = ImportStage.ERROR
        elif isinstance(record, DeleteCheckpoint):
            record.failed_stage = DeleteStage(stage.value)
            record.stage = DeleteStage.ERROR
        else:
            raise TypeError(f"Unknown checkpoint record: {record!r}")
        record.error = str(error) or type(error).__name__

        try:
            await self._save(record)
        except Exception:
            logger.exception("Could not record the failure of %s", kind.value)

        message = f"{kind.value.capitalize()} of '{record.container_name}' failed: {record.error}"
        progress.error(message)
        outcome = self._outcome(record, OperationStatus.ERROR, message)
        outcome.failure_kind = (
            error.kind if isinstance(error, FatalStageFailure) else FailureKind.FATAL_STAGE
        )
        return outcome

    # -------------------------------------------------------------------------
    # Outcomes
    # -------------------------------------------------------------------------

    def _outcome(
        self, record: Checkpoint, status: OperationStatus, message: str
    ) -> OperationOutcome:
        kind = record.operation
        outcome = OperationOutcome(
            kind=kind,
            status=status,
            container_id=record.container_id,
            container_name=record.container_name,
            message=message,
            degraded=self._degraded.get(kind, False),
        )
        if isinstance(record, ImportCheckpoint):
            outcome.succeeded = record.allocated_count - record.failed_items
            outcome.failed = record.failed_items
            outcome.allocated = record.allocated_copies
            outcome.wishlisted = record.wishlisted_copies
            outcome.lookup_misses = record.lookup_misses
            outcome.skipped_lines = record.skipped_lines
        elif isinstance(record, DeleteCheckpoint):
            outcome.succeeded = record.deleted_count
            outcome.failed = record.failed_count
        else:
            raise TypeError(f"Unknown checkpoint record: {record!r}")
        if status == OperationStatus.PARTIAL:
            outcome.failure_kind = FailureKind.PARTIAL_BATCH
        return outcome

    @staticmethod
    def _busy(kind: OperationKind) -> OperationOutcome:
        return OperationOutcome(
            kind=kind,
            status=OperationStatus.BUSY,
            message=f"{kind.value.capitalize()} already running",
            failure_kind=FailureKind.OPERATION_BUSY,
        )


def summarize(records: Sequence[Checkpoint]) -> list[str]:
    """One human-readable line per pending checkpoint."""
    lines = []
    for record in records:
        line = f"{record.operation.value}: '{record.container_name}' at {record.stage.value}"
        if record.error:
            line += f" (failed: {record.error})"
        lines.append(line)
    return lines
