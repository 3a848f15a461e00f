"""
Bulk operation API endpoints.

Imports and deletes run to completion within the request. If the process
dies part way, the checkpoint left behind is listed by GET /operations/pending
and can be resumed or abandoned.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from deckvault.config import settings
from deckvault.db.database import async_session_factory
from deckvault.models.checkpoint import DeleteCheckpoint, ImportCheckpoint, OperationKind
from deckvault.models.container import ContainerKind, DeckFormat
from deckvault.models.failure import FailureKind
from deckvault.services.bulk_operations import (
    BulkOperationController,
    DeleteRequest,
    ImportRequest,
    OperationOutcome,
    OperationStatus,
)
from deckvault.services.card_catalog import ScryfallCatalog
from deckvault.services.checkpoints import CheckpointWriter, SqlCheckpointStore
from deckvault.services.progress import RecordingProgress

router = APIRouter(prefix="/operations", tags=["operations"])


@lru_cache(maxsize=1)
def get_controller() -> BulkOperationController:
    """The process-wide controller; its guard and checkpoint memory are shared."""
    store = SqlCheckpointStore(async_session_factory, settings.checkpoint_quota_bytes)
    return BulkOperationController(
        async_session_factory,
        ScryfallCatalog(),
        CheckpointWriter(store),
    )


class ImportBody(BaseModel):
    """Request model for a bulk import into a new container."""

    container_name: str = Field(..., min_length=1)
    text: str = Field(
        ...,
        description="Deck list (one '<qty> <name> (<SET>)' per line) or Moxfield/ManaBox CSV",
        examples=["2 Lightning Bolt (LEA)\n1 Counterspell\nSideboard\n1 Negate"],
    )
    kind: ContainerKind = ContainerKind.DECK
    include_sideboard: bool = True
    format: DeckFormat | None = None
    commander: str | None = None
    description: str = ""


class DeleteBody(BaseModel):
    container_id: int
    delete_cards: bool = Field(
        default=False,
        description="Also delete the inventory cards allocated to the container",
    )


class ProgressEventResponse(BaseModel):
    status: str
    percent: int
    message: str


class OperationResponse(BaseModel):
    """Outcome of a bulk operation with its progress history."""

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
    degraded: bool = Field(
        default=False,
        description="A checkpoint could not be stored in full while the operation ran",
    )
    failure_kind: FailureKind | None = None
    progress: list[ProgressEventResponse] = Field(default_factory=list)


class PendingOperationResponse(BaseModel):
    kind: OperationKind
    container_id: int
    container_name: str
    stage: str
    failed_stage: str | None = None
    error: str | None = None
    progress: str


class AbandonResponse(BaseModel):
    kind: OperationKind
    abandoned: bool


def _response(outcome: OperationOutcome, progress: RecordingProgress) -> OperationResponse:
    return OperationResponse(
        kind=outcome.kind,
        status=outcome.status,
        container_id=outcome.container_id,
        container_name=outcome.container_name,
        succeeded=outcome.succeeded,
        failed=outcome.failed,
        allocated=outcome.allocated,
        wishlisted=outcome.wishlisted,
        lookup_misses=outcome.lookup_misses,
        skipped_lines=outcome.skipped_lines,
        message=outcome.message,
        degraded=outcome.degraded,
        failure_kind=outcome.failure_kind,
        progress=[
            ProgressEventResponse(status=e.status, percent=e.percent, message=e.message)
            for e in progress.events
        ],
    )


def _pending_response(record: ImportCheckpoint | DeleteCheckpoint) -> PendingOperationResponse:
    if isinstance(record, ImportCheckpoint):
        progress = f"{record.allocated_count}/{len(record.allocation_plan)} allocated"
        if record.pending_cards is not None:
            progress = f"{record.current_card}/{record.total_cards} processed"
    elif isinstance(record, DeleteCheckpoint):
        progress = f"{record.deleted_count}/{record.card_count} cards deleted"
    else:
        raise TypeError(f"Unknown checkpoint record: {record!r}")
    return PendingOperationResponse(
        kind=record.operation,
        container_id=record.container_id,
        container_name=record.container_name,
        stage=record.stage.value,
        failed_stage=record.failed_stage.value if record.failed_stage else None,
        error=record.error,
        progress=progress,
    )


@router.post("/import", response_model=OperationResponse)
async def start_import(
    body: ImportBody,
    controller: Annotated[BulkOperationController, Depends(get_controller)],
) -> OperationResponse:
    """
    Import a deck list or CSV export into a new deck or binder.

    Unknown cards are imported at zero price; copies the collection cannot
    cover are added as wishlist demand.
    """
    progress = RecordingProgress()
    outcome = await controller.start_import(
        ImportRequest(
            container_name=body.container_name,
            text=body.text,
            kind=body.kind,
            include_sideboard=body.include_sideboard,
            format=body.format,
            commander=body.commander,
            description=body.description,
        ),
        progress,
    )
    return _response(outcome, progress)


@router.post("/delete", response_model=OperationResponse)
async def start_delete(
    body: DeleteBody,
    controller: Annotated[BulkOperationController, Depends(get_controller)],
) -> OperationResponse:
    """Delete a container, optionally with the cards allocated to it."""
    progress = RecordingProgress()
    outcome = await controller.start_delete(
        DeleteRequest(container_id=body.container_id, delete_cards=body.delete_cards),
        progress,
    )
    return _response(outcome, progress)


@router.get("/pending", response_model=list[PendingOperationResponse])
async def pending(
    controller: Annotated[BulkOperationController, Depends(get_controller)],
) -> list[PendingOperationResponse]:
    """Operations that were interrupted or failed and can be resumed."""
    return [_pending_response(record) for record in await controller.pending()]


@router.post("/{kind}/resume", response_model=OperationResponse)
async def resume(
    kind: OperationKind,
    controller: Annotated[BulkOperationController, Depends(get_controller)],
) -> OperationResponse:
    progress = RecordingProgress()
    outcome = await controller.resume(kind, progress)
    return _response(outcome, progress)


@router.delete("/{kind}", response_model=AbandonResponse, status_code=status.HTTP_200_OK)
async def abandon(
    kind: OperationKind,
    controller: Annotated[BulkOperationController, Depends(get_controller)],
) -> AbandonResponse:
    """Forget an interrupted operation. Work already committed is kept."""
    return AbandonResponse(kind=kind, abandoned=await controller.abandon(kind))
