"""
Checkpoint records for resumable bulk operations.

One record exists per operation kind. A record is written when an operation
starts, rewritten after every stage transition, cleared on success and kept
with stage "error" on failure so the operation can be resumed.

Import records carry the per-card working payload (`pending_cards`) only
while the operation is fetching or processing; from the saving stage on, the
record keeps just the compact allocation plan.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, Field, TypeAdapter

from deckvault.models.allocation import Section


class OperationKind(str, Enum):
    IMPORT = "import"
    DELETE = "delete"

    @property
    def other(self) -> "OperationKind":
        return OperationKind.DELETE if self is OperationKind.IMPORT else OperationKind.IMPORT


class ImportStage(str, Enum):
    FETCHING = "fetching"
    PROCESSING = "processing"
    SAVING = "saving"
    ALLOCATING = "allocating"
    COMPLETE = "complete"
    ERROR = "error"


class DeleteStage(str, Enum):
    DELETING_CARDS = "deleting_cards"
    DELETING_DECK = "deleting_deck"
    COMPLETE = "complete"
    ERROR = "error"


def _now() -> datetime:
    return datetime.now(UTC)


class PendingCard(BaseModel):
    """One parsed import line, enriched with catalog metadata as it is resolved."""

    name: str
    quantity: int
    section: Section = Section.MAINBOARD
    set_code: str = ""
    collector_number: str = ""
    foil: bool = False
    condition: str = "NM"
    language: str = "en"
    scryfall_id: str = ""
    price: float = 0.0
    image: str = ""
    resolved: bool = False
    lookup_missed: bool = False


class PlannedAllocation(BaseModel):
    """Target quantity for one (card, section) slot of the import container."""

    card_id: int
    quantity: int
    section: Section = Section.MAINBOARD


class ImportCheckpoint(BaseModel):
    kind: Literal["import"] = "import"
    container_id: int
    container_name: str
    stage: ImportStage
    total_cards: int = 0
    current_card: int = 0
    created_card_ids: list[int] = Field(default_factory=list)
    allocation_plan: list[PlannedAllocation] = Field(default_factory=list)
    allocated_count: int = 0
    allocated_copies: int = 0
    wishlisted_copies: int = 0
    failed_items: int = 0
    lookup_misses: int = 0
    skipped_lines: int = 0
    pending_cards: list[PendingCard] | None = None
    failed_stage: ImportStage | None = None
    error: str | None = None
    version: int = 0
    updated_at: datetime = Field(default_factory=_now)

    @property
    def operation(self) -> OperationKind:
        return OperationKind.IMPORT

    @property
    def is_terminal(self) -> bool:
        return self.stage == ImportStage.COMPLETE

    def stripped(self) -> "ImportCheckpoint":
        """Copy without the bulky per-card payload."""
        return self.model_copy(update={"pending_cards": None})


class DeleteCheckpoint(BaseModel):
    kind: Literal["delete"] = "delete"
    container_id: int
    container_name: str
    stage: DeleteStage
    delete_cards: bool = False
    card_count: int = 0
    card_ids: list[int] = Field(default_factory=list)
    deleted_count: int = 0
    failed_count: int = 0
    failed_stage: DeleteStage | None = None
    error: str | None = None
    version: int = 0
    updated_at: datetime = Field(default_factory=_now)

    @property
    def operation(self) -> OperationKind:
        return OperationKind.DELETE

    @property
    def is_terminal(self) -> bool:
        return self.stage == DeleteStage.COMPLETE

    def stripped(self) -> "DeleteCheckpoint":
        """
        Copy without the remaining card id list.

        The ids can be recovered from the container: a card still allocated to
        it has not been deleted yet.
        """
        return self.model_copy(update={"card_ids": []})


CheckpointRecord = Annotated[ImportCheckpoint | DeleteCheckpoint, Field(discriminator="kind")]

_record_adapter: TypeAdapter[ImportCheckpoint | DeleteCheckpoint] = TypeAdapter(CheckpointRecord)


def checkpoint_to_json(record: ImportCheckpoint | DeleteCheckpoint) -> str:
    return record.model_dump_json()


def checkpoint_from_json(payload: str | bytes) -> ImportCheckpoint | DeleteCheckpoint:
    return _record_adapter.validate_json(payload)
