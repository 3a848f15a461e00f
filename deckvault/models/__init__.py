from deckvault.models.allocation import (
    AllocationRef,
    AllocationResult,
    AllocationSummary,
    AllocationUpdate,
    BulkAllocationItem,
    BulkAllocationResult,
    QuantityReductionCheck,
    Reduction,
    Section,
)
from deckvault.models.card import (
    CardCondition,
    CardIdentifier,
    CardStatus,
    CatalogCard,
    NewCard,
)
from deckvault.models.checkpoint import (
    DeleteCheckpoint,
    DeleteStage,
    ImportCheckpoint,
    ImportStage,
    OperationKind,
    PendingCard,
    PlannedAllocation,
    checkpoint_from_json,
    checkpoint_to_json,
)
from deckvault.models.container import (
    ContainerEntry,
    ContainerKind,
    ContainerStats,
    DeckFormat,
    OwnedEntry,
    WishlistEntry,
    compute_stats,
    entry_quantity,
)
from deckvault.models.failure import (
    ApiResponse,
    CheckpointPayloadLostError,
    FailureDetail,
    FailureKind,
    FatalStageFailure,
    InvalidQuantityError,
    KnownError,
    NotFoundError,
    OutcomeType,
    PersistenceFullError,
    StaleCheckpointError,
)

__all__ = [
    "AllocationRef",
    "AllocationResult",
    "AllocationSummary",
    "AllocationUpdate",
    "ApiResponse",
    "BulkAllocationItem",
    "BulkAllocationResult",
    "CardCondition",
    "CardIdentifier",
    "CardStatus",
    "CatalogCard",
    "CheckpointPayloadLostError",
    "ContainerEntry",
    "ContainerKind",
    "ContainerStats",
    "DeckFormat",
    "DeleteCheckpoint",
    "DeleteStage",
    "FailureDetail",
    "FailureKind",
    "FatalStageFailure",
    "ImportCheckpoint",
    "ImportStage",
    "InvalidQuantityError",
    "KnownError",
    "NewCard",
    "NotFoundError",
    "OperationKind",
    "OutcomeType",
    "OwnedEntry",
    "PendingCard",
    "PersistenceFullError",
    "PlannedAllocation",
    "QuantityReductionCheck",
    "Reduction",
    "Section",
    "StaleCheckpointError",
    "WishlistEntry",
    "checkpoint_from_json",
    "checkpoint_to_json",
    "compute_stats",
    "entry_quantity",
]
