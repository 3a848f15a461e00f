"""
Value types produced by the allocation ledger.

The ledger reports what it actually committed instead of raising for short
supply, so callers can show an accurate confirmation.
"""

from dataclasses import dataclass, field
from enum import Enum


class Section(str, Enum):
    MAINBOARD = "mainboard"
    SIDEBOARD = "sideboard"


@dataclass(frozen=True, slots=True)
class AllocationResult:
    """
    Outcome of committing a request for copies to a container.

    Attributes:
        allocated: Copies claimed from owned supply
        wishlisted: Copies recorded as unmet demand
    """

    allocated: int = 0
    wishlisted: int = 0

    @property
    def requested(self) -> int:
        return self.allocated + self.wishlisted


@dataclass(frozen=True, slots=True)
class AllocationUpdate:
    """
    Outcome of setting an allocation to a new quantity.

    `clamped` is True when the caller asked for more copies than were
    available and `applied` is lower than `requested`.
    """

    requested: int
    applied: int
    clamped: bool


@dataclass(frozen=True, slots=True)
class BulkAllocationItem:
    """One entry of a bulk allocation: the target committed quantity for a slot."""

    card_id: int
    quantity: int
    section: Section = Section.MAINBOARD


@dataclass(frozen=True, slots=True)
class BulkAllocationResult:
    """Aggregate outcome of a bulk allocation."""

    allocated: int = 0
    wishlisted: int = 0
    succeeded: int = 0
    failed: int = 0

    @property
    def partial(self) -> bool:
        return self.failed > 0


@dataclass(frozen=True, slots=True)
class Reduction:
    """Copies trimmed from one allocation after an owned quantity decrease."""

    container_id: int
    section: Section
    removed: int


@dataclass(frozen=True, slots=True)
class AllocationRef:
    container_id: int
    container_name: str
    section: Section
    quantity: int


@dataclass
class AllocationSummary:
    """Where the owned copies of one card are committed."""

    card_id: int
    owned: int
    allocated: int
    allocations: list[AllocationRef] = field(default_factory=list)

    @property
    def available(self) -> int:
        return max(0, self.owned - self.allocated)


@dataclass(frozen=True, slots=True)
class QuantityReductionCheck:
    """Preview of what lowering a card's owned quantity would do."""

    can_reduce: bool
    current_allocated: int
    excess: int
    affected_container_ids: tuple[int, ...] = ()
