"""Tests for domain models: container entries, stats, checkpoints and failures."""

import pytest

from deckvault.models.allocation import AllocationSummary, BulkAllocationResult, Section
from deckvault.models.card import CardIdentifier, CatalogCard
from deckvault.models.checkpoint import (
    DeleteCheckpoint,
    DeleteStage,
    ImportCheckpoint,
    ImportStage,
    OperationKind,
    PendingCard,
    checkpoint_from_json,
    checkpoint_to_json,
)
from deckvault.models.container import (
    ContainerStats,
    OwnedEntry,
    WishlistEntry,
    compute_stats,
    entry_quantity,
)
from deckvault.models.failure import (
    FailureKind,
    FatalStageFailure,
    NotFoundError,
    OutcomeType,
)


def owned(quantity: int, price: float = 1.0, section: Section = Section.MAINBOARD) -> OwnedEntry:
    return OwnedEntry(
        card_id=1,
        name="Island",
        edition="UNH",
        scryfall_id="",
        section=section,
        allocated_quantity=quantity,
        price=price,
        foil=False,
        condition="NM",
        image="",
        total_in_collection=quantity,
        available_in_collection=0,
    )


def wanted(
    quantity: int, price: float = 1.0, section: Section = Section.MAINBOARD
) -> WishlistEntry:
    return WishlistEntry(
        name="Negate",
        edition="M19",
        scryfall_id="",
        section=section,
        requested_quantity=quantity,
        price=price,
        foil=False,
        condition="NM",
        image="",
    )


class TestContainerStats:
    def test_empty_container_is_complete(self) -> None:
        """An empty container reports 100% completion."""
        stats = compute_stats([])

        assert stats == ContainerStats()
        assert stats.completion_percentage == 100.0

    def test_owned_and_wishlist_counts(self) -> None:
        stats = compute_stats(
            [owned(3, price=2.0), wanted(1, price=4.0, section=Section.SIDEBOARD)]
        )

        assert stats.total_cards == 4
        assert stats.owned_cards == 3
        assert stats.wishlist_cards == 1
        assert stats.sideboard_cards == 1
        assert stats.total_price == 10.0
        assert stats.avg_price == 2.5
        assert stats.completion_percentage == 75.0

    def test_rounding(self) -> None:
        stats = compute_stats([owned(1), wanted(2)])

        assert stats.completion_percentage == 33.33

    def test_dict_round_trip_ignores_unknown_keys(self) -> None:
        stats = compute_stats([owned(2)])

        restored = ContainerStats.from_dict({**stats.to_dict(), "legacy_field": 1})

        assert restored == stats
        assert ContainerStats.from_dict(None) == ContainerStats()


class TestEntryDispatch:
    def test_entry_quantity(self) -> None:
        assert entry_quantity(owned(3)) == 3
        assert entry_quantity(wanted(2)) == 2

    def test_unknown_entry_rejected(self) -> None:
        """Consumers refuse anything that is not a known entry variant."""
        with pytest.raises(TypeError):
            entry_quantity("Island")  # type: ignore[arg-type]
        with pytest.raises(TypeError):
            compute_stats([object()])  # type: ignore[list-item]


class TestCatalogCard:
    def test_foil_price_preferred_for_foil(self) -> None:
        card = CatalogCard(
            scryfall_id="x", name="Negate", set_code="M19", price=0.25, foil_price=1.0
        )

        assert card.price_for(foil=True) == 1.0
        assert card.price_for(foil=False) == 0.25

    def test_price_falls_back_to_other_finish(self) -> None:
        foil_only = CatalogCard(scryfall_id="x", name="Promo", set_code="P", foil_price=3.0)
        nonfoil_only = CatalogCard(scryfall_id="y", name="Old", set_code="O", price=2.0)

        assert foil_only.price_for(foil=False) == 3.0
        assert nonfoil_only.price_for(foil=True) == 2.0

    def test_placeholder(self) -> None:
        """A placeholder has no id and zero price."""
        card = CatalogCard.placeholder("Unknown Card", "XXX")

        assert card.is_placeholder
        assert card.price_for(False) == 0.0
        assert card.set_code == "XXX"


class TestCardIdentifier:
    def test_key_prefers_id(self) -> None:
        assert CardIdentifier(name="Bolt", set_code="LEA", scryfall_id="abc").key == "abc"

    def test_key_from_name_and_set(self) -> None:
        assert CardIdentifier(name="Lightning Bolt", set_code="LEA").key == "lightning bolt|lea"


class TestAllocationValues:
    def test_summary_available_never_negative(self) -> None:
        assert AllocationSummary(card_id=1, owned=1, allocated=3).available == 0

    def test_bulk_result_partial(self) -> None:
        assert BulkAllocationResult(succeeded=2, failed=1).partial
        assert not BulkAllocationResult(succeeded=2).partial


class TestCheckpointRecords:
    def test_json_round_trip_keeps_type(self) -> None:
        """Serialized records come back as the right variant."""
        record = ImportCheckpoint(
            container_id=1,
            container_name="Burn",
            stage=ImportStage.PROCESSING,
            total_cards=1,
            pending_cards=[PendingCard(name="Lightning Bolt", quantity=2, set_code="LEA")],
        )

        restored = checkpoint_from_json(checkpoint_to_json(record))

        assert isinstance(restored, ImportCheckpoint)
        assert restored.operation == OperationKind.IMPORT
        assert restored.pending_cards is not None
        assert restored.pending_cards[0].name == "Lightning Bolt"

    def test_delete_record_round_trip(self) -> None:
        record = DeleteCheckpoint(
            container_id=2,
            container_name="Old",
            stage=DeleteStage.DELETING_CARDS,
            delete_cards=True,
            card_count=3,
            card_ids=[1, 2, 3],
        )

        restored = checkpoint_from_json(checkpoint_to_json(record))

        assert isinstance(restored, DeleteCheckpoint)
        assert restored.card_ids == [1, 2, 3]

    def test_stripped_drops_bulky_payload(self) -> None:
        record = ImportCheckpoint(
            container_id=1,
            container_name="Burn",
            stage=ImportStage.FETCHING,
            pending_cards=[PendingCard(name="Island", quantity=1)],
        )

        stripped = record.stripped()

        assert stripped.pending_cards is None
        assert record.pending_cards is not None

    def test_terminal_stage(self) -> None:
        record = DeleteCheckpoint(container_id=1, container_name="x", stage=DeleteStage.COMPLETE)

        assert record.is_terminal
        assert not record.model_copy(update={"stage": DeleteStage.ERROR}).is_terminal

    def test_other_kind(self) -> None:
        assert OperationKind.IMPORT.other == OperationKind.DELETE
        assert OperationKind.DELETE.other == OperationKind.IMPORT


class TestFailures:
    def test_known_error_envelope(self) -> None:
        """Known errors convert to a known_failure response."""
        response = NotFoundError("Card", 7).to_response()

        assert response.outcome == OutcomeType.KNOWN_FAILURE
        assert response.failure is not None
        assert response.failure.kind == FailureKind.NOT_FOUND
        assert response.failure.message == "Card 7 not found"

    def test_fatal_stage_failure(self) -> None:
        error = FatalStageFailure("Could not create deck 'x'", detail="boom")

        assert error.kind == FailureKind.FATAL_STAGE
        assert error.status_code == 422
        assert error.to_response().failure.detail == "boom"  # type: ignore[union-attr]
