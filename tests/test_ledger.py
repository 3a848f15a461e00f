"""Tests for the allocation ledger and its supply invariant."""

import pytest
from conftest import add_binder, add_card, add_deck
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from deckvault.db.containers import hydrate_container
from deckvault.db.inventory import delete_card
from deckvault.models.allocation import (
    AllocationResult,
    AllocationUpdate,
    BulkAllocationItem,
    Reduction,
    Section,
)
from deckvault.models.card import CardStatus
from deckvault.models.container import OwnedEntry, WishlistEntry
from deckvault.models.db import AllocationDB, CardDB
from deckvault.models.failure import InvalidQuantityError, NotFoundError
from deckvault.services.ledger import AllocationLedger


async def container_totals(session: AsyncSession, container_id: int) -> tuple[int, int]:
    """(owned, wishlist) copies shown in a container."""
    owned = wanted = 0
    for entry in await hydrate_container(session, container_id):
        if isinstance(entry, OwnedEntry):
            owned += entry.allocated_quantity
        elif isinstance(entry, WishlistEntry):
            wanted += entry.requested_quantity
    return owned, wanted


async def slot(
    session: AsyncSession, container_id: int, card_id: int, section: Section = Section.MAINBOARD
) -> int:
    result = await session.execute(
        select(AllocationDB.quantity).where(
            AllocationDB.container_id == container_id,
            AllocationDB.card_id == card_id,
            AllocationDB.section == section.value,
        )
    )
    return result.scalar_one_or_none() or 0


async def wishlist_card(session: AsyncSession, name: str) -> CardDB | None:
    result = await session.execute(
        select(CardDB).where(CardDB.name == name, CardDB.status == CardStatus.WISHLIST.value)
    )
    return result.scalar_one_or_none()


class TestAllocate:
    async def test_within_supply(self, session: AsyncSession) -> None:
        """Copies that are free are allocated in full."""
        card = await add_card(session, "Island", 4)
        deck = await add_deck(session)
        ledger = AllocationLedger(session)

        result = await ledger.allocate(deck.id, card.id, 3)

        assert result == AllocationResult(allocated=3, wishlisted=0)
        assert await ledger.total_allocated(card.id) == 3
        assert await ledger.available(card.id) == 1

    async def test_shortfall_becomes_wishlist(self, session: AsyncSession) -> None:
        """Copies beyond supply are recorded as demand in the same slot."""
        card = await add_card(session, "Lightning Bolt", 2, edition="LEA")
        deck = await add_deck(session)
        ledger = AllocationLedger(session)

        result = await ledger.allocate(deck.id, card.id, 3, Section.SIDEBOARD)

        assert result == AllocationResult(allocated=2, wishlisted=1)
        wish = await wishlist_card(session, "Lightning Bolt")
        assert wish is not None
        assert wish.edition == "LEA"
        assert await slot(session, deck.id, card.id, Section.SIDEBOARD) == 2
        assert await slot(session, deck.id, wish.id, Section.SIDEBOARD) == 1
        assert await ledger.verify_supply_invariant() == []

    async def test_nothing_available(self, session: AsyncSession) -> None:
        """With every copy committed elsewhere the whole request is wishlisted."""
        card = await add_card(session, "Counterspell", 2)
        first = await add_deck(session, "First")
        second = await add_deck(session, "Second")
        ledger = AllocationLedger(session)
        await ledger.allocate(first.id, card.id, 2)

        result = await ledger.allocate(second.id, card.id, 3)

        assert result == AllocationResult(allocated=0, wishlisted=3)
        assert await container_totals(session, second.id) == (0, 3)
        assert await ledger.total_allocated(card.id) == 2

    async def test_adds_to_existing_slot(self, session: AsyncSession) -> None:
        card = await add_card(session, "Island", 5)
        deck = await add_deck(session)
        ledger = AllocationLedger(session)

        await ledger.allocate(deck.id, card.id, 1)
        await ledger.allocate(deck.id, card.id, 2)

        rows = (await session.execute(select(AllocationDB))).scalars().all()
        assert len(rows) == 1
        assert rows[0].quantity == 3

    async def test_repeated_shortfall_merges_demand(self, session: AsyncSession) -> None:
        """Demand for the same printing accumulates on one wishlist card."""
        card = await add_card(session, "Negate", 1)
        deck = await add_deck(session)
        ledger = AllocationLedger(session)

        await ledger.allocate(deck.id, card.id, 2)
        await ledger.allocate(deck.id, card.id, 2)

        wish = await wishlist_card(session, "Negate")
        assert wish is not None
        assert await slot(session, deck.id, wish.id) == 3
        assert wish.quantity == 3

    async def test_wishlist_card_exempt_from_cap(self, session: AsyncSession) -> None:
        """Allocating a wishlist card records the full quantity as demand."""
        wish = await add_card(session, "Black Lotus", 1, status=CardStatus.WISHLIST)
        deck = await add_deck(session)
        ledger = AllocationLedger(session)

        result = await ledger.allocate(deck.id, wish.id, 4)

        assert result == AllocationResult(allocated=0, wishlisted=4)
        assert wish.quantity == 4
        assert await ledger.available(wish.id) == 0
        assert await ledger.verify_supply_invariant() == []

    async def test_binder_has_no_sideboard(self, session: AsyncSession) -> None:
        card = await add_card(session, "Island", 2)
        binder = await add_binder(session)

        await AllocationLedger(session).allocate(binder.id, card.id, 1, Section.SIDEBOARD)

        assert await slot(session, binder.id, card.id, Section.MAINBOARD) == 1
        assert await slot(session, binder.id, card.id, Section.SIDEBOARD) == 0

    async def test_rejects_non_positive_quantity(self, session: AsyncSession) -> None:
        card = await add_card(session, "Island", 2)
        deck = await add_deck(session)

        with pytest.raises(InvalidQuantityError):
            await AllocationLedger(session).allocate(deck.id, card.id, 0)

    async def test_unknown_card_or_container(self, session: AsyncSession) -> None:
        card = await add_card(session, "Island", 2)
        deck = await add_deck(session)
        ledger = AllocationLedger(session)

        with pytest.raises(NotFoundError):
            await ledger.allocate(deck.id, 999, 1)
        with pytest.raises(NotFoundError):
            await ledger.allocate(999, card.id, 1)

    async def test_stats_recomputed(self, session: AsyncSession) -> None:
        """Container stats follow every allocation change."""
        card = await add_card(session, "Island", 1, price=2.0)
        deck = await add_deck(session)

        await AllocationLedger(session).allocate(deck.id, card.id, 2)

        assert deck.stats["owned_cards"] == 1
        assert deck.stats["wishlist_cards"] == 1
        assert deck.stats["completion_percentage"] == 50.0
        assert deck.stats["total_price"] == 4.0


class TestDeallocate:
    async def test_removes_allocation(self, session: AsyncSession) -> None:
        card = await add_card(session, "Island", 2)
        deck = await add_deck(session)
        ledger = AllocationLedger(session)
        await ledger.allocate(deck.id, card.id, 2)

        assert await ledger.deallocate(deck.id, card.id, Section.MAINBOARD) is True
        assert await ledger.available(card.id) == 2

    async def test_absent_allocation_is_noop(self, session: AsyncSession) -> None:
        card = await add_card(session, "Island", 2)
        deck = await add_deck(session)

        ledger = AllocationLedger(session)
        assert await ledger.deallocate(deck.id, card.id, Section.SIDEBOARD) is False


class TestUpdateAllocation:
    async def test_clamped_to_available(self, session: AsyncSession) -> None:
        """A request above availability is clamped and says so."""
        card = await add_card(session, "Island", 3)
        first = await add_deck(session, "First")
        second = await add_deck(session, "Second")
        ledger = AllocationLedger(session)
        await ledger.allocate(first.id, card.id, 2)

        update = await ledger.update_allocation(second.id, card.id, Section.MAINBOARD, 5)

        assert update == AllocationUpdate(requested=5, applied=1, clamped=True)
        assert await slot(session, second.id, card.id) == 1
        assert await ledger.verify_supply_invariant() == []

    async def test_existing_allocation_counts_as_available(self, session: AsyncSession) -> None:
        card = await add_card(session, "Island", 3)
        deck = await add_deck(session)
        ledger = AllocationLedger(session)
        await ledger.allocate(deck.id, card.id, 2)

        update = await ledger.update_allocation(deck.id, card.id, Section.MAINBOARD, 3)

        assert update == AllocationUpdate(requested=3, applied=3, clamped=False)

    async def test_lowering(self, session: AsyncSession) -> None:
        card = await add_card(session, "Island", 3)
        deck = await add_deck(session)
        ledger = AllocationLedger(session)
        await ledger.allocate(deck.id, card.id, 3)

        await ledger.update_allocation(deck.id, card.id, Section.MAINBOARD, 1)

        assert await slot(session, deck.id, card.id) == 1
        assert await ledger.available(card.id) == 2

    async def test_zero_removes(self, session: AsyncSession) -> None:
        """Allocations are never kept at zero."""
        card = await add_card(session, "Island", 3)
        deck = await add_deck(session)
        ledger = AllocationLedger(session)
        await ledger.allocate(deck.id, card.id, 2)

        update = await ledger.update_allocation(deck.id, card.id, Section.MAINBOARD, 0)

        assert update.applied == 0
        assert (await session.execute(select(AllocationDB))).scalars().all() == []


class TestBulkAllocate:
    async def test_idempotent_resubmission(self, session: AsyncSession) -> None:
        """Submitting the same batch twice does not double anything."""
        bolt = await add_card(session, "Lightning Bolt", 2)
        negate = await add_card(session, "Negate", 1)
        deck = await add_deck(session)
        ledger = AllocationLedger(session)
        items = [
            BulkAllocationItem(card_id=bolt.id, quantity=2),
            BulkAllocationItem(card_id=negate.id, quantity=2, section=Section.SIDEBOARD),
        ]

        first = await ledger.bulk_allocate(deck.id, items)
        await ledger.bulk_allocate(deck.id, items)

        assert (first.allocated, first.wishlisted, first.succeeded) == (3, 1, 2)
        assert await slot(session, deck.id, bolt.id) == 2
        assert await slot(session, deck.id, negate.id, Section.SIDEBOARD) == 1
        assert await container_totals(session, deck.id) == (3, 1)
        assert await ledger.verify_supply_invariant() == []

    async def test_demand_follows_shortfall(self, session: AsyncSession) -> None:
        """Demand appears only for a shortfall and goes away once supply covers it."""
        island = await add_card(session, "Island", 4)
        negate = await add_card(session, "Negate", 1)
        deck = await add_deck(session)
        ledger = AllocationLedger(session)

        await ledger.bulk_allocate(deck.id, [BulkAllocationItem(card_id=island.id, quantity=3)])
        await ledger.bulk_allocate(deck.id, [BulkAllocationItem(card_id=negate.id, quantity=2)])
        wish = await wishlist_card(session, "Negate")
        assert wish is not None
        assert await slot(session, deck.id, wish.id) == 1

        negate.quantity = 2
        await ledger.bulk_allocate(deck.id, [BulkAllocationItem(card_id=negate.id, quantity=2)])

        assert await wishlist_card(session, "Island") is None
        assert await slot(session, deck.id, negate.id) == 2
        assert await slot(session, deck.id, wish.id) == 0

    async def test_missing_cards_fail_individually(self, session: AsyncSession) -> None:
        """A missing card is counted as failed and the rest proceed."""
        card = await add_card(session, "Island", 4)
        deck = await add_deck(session)

        result = await AllocationLedger(session).bulk_allocate(
            deck.id,
            [
                BulkAllocationItem(card_id=card.id, quantity=4),
                BulkAllocationItem(card_id=12345, quantity=1),
                BulkAllocationItem(card_id=card.id, quantity=0, section=Section.SIDEBOARD),
            ],
        )

        assert result.succeeded == 1
        assert result.failed == 2
        assert result.partial
        assert await slot(session, deck.id, card.id) == 4

    async def test_shortfall_respects_other_containers(self, session: AsyncSession) -> None:
        card = await add_card(session, "Island", 3)
        other = await add_deck(session, "Other")
        deck = await add_deck(session, "Deck")
        ledger = AllocationLedger(session)
        await ledger.allocate(other.id, card.id, 2)

        result = await ledger.bulk_allocate(deck.id, [BulkAllocationItem(card.id, 4)])

        assert (result.allocated, result.wishlisted) == (1, 3)
        assert await ledger.verify_supply_invariant() == []

    async def test_progress_reported(self, session: AsyncSession) -> None:
        """Progress is reported every 25 items and at the end."""
        deck = await add_deck(session)
        cards = [await add_card(session, f"Card {i}", 1) for i in range(30)]
        calls: list[tuple[int, int]] = []

        await AllocationLedger(session).bulk_allocate(
            deck.id,
            [BulkAllocationItem(card.id, 1) for card in cards],
            on_progress=lambda done, total: calls.append((done, total)),
        )

        assert calls == [(25, 30), (30, 30)]


class TestReduceAllocations:
    async def test_owned_two_to_one(self, session: AsyncSession) -> None:
        """Owner drops from 2 to 1 copy: the deck keeps exactly 1."""
        card = await add_card(session, "Card A", 2)
        deck = await add_deck(session, "Deck D")
        ledger = AllocationLedger(session)
        await ledger.allocate(deck.id, card.id, 2)

        reductions = await ledger.reduce_allocations_for_card(card, 1)

        assert reductions == [Reduction(container_id=deck.id, section=Section.MAINBOARD, removed=1)]
        assert card.quantity == 1
        assert await slot(session, deck.id, card.id) == 1
        assert await container_totals(session, deck.id) == (1, 1)
        assert await ledger.verify_supply_invariant() == []

    async def test_oldest_container_trimmed_first(self, session: AsyncSession) -> None:
        """Containers are trimmed in ascending creation order."""
        card = await add_card(session, "Island", 4)
        older = await add_deck(session, "Older")
        newer = await add_deck(session, "Newer")
        ledger = AllocationLedger(session)
        await ledger.allocate(older.id, card.id, 2)
        await ledger.allocate(newer.id, card.id, 2)

        reductions = await ledger.reduce_allocations_for_card(card, 1)

        assert reductions == [
            Reduction(container_id=older.id, section=Section.MAINBOARD, removed=2),
            Reduction(container_id=newer.id, section=Section.MAINBOARD, removed=1),
        ]
        assert await slot(session, older.id, card.id) == 0
        assert await slot(session, newer.id, card.id) == 1

    async def test_sideboard_before_mainboard(self, session: AsyncSession) -> None:
        card = await add_card(session, "Negate", 3)
        deck = await add_deck(session)
        ledger = AllocationLedger(session)
        await ledger.allocate(deck.id, card.id, 2, Section.MAINBOARD)
        await ledger.allocate(deck.id, card.id, 1, Section.SIDEBOARD)

        reductions = await ledger.reduce_allocations_for_card(card, 1)

        assert [(r.section, r.removed) for r in reductions] == [
            (Section.SIDEBOARD, 1),
            (Section.MAINBOARD, 1),
        ]
        assert await slot(session, deck.id, card.id, Section.MAINBOARD) == 1

    async def test_within_bound_is_noop(self, session: AsyncSession) -> None:
        card = await add_card(session, "Island", 4)
        deck = await add_deck(session)
        ledger = AllocationLedger(session)
        await ledger.allocate(deck.id, card.id, 2)

        assert await ledger.reduce_allocations_for_card(card, 2) == []
        assert card.quantity == 2
        assert await slot(session, deck.id, card.id) == 2

    async def test_negative_quantity_rejected(self, session: AsyncSession) -> None:
        card = await add_card(session, "Island", 1)

        with pytest.raises(InvalidQuantityError):
            await AllocationLedger(session).reduce_allocations_for_card(card, -1)


class TestConvertToWishlist:
    async def test_totals_unchanged_after_delete(self, session: AsyncSession) -> None:
        """Converting then deleting keeps each container's owned + wishlist total."""
        card = await add_card(session, "Lightning Bolt", 3, edition="LEA", scryfall_id="bolt")
        first = await add_deck(session, "First")
        second = await add_deck(session, "Second")
        ledger = AllocationLedger(session)
        await ledger.allocate(first.id, card.id, 2)
        await ledger.allocate(second.id, card.id, 1, Section.SIDEBOARD)
        await ledger.allocate(second.id, card.id, 1)  # wishlisted: supply exhausted
        before = [sum(await container_totals(session, c.id)) for c in (first, second)]

        converted = await ledger.convert_allocations_to_wishlist(card)
        await delete_card(session, card.id)

        after = [sum(await container_totals(session, c.id)) for c in (first, second)]
        assert converted == 2
        assert after == before
        assert await container_totals(session, first.id) == (0, 2)
        wish = await wishlist_card(session, "Lightning Bolt")
        assert wish is not None
        assert wish.scryfall_id == "bolt"
        assert await slot(session, second.id, wish.id, Section.SIDEBOARD) == 1

    async def test_nothing_to_convert(self, session: AsyncSession) -> None:
        card = await add_card(session, "Island", 1)

        assert await AllocationLedger(session).convert_allocations_to_wishlist(card) == 0


class TestReads:
    async def test_allocation_summary(self, session: AsyncSession) -> None:
        card = await add_card(session, "Island", 5)
        first = await add_deck(session, "First")
        second = await add_deck(session, "Second")
        ledger = AllocationLedger(session)
        await ledger.allocate(first.id, card.id, 1)
        await ledger.allocate(second.id, card.id, 2)

        summary = await ledger.allocation_summary(card.id)

        assert (summary.owned, summary.allocated, summary.available) == (5, 3, 2)
        assert [(a.container_name, a.quantity) for a in summary.allocations] == [
            ("First", 1),
            ("Second", 2),
        ]

    async def test_check_quantity_reduction(self, session: AsyncSession) -> None:
        card = await add_card(session, "Island", 4)
        deck = await add_deck(session)
        ledger = AllocationLedger(session)
        await ledger.allocate(deck.id, card.id, 3)

        ok = await ledger.check_quantity_reduction(card.id, 3)
        short = await ledger.check_quantity_reduction(card.id, 1)

        assert ok.can_reduce and ok.excess == 0
        assert not short.can_reduce
        assert short.excess == 2
        assert short.affected_container_ids == (deck.id,)

    async def test_invariant_violation_detected(self, session: AsyncSession) -> None:
        """Rows written around the ledger are reported."""
        card = await add_card(session, "Island", 1)
        deck = await add_deck(session)
        session.add(
            AllocationDB(card_id=card.id, container_id=deck.id, section="mainboard", quantity=3)
        )
        await session.flush()

        assert await AllocationLedger(session).verify_supply_invariant() == [card.id]
