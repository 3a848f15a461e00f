"""
Allocation Ledger.

The single choke point for every change to a card's owned quantity or to an
allocation. It keeps the supply invariant:

    for every card that is not a wishlist card,
    sum(allocation.quantity across all containers) <= card.quantity

Requests for more copies than are free never fail. The ledger commits what
it can and records the shortfall as demand: an allocation of a wishlist-status
card with the same external identity, in the same container and section.
Allocations of wishlist-status cards are demand, not supply, and are exempt
from the cap.

Allocations never hold zero copies; a slot that would drop to zero is
deleted.

Reduction order (owned quantity lowered below what is allocated): containers
are trimmed oldest first (ascending creation time, then id), and within a
container the sideboard before the mainboard.
"""

import logging
from collections.abc import Callable, Sequence

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from deckvault.config import PROGRESS_EVERY
from deckvault.db.containers import recompute_stats
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
from deckvault.models.card import CardStatus
from deckvault.models.container import ContainerKind
from deckvault.models.db import AllocationDB, CardDB, ContainerDB
from deckvault.models.failure import InvalidQuantityError, NotFoundError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


def _is_demand(card: CardDB) -> bool:
    return card.status == CardStatus.WISHLIST


class AllocationLedger:
    """
    Invariant-preserving operations over allocations.

    Works inside the caller's session and flushes but never commits, so a
    batch of ledger calls forms one unit of work.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def total_allocated(self, card_id: int) -> int:
        """Copies of a card allocated across all containers."""
        result = await self._session.execute(
            select(func.coalesce(func.sum(AllocationDB.quantity), 0)).where(
                AllocationDB.card_id == card_id
            )
        )
        return int(result.scalar_one())

    async def available(self, card_id: int) -> int:
        """Owned copies not yet allocated. Wishlist cards have none."""
        card = await self._require_card(card_id)
        if _is_demand(card):
            return 0
        return max(0, card.quantity - await self.total_allocated(card_id))

    async def allocation_summary(self, card_id: int) -> AllocationSummary:
        card = await self._require_card(card_id)
        rows = await self._session.execute(
            select(AllocationDB, ContainerDB.name)
            .join(ContainerDB, ContainerDB.id == AllocationDB.container_id)
            .where(AllocationDB.card_id == card_id)
            .order_by(ContainerDB.created_at, ContainerDB.id, AllocationDB.section)
        )
        refs = [
            AllocationRef(
                container_id=allocation.container_id,
                container_name=name,
                section=Section(allocation.section),
                quantity=allocation.quantity,
            )
            for allocation, name in rows.all()
        ]
        return AllocationSummary(
            card_id=card.id,
            owned=card.quantity,
            allocated=sum(ref.quantity for ref in refs),
            allocations=refs,
        )

    async def check_quantity_reduction(
        self, card_id: int, new_quantity: int
    ) -> QuantityReductionCheck:
        """Preview whether lowering a card's owned quantity would trim allocations."""
        summary = await self.allocation_summary(card_id)
        excess = max(0, summary.allocated - new_quantity)
        affected = tuple(dict.fromkeys(ref.container_id for ref in summary.allocations))
        return QuantityReductionCheck(
            can_reduce=excess == 0,
            current_allocated=summary.allocated,
            excess=excess,
            affected_container_ids=affected if excess else (),
        )

    async def verify_supply_invariant(self) -> list[int]:
        """Ids of non-wishlist cards allocated beyond their owned quantity."""
        allocated = (
            select(
                AllocationDB.card_id.label("card_id"),
                func.sum(AllocationDB.quantity).label("allocated"),
            )
            .group_by(AllocationDB.card_id)
            .subquery()
        )
        result = await self._session.execute(
            select(CardDB.id)
            .join(allocated, allocated.c.card_id == CardDB.id)
            .where(
                CardDB.status != CardStatus.WISHLIST.value,
                allocated.c.allocated > CardDB.quantity,
            )
            .order_by(CardDB.id)
        )
        return list(result.scalars().all())

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def allocate(
        self,
        container_id: int,
        card_id: int,
        quantity: int,
        section: Section = Section.MAINBOARD,
        notes: str | None = None,
    ) -> AllocationResult:
        """
        Commit copies of a card to a container section.

        Adds to an existing allocation in the same slot. Commits at most the
        free copies; the rest is recorded as demand. Never raises for short
        supply.
        """
        if quantity <= 0:
            raise InvalidQuantityError(quantity)

        container = await self._require_container(container_id)
        card = await self._require_card(card_id)
        section = self._slot_section(container, section)

        if _is_demand(card):
            await self._add_to_slot(container.id, card.id, section, quantity, notes)
            await self._sync_demand(card)
            result = AllocationResult(allocated=0, wishlisted=quantity)
        else:
            free = max(0, card.quantity - await self.total_allocated(card.id))
            to_allocate = min(quantity, free)
            to_wishlist = quantity - to_allocate
            if to_allocate:
                await self._add_to_slot(container.id, card.id, section, to_allocate, notes)
            if to_wishlist:
                await self._add_demand(container.id, card, section, to_wishlist, notes)
            result = AllocationResult(allocated=to_allocate, wishlisted=to_wishlist)

        await self._refresh({container.id})
        await self._session.flush()

        if result.wishlisted:
            logger.info(
                "Allocated %d of %d x %s to container %d; %d wishlisted",
                result.allocated,
                quantity,
                card.name,
                container.id,
                result.wishlisted,
            )
        return result

    async def deallocate(self, container_id: int, card_id: int, section: Section) -> bool:
        """Remove an allocation entirely. Returns False if there was none."""
        allocation = await self._find_slot(container_id, card_id, section)
        if allocation is None:
            return False

        await self._session.delete(allocation)
        await self._refresh({container_id})
        await self._session.flush()
        return True

    async def update_allocation(
        self,
        container_id: int,
        card_id: int,
        section: Section,
        new_quantity: int,
    ) -> AllocationUpdate:
        """
        Set an allocation to a new quantity, clamped to what is available.

        Available means the slot's current quantity plus unallocated supply.
        A quantity of zero or less removes the allocation.
        """
        container = await self._require_container(container_id)
        card = await self._require_card(card_id)
        section = self._slot_section(container, section)

        if new_quantity <= 0:
            await self._set_slot(container.id, card.id, section, 0)
            await self._refresh({container.id})
            await self._session.flush()
            return AllocationUpdate(requested=new_quantity, applied=0, clamped=False)

        if _is_demand(card):
            applied = new_quantity
        else:
            existing = await self._find_slot(container.id, card.id, section)
            current = existing.quantity if existing is not None else 0
            others = await self.total_allocated(card.id) - current
            applied = min(new_quantity, max(0, card.quantity - others))

        await self._set_slot(container.id, card.id, section, applied)
        if _is_demand(card):
            await self._sync_demand(card)
        await self._refresh({container.id})
        await self._session.flush()

        clamped = applied < new_quantity
        if clamped:
            logger.info(
                "Allocation of %s in container %d clamped from %d to %d",
                card.name,
                container.id,
                new_quantity,
                applied,
            )
        return AllocationUpdate(requested=new_quantity, applied=applied, clamped=clamped)

    async def bulk_allocate(
        self,
        container_id: int,
        items: Sequence[BulkAllocationItem],
        on_progress: ProgressCallback | None = None,
    ) -> BulkAllocationResult:
        """
        Allocate a batch of cards to one container.

        Each item's quantity is the target for its (card, section) slot, not
        an increment: submitting the same item twice commits it once. The
        part of a target that supply cannot cover becomes demand. Items whose
        card is missing or whose quantity is not positive are counted as
        failed and the batch continues.
        """
        container = await self._require_container(container_id)
        allocated = wishlisted = succeeded = failed = 0
        total = len(items)

        for index, item in enumerate(items, start=1):
            card = await self._session.get(CardDB, item.card_id)
            if card is None or item.quantity <= 0:
                failed += 1
                logger.warning(
                    "Skipping bulk allocation of card %s to container %d: %s",
                    item.card_id,
                    container.id,
                    "card not found" if card is None else f"quantity {item.quantity}",
                )
            else:
                section = self._slot_section(container, item.section)
                if _is_demand(card):
                    await self._set_slot(container.id, card.id, section, item.quantity)
                    await self._sync_demand(card)
                    wishlisted += item.quantity
                else:
                    existing = await self._find_slot(container.id, card.id, section)
                    current = existing.quantity if existing is not None else 0
                    others = await self.total_allocated(card.id) - current
                    target = min(item.quantity, max(0, card.quantity - others))
                    shortfall = item.quantity - target
                    await self._set_slot(container.id, card.id, section, target)
                    await self._set_demand(container.id, card, section, shortfall)
                    allocated += target
                    wishlisted += shortfall
                succeeded += 1

            if on_progress is not None and (index % PROGRESS_EVERY == 0 or index == total):
                on_progress(index, total)

        await self._refresh({container.id})
        await self._session.flush()
        return BulkAllocationResult(
            allocated=allocated,
            wishlisted=wishlisted,
            succeeded=succeeded,
            failed=failed,
        )

    async def reduce_allocations_for_card(
        self, card: CardDB, new_owned_quantity: int
    ) -> list[Reduction]:
        """
        Set a card's owned quantity, trimming allocations that no longer fit.

        Trimmed copies stay visible as demand in the container they left.
        Returns one Reduction per trimmed allocation, in trim order.
        """
        if new_owned_quantity < 0:
            raise InvalidQuantityError(new_owned_quantity, minimum=0)

        card.quantity = new_owned_quantity
        if _is_demand(card):
            await self._session.flush()
            return []

        excess = await self.total_allocated(card.id) - new_owned_quantity
        if excess <= 0:
            await self._session.flush()
            return []

        result = await self._session.execute(
            select(AllocationDB)
            .join(ContainerDB, ContainerDB.id == AllocationDB.container_id)
            .where(AllocationDB.card_id == card.id)
            .order_by(
                ContainerDB.created_at,
                ContainerDB.id,
                case((AllocationDB.section == Section.SIDEBOARD.value, 0), else_=1),
            )
        )
        reductions: list[Reduction] = []
        for allocation in result.scalars().all():
            if excess <= 0:
                break
            removed = min(allocation.quantity, excess)
            container_id = allocation.container_id
            section = Section(allocation.section)

            await self._set_slot(container_id, card.id, section, allocation.quantity - removed)
            await self._add_demand(container_id, card, section, removed, allocation.notes)
            excess -= removed
            reductions.append(
                Reduction(container_id=container_id, section=section, removed=removed)
            )

        await self._refresh({r.container_id for r in reductions})
        await self._session.flush()

        logger.info(
            "Owned quantity of %s lowered to %d; trimmed %d allocation(s)",
            card.name,
            new_owned_quantity,
            len(reductions),
        )
        return reductions

    async def convert_allocations_to_wishlist(self, card: CardDB) -> int:
        """
        Turn every allocation of a card into demand for the same printing.

        Called before an owned card is deleted so its containers keep showing
        the copies they need. Each container's owned + wishlist total is
        unchanged. Returns the number of allocations converted.
        """
        if _is_demand(card):
            return 0

        result = await self._session.execute(
            select(AllocationDB).where(AllocationDB.card_id == card.id).order_by(AllocationDB.id)
        )
        allocations = list(result.scalars().all())
        if not allocations:
            return 0

        wish = await self._demand_card_for(card)
        touched: set[int] = set()
        for allocation in allocations:
            container_id = allocation.container_id
            section = Section(allocation.section)
            quantity = allocation.quantity
            notes = allocation.notes
            await self._session.delete(allocation)
            await self._add_to_slot(container_id, wish.id, section, quantity, notes)
            touched.add(container_id)

        await self._sync_demand(wish)
        await self._refresh(touched)
        await self._session.flush()

        logger.info(
            "Converted %d allocation(s) of %s to wishlist demand", len(allocations), card.name
        )
        return len(allocations)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _require_card(self, card_id: int) -> CardDB:
        card = await self._session.get(CardDB, card_id)
        if card is None:
            raise NotFoundError("Card", card_id)
        return card

    async def _require_container(self, container_id: int) -> ContainerDB:
        container = await self._session.get(ContainerDB, container_id)
        if container is None:
            raise NotFoundError("Container", container_id)
        return container

    @staticmethod
    def _slot_section(container: ContainerDB, section: Section) -> Section:
        # Binders have no sideboard
        if container.kind == ContainerKind.BINDER:
            return Section.MAINBOARD
        return section

    async def _find_slot(
        self, container_id: int, card_id: int, section: Section
    ) -> AllocationDB | None:
        result = await self._session.execute(
            select(AllocationDB).where(
                AllocationDB.container_id == container_id,
                AllocationDB.card_id == card_id,
                AllocationDB.section == section.value,
            )
        )
        return result.scalar_one_or_none()

    async def _add_to_slot(
        self,
        container_id: int,
        card_id: int,
        section: Section,
        quantity: int,
        notes: str | None = None,
    ) -> None:
        allocation = await self._find_slot(container_id, card_id, section)
        if allocation is not None:
            allocation.quantity += quantity
            return
        self._session.add(
            AllocationDB(
                container_id=container_id,
                card_id=card_id,
                section=section.value,
                quantity=quantity,
                notes=notes,
            )
        )

    async def _set_slot(
        self, container_id: int, card_id: int, section: Section, quantity: int
    ) -> None:
        allocation = await self._find_slot(container_id, card_id, section)
        if quantity <= 0:
            if allocation is not None:
                await self._session.delete(allocation)
            return
        if allocation is not None:
            allocation.quantity = quantity
            return
        self._session.add(
            AllocationDB(
                container_id=container_id,
                card_id=card_id,
                section=section.value,
                quantity=quantity,
            )
        )

    async def _find_demand_card(self, card: CardDB) -> CardDB | None:
        """Wishlist-status card with the same identity as `card`, if any."""
        stmt = select(CardDB).where(
            CardDB.status == CardStatus.WISHLIST.value,
            CardDB.edition == card.edition,
            CardDB.condition == card.condition,
            CardDB.foil == card.foil,
        )
        if card.scryfall_id:
            stmt = stmt.where(CardDB.scryfall_id == card.scryfall_id)
        else:
            stmt = stmt.where(CardDB.scryfall_id == "", CardDB.name == card.name)

        result = await self._session.execute(stmt.order_by(CardDB.id).limit(1))
        return result.scalar_one_or_none()

    async def _demand_card_for(self, card: CardDB) -> CardDB:
        """Wishlist-status twin of `card`, created when missing."""
        wish = await self._find_demand_card(card)
        if wish is not None:
            return wish

        wish = CardDB(
            name=card.name,
            edition=card.edition,
            quantity=0,
            status=CardStatus.WISHLIST.value,
            price=card.price,
            foil=card.foil,
            condition=card.condition,
            language=card.language,
            scryfall_id=card.scryfall_id,
            image=card.image,
        )
        self._session.add(wish)
        await self._session.flush()
        return wish

    async def _add_demand(
        self,
        container_id: int,
        card: CardDB,
        section: Section,
        quantity: int,
        notes: str | None = None,
    ) -> None:
        wish = await self._demand_card_for(card)
        await self._add_to_slot(container_id, wish.id, section, quantity, notes)
        await self._sync_demand(wish)

    async def _set_demand(
        self, container_id: int, card: CardDB, section: Section, quantity: int
    ) -> None:
        if quantity > 0:
            wish: CardDB | None = await self._demand_card_for(card)
        else:
            wish = await self._find_demand_card(card)
        if wish is None:
            return
        await self._set_slot(container_id, wish.id, section, quantity)
        await self._sync_demand(wish)

    async def _sync_demand(self, wish: CardDB) -> None:
        # A wishlist card wants at least as many copies as containers ask for
        wish.quantity = max(wish.quantity, await self.total_allocated(wish.id))

    async def _refresh(self, container_ids: set[int]) -> None:
        await self._session.flush()
        for container_id in sorted(container_ids):
            await recompute_stats(self._session, container_id)
