"""
Inventory persistence: the owned (and wanted) card records.

Quantity changes on existing cards never write `CardDB.quantity` directly;
they go through the allocation ledger so that no container is left holding
more copies than the user owns.
"""

import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from deckvault.db.containers import recompute_stats
from deckvault.models.allocation import Reduction
from deckvault.models.card import CardCondition, CardStatus, NewCard
from deckvault.models.checkpoint import PendingCard
from deckvault.models.db import AllocationDB, CardDB
from deckvault.models.failure import InvalidQuantityError, NotFoundError
from deckvault.parsers.csv_format import ExportRow
from deckvault.services.ledger import AllocationLedger

logger = logging.getLogger(__name__)


async def get_card(session: AsyncSession, card_id: int) -> CardDB | None:
    """Get a card by id, or None."""
    return await session.get(CardDB, card_id)


async def list_cards(session: AsyncSession, status: CardStatus | None = None) -> list[CardDB]:
    """List cards ordered by name, optionally filtered by status."""
    stmt = select(CardDB).order_by(CardDB.name, CardDB.id)
    if status is not None:
        stmt = stmt.where(CardDB.status == status.value)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def create_card(session: AsyncSession, new_card: NewCard) -> CardDB:
    """
    Add a card record.

    Raises InvalidQuantityError for a non-positive quantity.
    """
    if new_card.quantity <= 0:
        raise InvalidQuantityError(new_card.quantity)

    card = CardDB(
        name=new_card.name,
        edition=new_card.edition.upper(),
        quantity=new_card.quantity,
        status=new_card.status.value,
        price=new_card.price,
        foil=new_card.foil,
        condition=new_card.condition.value,
        language=new_card.language,
        scryfall_id=new_card.scryfall_id,
        image=new_card.image,
    )
    session.add(card)
    await session.flush()
    return card


async def find_matching_card(
    session: AsyncSession,
    *,
    name: str,
    edition: str = "",
    scryfall_id: str = "",
    condition: str = CardCondition.NEAR_MINT.value,
    foil: bool = False,
    status: CardStatus = CardStatus.COLLECTION,
) -> CardDB | None:
    """
    Find the card record for one physical printing.

    Matches on catalog id when known, otherwise on name, plus edition,
    condition and finish.
    """
    stmt = select(CardDB).where(
        CardDB.status == status.value,
        CardDB.edition == edition.upper(),
        CardDB.condition == condition,
        CardDB.foil == foil,
    )
    if scryfall_id:
        stmt = stmt.where(CardDB.scryfall_id == scryfall_id)
    else:
        stmt = stmt.where(CardDB.name == name)

    result = await session.execute(stmt.order_by(CardDB.id).limit(1))
    return result.scalar_one_or_none()


async def upsert_imported_card(session: AsyncSession, pending: PendingCard) -> CardDB:
    """
    Add imported copies to the collection.

    Copies of a printing already in the collection are added to that
    record; anything else becomes a new collection card.
    """
    existing = await find_matching_card(
        session,
        name=pending.name,
        edition=pending.set_code,
        scryfall_id=pending.scryfall_id,
        condition=pending.condition,
        foil=pending.foil,
    )
    if existing is not None:
        existing.quantity += pending.quantity
        if pending.price and not existing.price:
            existing.price = pending.price
        if pending.image and not existing.image:
            existing.image = pending.image
        await session.flush()
        return existing

    card = CardDB(
        name=pending.name,
        edition=pending.set_code.upper(),
        quantity=pending.quantity,
        status=CardStatus.COLLECTION.value,
        price=pending.price,
        foil=pending.foil,
        condition=pending.condition,
        language=pending.language,
        scryfall_id=pending.scryfall_id,
        image=pending.image,
    )
    session.add(card)
    await session.flush()
    return card


async def update_card(
    session: AsyncSession,
    card_id: int,
    *,
    quantity: int | None = None,
    status: CardStatus | None = None,
    price: float | None = None,
    condition: CardCondition | None = None,
) -> tuple[CardDB, list[Reduction]]:
    """
    Edit a card.

    A quantity change is applied by the ledger, which trims allocations that
    no longer fit. Switching a wishlist card to an owned status re-checks its
    allocations against the owned quantity the same way.

    Returns:
        Tuple of (card, reductions applied to containers)
    """
    card = await session.get(CardDB, card_id)
    if card is None:
        raise NotFoundError("Card", card_id)

    if price is not None:
        card.price = price
    if condition is not None:
        card.condition = condition.value

    status_became_supply = (
        status is not None
        and status != CardStatus.WISHLIST
        and card.status == CardStatus.WISHLIST
    )
    if status is not None:
        card.status = status.value

    reductions: list[Reduction] = []
    if quantity is not None or status_became_supply:
        ledger = AllocationLedger(session)
        target = quantity if quantity is not None else card.quantity
        reductions = await ledger.reduce_allocations_for_card(card, target)
    else:
        await session.flush()

    return card, reductions


async def delete_card(session: AsyncSession, card_id: int) -> bool:
    """
    Delete a card.

    Its allocations are converted to wishlist demand first so the containers
    that used it keep showing the copies they need. Returns False if the card
    does not exist.
    """
    card = await session.get(CardDB, card_id)
    if card is None:
        return False

    ledger = AllocationLedger(session)
    await ledger.convert_allocations_to_wishlist(card)

    container_ids = await _allocated_container_ids(session, card.id)
    await session.execute(delete(AllocationDB).where(AllocationDB.card_id == card.id))
    await session.delete(card)
    await session.flush()
    for container_id in container_ids:
        await recompute_stats(session, container_id)

    logger.info("Deleted card %d (%s)", card_id, card.name)
    return True


async def purge_card_from_container(
    session: AsyncSession, card_id: int, container_id: int
) -> bool:
    """
    Delete a card on behalf of a container that is being deleted.

    The card's allocations in `container_id` are dropped. Owned copies that
    other containers still use are converted to demand there before the card
    is removed. A wishlist card that other containers still want is kept.

    Returns False if the card no longer exists.
    """
    card = await session.get(CardDB, card_id)
    if card is None:
        return False

    await session.execute(
        delete(AllocationDB).where(
            AllocationDB.card_id == card.id,
            AllocationDB.container_id == container_id,
        )
    )
    await session.flush()

    if card.status == CardStatus.WISHLIST:
        if await _allocated_container_ids(session, card.id):
            await recompute_stats(session, container_id)
            return True
        await session.delete(card)
        await session.flush()
        await recompute_stats(session, container_id)
        return True

    await delete_card(session, card.id)
    await recompute_stats(session, container_id)
    return True


async def export_inventory_rows(
    session: AsyncSession, status: CardStatus | None = None
) -> list[ExportRow]:
    """CSV export rows for the inventory."""
    return [
        ExportRow(
            name=card.name,
            set_code=card.edition,
            quantity=card.quantity,
            foil=card.foil,
            scryfall_id=card.scryfall_id,
            price=card.price,
            condition=card.condition,
            language=card.language,
        )
        for card in await list_cards(session, status)
    ]


async def _allocated_container_ids(session: AsyncSession, card_id: int) -> list[int]:
    result = await session.execute(
        select(AllocationDB.container_id)
        .where(AllocationDB.card_id == card_id)
        .order_by(AllocationDB.container_id)
    )
    return list(dict.fromkeys(result.scalars().all()))
