"""
Container (deck and binder) persistence.

Containers hold no card data of their own. Their contents are allocation
rows pointing at inventory cards, plus legacy free-standing wishlist rows,
and their stats are derived from the hydrated entries.
"""

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from deckvault.models.allocation import Section
from deckvault.models.card import CardStatus
from deckvault.models.container import (
    ContainerEntry,
    ContainerKind,
    ContainerStats,
    DeckFormat,
    OwnedEntry,
    WishlistEntry,
    compute_stats,
)
from deckvault.models.db import AllocationDB, CardDB, ContainerDB, WishlistItemDB, utcnow
from deckvault.parsers.csv_format import ExportRow


async def create_container(
    session: AsyncSession,
    kind: ContainerKind,
    name: str,
    *,
    format_name: DeckFormat | None = None,
    commander: str | None = None,
    description: str = "",
) -> ContainerDB:
    """
    Create a deck or binder.

    Raises ValueError if the name is blank. Binders carry no format or
    commander.
    """
    name = name.strip()
    if not name:
        raise ValueError("Container name must not be empty")

    is_deck = kind == ContainerKind.DECK
    container = ContainerDB(
        kind=kind.value,
        name=name,
        description=description,
        format=(format_name or DeckFormat.CUSTOM).value if is_deck else None,
        commander=commander if is_deck else None,
        stats=ContainerStats().to_dict(),
    )
    session.add(container)
    await session.flush()
    return container


async def get_container(session: AsyncSession, container_id: int) -> ContainerDB | None:
    """Get a container by id, or None."""
    return await session.get(ContainerDB, container_id)


async def list_containers(
    session: AsyncSession, kind: ContainerKind | None = None
) -> list[ContainerDB]:
    """List containers in creation order, optionally filtered by kind."""
    stmt = select(ContainerDB).order_by(ContainerDB.created_at, ContainerDB.id)
    if kind is not None:
        stmt = stmt.where(ContainerDB.kind == kind.value)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def delete_container(session: AsyncSession, container_id: int) -> bool:
    """
    Delete a container with its allocations and wishlist rows.

    Cards stay in the inventory. Returns True if deleted, False if not found.
    """
    await session.execute(delete(AllocationDB).where(AllocationDB.container_id == container_id))
    await session.execute(
        delete(WishlistItemDB).where(WishlistItemDB.container_id == container_id)
    )
    result = await session.execute(delete(ContainerDB).where(ContainerDB.id == container_id))
    # rowcount is available on DELETE results; type stubs incomplete for async
    return int(result.rowcount) > 0  # type: ignore[attr-defined]


async def container_card_ids(session: AsyncSession, container_id: int) -> list[int]:
    """Distinct ids of cards allocated to a container, in allocation order."""
    result = await session.execute(
        select(AllocationDB.card_id)
        .where(AllocationDB.container_id == container_id)
        .order_by(AllocationDB.added_at, AllocationDB.id)
    )
    return list(dict.fromkeys(result.scalars().all()))


async def add_wishlist_item(
    session: AsyncSession,
    container_id: int,
    name: str,
    quantity: int,
    *,
    section: Section = Section.MAINBOARD,
    edition: str = "",
    scryfall_id: str = "",
    price: float = 0.0,
    foil: bool = False,
    condition: str = "NM",
    image: str = "",
) -> WishlistItemDB:
    """
    Add a legacy free-standing wishlist entry to a container.

    Entries matching on identity and section are merged.
    """
    result = await session.execute(
        select(WishlistItemDB).where(
            WishlistItemDB.container_id == container_id,
            WishlistItemDB.name == name,
            WishlistItemDB.edition == edition,
            WishlistItemDB.foil == foil,
            WishlistItemDB.condition == condition,
            WishlistItemDB.section == section.value,
        )
    )
    existing = result.scalars().first()
    if existing is not None:
        existing.quantity += quantity
        item = existing
    else:
        item = WishlistItemDB(
            container_id=container_id,
            name=name,
            quantity=quantity,
            section=section.value,
            edition=edition,
            scryfall_id=scryfall_id,
            price=price,
            foil=foil,
            condition=condition,
            image=image,
        )
        session.add(item)

    await session.flush()
    await recompute_stats(session, container_id)
    return item


async def hydrate_container(session: AsyncSession, container_id: int) -> list[ContainerEntry]:
    """
    Resolve a container's allocations and wishlist rows into entries.

    Allocations of wishlist-status cards become WishlistEntry; all other
    allocations become OwnedEntry with collection-wide availability.
    """
    rows = (
        await session.execute(
            select(AllocationDB, CardDB)
            .join(CardDB, CardDB.id == AllocationDB.card_id)
            .where(AllocationDB.container_id == container_id)
            .order_by(AllocationDB.added_at, AllocationDB.id)
        )
    ).all()

    card_ids = {card.id for _, card in rows}
    totals: dict[int, int] = {}
    if card_ids:
        total_rows = await session.execute(
            select(AllocationDB.card_id, func.sum(AllocationDB.quantity))
            .where(AllocationDB.card_id.in_(card_ids))
            .group_by(AllocationDB.card_id)
        )
        totals = {card_id: int(total) for card_id, total in total_rows.all()}

    entries: list[ContainerEntry] = []
    for allocation, card in rows:
        section = Section(allocation.section)
        if card.status == CardStatus.WISHLIST:
            entries.append(
                WishlistEntry(
                    name=card.name,
                    edition=card.edition,
                    scryfall_id=card.scryfall_id,
                    section=section,
                    requested_quantity=allocation.quantity,
                    price=card.price,
                    foil=card.foil,
                    condition=card.condition,
                    image=card.image,
                    card_id=card.id,
                )
            )
        else:
            entries.append(
                OwnedEntry(
                    card_id=card.id,
                    name=card.name,
                    edition=card.edition,
                    scryfall_id=card.scryfall_id,
                    section=section,
                    allocated_quantity=allocation.quantity,
                    price=card.price,
                    foil=card.foil,
                    condition=card.condition,
                    image=card.image,
                    total_in_collection=card.quantity,
                    available_in_collection=max(0, card.quantity - totals.get(card.id, 0)),
                )
            )

    legacy = await session.execute(
        select(WishlistItemDB)
        .where(WishlistItemDB.container_id == container_id)
        .order_by(WishlistItemDB.added_at, WishlistItemDB.id)
    )
    for item in legacy.scalars().all():
        entries.append(
            WishlistEntry(
                name=item.name,
                edition=item.edition,
                scryfall_id=item.scryfall_id,
                section=Section(item.section),
                requested_quantity=item.quantity,
                price=item.price,
                foil=item.foil,
                condition=item.condition,
                image=item.image,
            )
        )

    return entries


async def recompute_stats(session: AsyncSession, container_id: int) -> ContainerStats:
    """Recompute and store a container's stats. Missing containers get empty stats."""
    container = await get_container(session, container_id)
    if container is None:
        return ContainerStats()

    stats = compute_stats(await hydrate_container(session, container_id))
    container.stats = stats.to_dict()
    container.updated_at = utcnow()
    return stats


async def export_rows(session: AsyncSession, container_id: int) -> list[ExportRow]:
    """CSV export rows for a container, owned and wanted copies alike."""
    rows: list[ExportRow] = []
    for entry in await hydrate_container(session, container_id):
        if isinstance(entry, OwnedEntry):
            quantity = entry.allocated_quantity
        elif isinstance(entry, WishlistEntry):
            quantity = entry.requested_quantity
        else:
            raise TypeError(f"Unknown container entry: {entry!r}")
        rows.append(
            ExportRow(
                name=entry.name,
                set_code=entry.edition,
                quantity=quantity,
                foil=entry.foil,
                scryfall_id=entry.scryfall_id,
                price=entry.price,
                condition=entry.condition,
            )
        )
    return rows
