"""
Container (deck and binder) API endpoints.

Allocation changes report what was actually committed: a request for more
copies than are free is split into allocated and wishlisted copies, and an
update that had to be clamped says so.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from deckvault.db.containers import (
    add_wishlist_item,
    create_container,
    export_rows,
    get_container,
    hydrate_container,
    list_containers,
)
from deckvault.db.database import get_session
from deckvault.models.allocation import Section
from deckvault.models.container import (
    ContainerEntry,
    ContainerKind,
    ContainerStats,
    DeckFormat,
    OwnedEntry,
    WishlistEntry,
)
from deckvault.models.db import ContainerDB
from deckvault.models.failure import NotFoundError
from deckvault.parsers.csv_format import CsvDialect, build_csv
from deckvault.services.ledger import AllocationLedger

router = APIRouter(prefix="/containers", tags=["containers"])


class ContainerCreateRequest(BaseModel):
    """Request model for creating a deck or binder."""

    kind: ContainerKind = ContainerKind.DECK
    name: str = Field(..., min_length=1, examples=["Mono Red Burn"])
    description: str = ""
    format: DeckFormat | None = Field(default=None, description="Decks only")
    commander: str | None = Field(default=None, description="Decks only")


class StatsResponse(BaseModel):
    total_cards: int = 0
    owned_cards: int = 0
    wishlist_cards: int = 0
    sideboard_cards: int = 0
    total_price: float = 0.0
    avg_price: float = 0.0
    completion_percentage: float = 100.0


class ContainerResponse(BaseModel):
    """A container without its entries."""

    id: int
    kind: ContainerKind
    name: str
    description: str
    format: DeckFormat | None = None
    commander: str | None = None
    stats: StatsResponse

    @classmethod
    def from_db(cls, container: ContainerDB) -> "ContainerResponse":
        stats = ContainerStats.from_dict(container.stats)
        return cls(
            id=container.id,
            kind=ContainerKind(container.kind),
            name=container.name,
            description=container.description,
            format=DeckFormat(container.format) if container.format else None,
            commander=container.commander,
            stats=StatsResponse(**stats.to_dict()),
        )


class EntryResponse(BaseModel):
    """
    One line of a hydrated container.

    `owned` distinguishes allocated copies from wishlist demand.
    """

    owned: bool
    card_id: int | None
    name: str
    edition: str
    scryfall_id: str
    section: Section
    quantity: int
    price: float
    foil: bool
    condition: str
    image: str
    available_in_collection: int | None = None


class ContainerDetailResponse(ContainerResponse):
    entries: list[EntryResponse] = Field(default_factory=list)


class AllocateRequest(BaseModel):
    card_id: int
    quantity: int = Field(..., ge=1)
    section: Section = Section.MAINBOARD
    notes: str | None = None


class AllocateResponse(BaseModel):
    allocated: int
    wishlisted: int


class UpdateAllocationRequest(BaseModel):
    card_id: int
    section: Section = Section.MAINBOARD
    quantity: int = Field(..., description="New quantity; 0 or less removes the allocation")


class UpdateAllocationResponse(BaseModel):
    requested: int
    applied: int
    clamped: bool


class WishlistItemRequest(BaseModel):
    name: str = Field(..., min_length=1)
    quantity: int = Field(default=1, ge=1)
    section: Section = Section.MAINBOARD
    edition: str = ""
    scryfall_id: str = ""
    price: float = Field(default=0.0, ge=0)
    foil: bool = False
    condition: str = "NM"


def _entry_response(entry: ContainerEntry) -> EntryResponse:
    if isinstance(entry, OwnedEntry):
        return EntryResponse(
            owned=True,
            card_id=entry.card_id,
            name=entry.name,
            edition=entry.edition,
            scryfall_id=entry.scryfall_id,
            section=entry.section,
            quantity=entry.allocated_quantity,
            price=entry.price,
            foil=entry.foil,
            condition=entry.condition,
            image=entry.image,
            available_in_collection=entry.available_in_collection,
        )
    if isinstance(entry, WishlistEntry):
        return EntryResponse(
            owned=False,
            card_id=entry.card_id,
            name=entry.name,
            edition=entry.edition,
            scryfall_id=entry.scryfall_id,
            section=entry.section,
            quantity=entry.requested_quantity,
            price=entry.price,
            foil=entry.foil,
            condition=entry.condition,
            image=entry.image,
        )
    raise TypeError(f"Unknown container entry: {entry!r}")


async def _require_container(session: AsyncSession, container_id: int) -> ContainerDB:
    container = await get_container(session, container_id)
    if container is None:
        raise NotFoundError("Container", container_id)
    return container


@router.post("", response_model=ContainerResponse, status_code=status.HTTP_201_CREATED)
async def create(
    request: ContainerCreateRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> ContainerResponse:
    """Create an empty deck or binder."""
    try:
        container = await create_container(
            session,
            request.kind,
            request.name,
            format_name=request.format,
            commander=request.commander,
            description=request.description,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return ContainerResponse.from_db(container)


@router.get("", response_model=list[ContainerResponse])
async def list_all(
    session: Annotated[AsyncSession, Depends(get_session)],
    kind: ContainerKind | None = None,
) -> list[ContainerResponse]:
    """List containers in creation order."""
    return [ContainerResponse.from_db(c) for c in await list_containers(session, kind)]


@router.get("/{container_id}", response_model=ContainerDetailResponse)
async def get_detail(
    container_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> ContainerDetailResponse:
    """Get a container with its owned and wishlist entries."""
    container = await _require_container(session, container_id)
    entries = await hydrate_container(session, container_id)
    summary = ContainerResponse.from_db(container)
    return ContainerDetailResponse(
        **summary.model_dump(),
        entries=[_entry_response(entry) for entry in entries],
    )


@router.post("/{container_id}/allocations", response_model=AllocateResponse)
async def allocate(
    container_id: int,
    request: AllocateRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> AllocateResponse:
    """
    Add copies of a card to the container.

    Copies beyond what is free in the collection are added as wishlist
    demand instead of failing.
    """
    result = await AllocationLedger(session).allocate(
        container_id, request.card_id, request.quantity, request.section, request.notes
    )
    return AllocateResponse(allocated=result.allocated, wishlisted=result.wishlisted)


@router.put("/{container_id}/allocations", response_model=UpdateAllocationResponse)
async def update_allocation(
    container_id: int,
    request: UpdateAllocationRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> UpdateAllocationResponse:
    """Set an allocation's quantity, clamped to the copies available."""
    update = await AllocationLedger(session).update_allocation(
        container_id, request.card_id, request.section, request.quantity
    )
    return UpdateAllocationResponse(
        requested=update.requested, applied=update.applied, clamped=update.clamped
    )


@router.delete(
    "/{container_id}/allocations/{card_id}", status_code=status.HTTP_204_NO_CONTENT
)
async def deallocate(
    container_id: int,
    card_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
    section: Section = Section.MAINBOARD,
) -> None:
    """Remove a card from one section of the container."""
    await _require_container(session, container_id)
    if not await AllocationLedger(session).deallocate(container_id, card_id, section):
        raise NotFoundError("Allocation of card", card_id)


@router.post(
    "/{container_id}/wishlist",
    response_model=ContainerResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_wishlist(
    container_id: int,
    request: WishlistItemRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> ContainerResponse:
    """Record a wanted card directly on the container."""
    container = await _require_container(session, container_id)
    await add_wishlist_item(
        session,
        container_id,
        request.name,
        request.quantity,
        section=request.section,
        edition=request.edition.upper(),
        scryfall_id=request.scryfall_id,
        price=request.price,
        foil=request.foil,
        condition=request.condition,
    )
    return ContainerResponse.from_db(container)


@router.get("/{container_id}/export", response_class=PlainTextResponse)
async def export_container(
    container_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
    dialect: CsvDialect = CsvDialect.MOXFIELD,
) -> str:
    """Export the container as Moxfield or ManaBox CSV."""
    await _require_container(session, container_id)
    return build_csv(await export_rows(session, container_id), dialect)
