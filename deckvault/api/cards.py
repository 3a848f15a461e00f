"""
Card inventory API endpoints.

Quantity edits are applied through the allocation ledger: lowering a card's
owned quantity below what its containers hold trims those allocations, and
the response lists what was trimmed.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from deckvault.db.database import get_session
from deckvault.db.inventory import (
    create_card,
    delete_card,
    export_inventory_rows,
    get_card,
    list_cards,
    update_card,
)
from deckvault.models.allocation import Section
from deckvault.models.card import CardCondition, CardStatus, NewCard
from deckvault.models.db import CardDB
from deckvault.models.failure import NotFoundError
from deckvault.parsers.csv_format import CsvDialect, build_csv
from deckvault.services.ledger import AllocationLedger

router = APIRouter(prefix="/cards", tags=["cards"])


class CardResponse(BaseModel):
    """A card record."""

    id: int
    name: str
    edition: str
    quantity: int
    status: CardStatus
    price: float
    foil: bool
    condition: CardCondition
    language: str
    scryfall_id: str
    image: str

    @classmethod
    def from_db(cls, card: CardDB) -> "CardResponse":
        return cls(
            id=card.id,
            name=card.name,
            edition=card.edition,
            quantity=card.quantity,
            status=CardStatus(card.status),
            price=card.price,
            foil=card.foil,
            condition=CardCondition(card.condition),
            language=card.language,
            scryfall_id=card.scryfall_id,
            image=card.image,
        )


class CardCreateRequest(BaseModel):
    """Request model for adding a card to the inventory."""

    name: str = Field(..., min_length=1, examples=["Lightning Bolt"])
    quantity: int = Field(default=1, ge=1)
    edition: str = Field(default="", examples=["LEA"])
    status: CardStatus = CardStatus.COLLECTION
    price: float = Field(default=0.0, ge=0)
    foil: bool = False
    condition: CardCondition = CardCondition.NEAR_MINT
    language: str = "en"
    scryfall_id: str = ""
    image: str = ""


class CardUpdateRequest(BaseModel):
    """Request model for editing a card. Omitted fields are left unchanged."""

    quantity: int | None = Field(default=None, ge=0)
    status: CardStatus | None = None
    price: float | None = Field(default=None, ge=0)
    condition: CardCondition | None = None


class ReductionResponse(BaseModel):
    container_id: int
    section: Section
    removed: int


class CardUpdateResponse(BaseModel):
    """Edited card plus any allocations trimmed to fit the new quantity."""

    card: CardResponse
    reductions: list[ReductionResponse] = Field(default_factory=list)


class AllocationRefResponse(BaseModel):
    container_id: int
    container_name: str
    section: Section
    quantity: int


class AllocationSummaryResponse(BaseModel):
    """Where the copies of a card are committed."""

    card_id: int
    owned: int
    allocated: int
    available: int
    allocations: list[AllocationRefResponse] = Field(default_factory=list)


class QuantityCheckResponse(BaseModel):
    can_reduce: bool
    current_allocated: int
    excess: int
    affected_container_ids: list[int] = Field(default_factory=list)


@router.get("", response_model=list[CardResponse])
async def list_inventory(
    session: Annotated[AsyncSession, Depends(get_session)],
    status_filter: Annotated[CardStatus | None, Query(alias="status")] = None,
) -> list[CardResponse]:
    """List inventory cards, optionally only those with one status."""
    return [CardResponse.from_db(card) for card in await list_cards(session, status_filter)]


@router.post("", response_model=CardResponse, status_code=status.HTTP_201_CREATED)
async def add_card(
    request: CardCreateRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CardResponse:
    """Add a card to the inventory."""
    if not request.name.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Card name cannot be empty",
        )
    card = await create_card(
        session,
        NewCard(
            name=request.name.strip(),
            quantity=request.quantity,
            edition=request.edition,
            status=request.status,
            price=request.price,
            foil=request.foil,
            condition=request.condition,
            language=request.language,
            scryfall_id=request.scryfall_id,
            image=request.image,
        ),
    )
    return CardResponse.from_db(card)


@router.get("/export", response_class=PlainTextResponse)
async def export_inventory(
    session: Annotated[AsyncSession, Depends(get_session)],
    dialect: CsvDialect = CsvDialect.MOXFIELD,
    status_filter: Annotated[CardStatus | None, Query(alias="status")] = None,
) -> str:
    """Export the inventory as Moxfield or ManaBox CSV."""
    return build_csv(await export_inventory_rows(session, status_filter), dialect)


@router.get("/{card_id}", response_model=CardResponse)
async def get_inventory_card(
    card_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CardResponse:
    card = await get_card(session, card_id)
    if card is None:
        raise NotFoundError("Card", card_id)
    return CardResponse.from_db(card)


@router.patch("/{card_id}", response_model=CardUpdateResponse)
async def edit_card(
    card_id: int,
    request: CardUpdateRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CardUpdateResponse:
    """
    Edit a card.

    Lowering `quantity` below the copies allocated to containers trims those
    allocations (oldest container first, sideboard before mainboard); the
    trimmed copies reappear as wishlist demand in the same container.
    """
    card, reductions = await update_card(
        session,
        card_id,
        quantity=request.quantity,
        status=request.status,
        price=request.price,
        condition=request.condition,
    )
    return CardUpdateResponse(
        card=CardResponse.from_db(card),
        reductions=[
            ReductionResponse(container_id=r.container_id, section=r.section, removed=r.removed)
            for r in reductions
        ],
    )


@router.delete("/{card_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_card(
    card_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> None:
    """
    Delete a card.

    Containers that used it keep the copies as wishlist demand.
    """
    if not await delete_card(session, card_id):
        raise NotFoundError("Card", card_id)


@router.get("/{card_id}/allocations", response_model=AllocationSummaryResponse)
async def card_allocations(
    card_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> AllocationSummaryResponse:
    summary = await AllocationLedger(session).allocation_summary(card_id)
    return AllocationSummaryResponse(
        card_id=summary.card_id,
        owned=summary.owned,
        allocated=summary.allocated,
        available=summary.available,
        allocations=[
            AllocationRefResponse(
                container_id=ref.container_id,
                container_name=ref.container_name,
                section=ref.section,
                quantity=ref.quantity,
            )
            for ref in summary.allocations
        ],
    )


@router.get("/{card_id}/quantity-check", response_model=QuantityCheckResponse)
async def check_quantity(
    card_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
    quantity: Annotated[int, Query(ge=0)],
) -> QuantityCheckResponse:
    """Preview whether lowering the owned quantity would trim allocations."""
    check = await AllocationLedger(session).check_quantity_reduction(card_id, quantity)
    return QuantityCheckResponse(
        can_reduce=check.can_reduce,
        current_allocated=check.current_allocated,
        excess=check.excess,
        affected_container_ids=list(check.affected_container_ids),
    )
