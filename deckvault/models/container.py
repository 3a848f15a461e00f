"""
Container domain model: decks, binders and what they hold.

A hydrated container is a list of entries, each either an OwnedEntry (an
allocation of owned copies) or a WishlistEntry (demand for copies the user
does not have). Consumers dispatch on the concrete type; anything else is
a programming error.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

from deckvault.models.allocation import Section


class ContainerKind(str, Enum):
    DECK = "deck"
    BINDER = "binder"


class DeckFormat(str, Enum):
    VINTAGE = "vintage"
    MODERN = "modern"
    COMMANDER = "commander"
    STANDARD = "standard"
    CUSTOM = "custom"


@dataclass(frozen=True, slots=True)
class OwnedEntry:
    """Owned copies of a card committed to a container section."""

    card_id: int
    name: str
    edition: str
    scryfall_id: str
    section: Section
    allocated_quantity: int
    price: float
    foil: bool
    condition: str
    image: str
    total_in_collection: int
    available_in_collection: int


@dataclass(frozen=True, slots=True)
class WishlistEntry:
    """
    Copies wanted for a container section but not owned.

    `card_id` is the wishlist-status card backing the demand, or None for a
    legacy free-standing entry.
    """

    name: str
    edition: str
    scryfall_id: str
    section: Section
    requested_quantity: int
    price: float
    foil: bool
    condition: str
    image: str
    card_id: int | None = None


ContainerEntry = OwnedEntry | WishlistEntry


def entry_quantity(entry: ContainerEntry) -> int:
    """Number of copies an entry stands for, whichever variant it is."""
    if isinstance(entry, OwnedEntry):
        return entry.allocated_quantity
    if isinstance(entry, WishlistEntry):
        return entry.requested_quantity
    raise TypeError(f"Unknown container entry: {entry!r}")


@dataclass(frozen=True, slots=True)
class ContainerStats:
    """Derived counters for a container."""

    total_cards: int = 0
    owned_cards: int = 0
    wishlist_cards: int = 0
    sideboard_cards: int = 0
    total_price: float = 0.0
    avg_price: float = 0.0
    completion_percentage: float = 100.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ContainerStats":
        if not data:
            return cls()
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


def compute_stats(entries: list[ContainerEntry]) -> ContainerStats:
    """
    Compute container stats from hydrated entries.

    An empty container is 100% complete.
    """
    owned = 0
    wishlist = 0
    sideboard = 0
    total_price = 0.0

    for entry in entries:
        quantity = entry_quantity(entry)
        if isinstance(entry, OwnedEntry):
            owned += quantity
        elif isinstance(entry, WishlistEntry):
            wishlist += quantity
        else:
            raise TypeError(f"Unknown container entry: {entry!r}")

        total_price += entry.price * quantity
        if entry.section == Section.SIDEBOARD:
            sideboard += quantity

    total = owned + wishlist
    return ContainerStats(
        total_cards=total,
        owned_cards=owned,
        wishlist_cards=wishlist,
        sideboard_cards=sideboard,
        total_price=round(total_price, 2),
        avg_price=round(total_price / total, 2) if total else 0.0,
        completion_percentage=round(owned / total * 100, 2) if total else 100.0,
    )
