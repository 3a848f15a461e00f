from dataclasses import dataclass
from enum import Enum


class CardStatus(str, Enum):
    """What an inventory record represents."""

    COLLECTION = "collection"
    SALE = "sale"
    TRADE = "trade"
    WISHLIST = "wishlist"


class CardCondition(str, Enum):
    MINT = "M"
    NEAR_MINT = "NM"
    LIGHTLY_PLAYED = "LP"
    MODERATELY_PLAYED = "MP"
    HEAVILY_PLAYED = "HP"
    POOR = "PO"


@dataclass(frozen=True, slots=True)
class NewCard:
    """
    Input for creating an inventory record.

    Attributes:
        name: Card name as printed
        edition: Set code (e.g., "LEA", "MH2"); empty when unknown
        quantity: Copies owned (or wanted, for wishlist status)
        status: Inventory status
        price: Unit price in USD, 0.0 when unknown
        foil: Whether the copies are foil
        condition: Physical condition
        scryfall_id: External catalog id, empty when unresolved
    """

    name: str
    quantity: int
    edition: str = ""
    status: CardStatus = CardStatus.COLLECTION
    price: float = 0.0
    foil: bool = False
    condition: CardCondition = CardCondition.NEAR_MINT
    language: str = "en"
    scryfall_id: str = ""
    image: str = ""


@dataclass(frozen=True, slots=True)
class CatalogCard:
    """Canonical metadata for one printing, as returned by the card catalog."""

    scryfall_id: str
    name: str
    set_code: str
    price: float = 0.0
    foil_price: float = 0.0
    image: str = ""
    collector_number: str = ""

    @property
    def is_placeholder(self) -> bool:
        return not self.scryfall_id

    def price_for(self, foil: bool) -> float:
        """Unit price for the requested finish, falling back to the other one."""
        if foil and self.foil_price:
            return self.foil_price
        return self.price or self.foil_price

    @classmethod
    def placeholder(cls, name: str, set_code: str = "") -> "CatalogCard":
        """Zero-price record used when the catalog has no match."""
        return cls(scryfall_id="", name=name, set_code=set_code)


@dataclass(frozen=True, slots=True)
class CardIdentifier:
    """One entry of a batched catalog lookup."""

    name: str
    set_code: str = ""
    scryfall_id: str = ""

    @property
    def key(self) -> str:
        """Stable key used to map batch results back to the request."""
        if self.scryfall_id:
            return self.scryfall_id
        return f"{self.name.lower()}|{self.set_code.lower()}"
