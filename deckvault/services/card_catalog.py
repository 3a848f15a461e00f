"""
Card catalog: resolves card names and ids to canonical printing metadata.

The bulk operation controller depends only on the CardCatalog protocol.
ScryfallCatalog is the production adapter over the Scryfall REST API.

Scryfall asks clients to stay under 10 requests per second. Batched lookups
use /cards/collection (75 identifiers per request) and pause between
requests; a rate-limited batch (HTTP 429) is retried after a short wait.
"""

import asyncio
import logging
import re
from collections.abc import Sequence
from typing import Any, Protocol

import httpx

from deckvault.config import CATALOG_BATCH_SIZE, CATALOG_MAX_RETRIES, settings
from deckvault.models.card import CardIdentifier, CatalogCard

logger = logging.getLogger(__name__)

# Wait after a 429 before retrying a batch
_RATE_LIMIT_DELAY = 0.1

# Pause between two batch requests
_BATCH_PAUSE = 0.05

_UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)


class CatalogError(Exception):
    """Raised when the catalog cannot be reached or answers with an error."""

    pass


class CardCatalog(Protocol):
    async def resolve(self, name_or_id: str, set_hint: str | None = None) -> CatalogCard | None:
        """Resolve one card. Returns None when the catalog has no match."""
        ...

    async def resolve_batch(
        self, identifiers: Sequence[CardIdentifier]
    ) -> dict[str, CatalogCard]:
        """Resolve many cards at once, keyed by `CardIdentifier.key`. Misses are absent."""
        ...


def _to_price(value: Any) -> float:
    try:
        return float(value) if value else 0.0
    except (TypeError, ValueError):
        return 0.0


def _image_of(data: dict[str, Any]) -> str:
    image_uris = data.get("image_uris")
    if image_uris:
        return str(image_uris.get("normal", ""))
    faces = data.get("card_faces") or []
    if faces and faces[0].get("image_uris"):
        return str(faces[0]["image_uris"].get("normal", ""))
    return ""


def card_from_scryfall(data: dict[str, Any]) -> CatalogCard:
    """Build a CatalogCard from a Scryfall card object."""
    prices = data.get("prices") or {}
    return CatalogCard(
        scryfall_id=str(data["id"]),
        name=str(data["name"]),
        set_code=str(data.get("set", "")).upper(),
        price=_to_price(prices.get("usd")),
        foil_price=_to_price(prices.get("usd_foil")),
        image=_image_of(data),
        collector_number=str(data.get("collector_number", "")),
    )


def pick_best_print(prints: Sequence[CatalogCard], foil: bool = False) -> CatalogCard | None:
    """
    Choose the most useful printing from a search result.

    Prefers a print with both a price and an image, then one with a price,
    then the first result.
    """
    if not prints:
        return None
    for card in prints:
        if card.price_for(foil) > 0 and card.image:
            return card
    for card in prints:
        if card.price_for(foil) > 0:
            return card
    return prints[0]


def _identifier_payload(identifier: CardIdentifier) -> dict[str, str]:
    if identifier.scryfall_id:
        return {"id": identifier.scryfall_id}
    if identifier.set_code:
        return {"name": identifier.name, "set": identifier.set_code.lower()}
    return {"name": identifier.name}


def _name_keys(name: str) -> list[str]:
    """Lookup keys for a card name, including the front face of a split card."""
    lowered = name.lower()
    keys = [lowered]
    if " // " in lowered:
        keys.append(lowered.split(" // ", 1)[0])
    return keys


class ScryfallCatalog:
    """
    CardCatalog backed by the Scryfall API.

    Pass an httpx.AsyncClient to share a connection pool (and to mock the API
    in tests); otherwise the catalog opens its own and `aclose` releases it.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        base_url: str | None = None,
    ) -> None:
        self.base_url = (base_url or settings.scryfall_api_url).rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            headers={"User-Agent": "DeckVault/1.0", "Accept": "application/json"},
            timeout=settings.scryfall_timeout,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def resolve(self, name_or_id: str, set_hint: str | None = None) -> CatalogCard | None:
        """
        Resolve a card by Scryfall id or by name.

        Names are searched exactly over all printings (restricted to
        `set_hint` when given) and the best print is kept; if that finds
        nothing a fuzzy name lookup is tried.

        Raises:
            CatalogError: If the API fails for a reason other than "not found"
        """
        if _UUID_PATTERN.match(name_or_id):
            data = await self._get_json(f"/cards/{name_or_id}")
            return card_from_scryfall(data) if data else None

        query = f'!"{name_or_id}"'
        if set_hint:
            query += f" set:{set_hint.lower()}"
        data = await self._get_json(
            "/cards/search", {"q": query, "unique": "prints", "order": "released"}
        )
        if data and data.get("data"):
            prints = [card_from_scryfall(item) for item in data["data"]]
            return pick_best_print(prints)

        data = await self._get_json("/cards/named", {"fuzzy": name_or_id})
        return card_from_scryfall(data) if data else None

    async def resolve_batch(
        self, identifiers: Sequence[CardIdentifier]
    ) -> dict[str, CatalogCard]:
        """
        Resolve identifiers through /cards/collection, 75 per request.

        A batch still rate-limited after CATALOG_MAX_RETRIES attempts, or
        answered with another error, is logged and left unresolved; its
        identifiers are simply absent from the result.
        """
        resolved: dict[str, CatalogCard] = {}
        for start in range(0, len(identifiers), CATALOG_BATCH_SIZE):
            batch = identifiers[start : start + CATALOG_BATCH_SIZE]
            cards = await self._fetch_collection(batch)
            resolved.update(self._match_batch(batch, cards))

            if start + CATALOG_BATCH_SIZE < len(identifiers):
                await asyncio.sleep(_BATCH_PAUSE)

        logger.info("Resolved %d/%d cards in batch", len(resolved), len(identifiers))
        return resolved

    async def _fetch_collection(self, batch: Sequence[CardIdentifier]) -> list[CatalogCard]:
        body = {"identifiers": [_identifier_payload(identifier) for identifier in batch]}
        url = f"{self.base_url}/cards/collection"

        for attempt in range(1, CATALOG_MAX_RETRIES + 1):
            try:
                response = await self._client.post(url, json=body)
            except httpx.RequestError as e:
                logger.warning("Catalog batch request failed (attempt %d): %s", attempt, e)
                continue

            if response.status_code == 429:
                logger.warning("Catalog rate limited, retrying batch (attempt %d)", attempt)
                await asyncio.sleep(_RATE_LIMIT_DELAY)
                continue
            if response.is_error:
                logger.error("Catalog batch lookup failed: HTTP %d", response.status_code)
                return []

            return [card_from_scryfall(item) for item in response.json().get("data", [])]

        logger.error(
            "Catalog batch of %d cards skipped after %d attempts",
            len(batch),
            CATALOG_MAX_RETRIES,
        )
        return []

    @staticmethod
    def _match_batch(
        batch: Sequence[CardIdentifier], cards: list[CatalogCard]
    ) -> dict[str, CatalogCard]:
        """Map returned cards back to the identifiers that asked for them."""
        by_id = {card.scryfall_id: card for card in cards}
        by_name_set: dict[tuple[str, str], CatalogCard] = {}
        by_name: dict[str, CatalogCard] = {}
        for card in cards:
            for key in _name_keys(card.name):
                by_name_set.setdefault((key, card.set_code.lower()), card)
                by_name.setdefault(key, card)

        matched: dict[str, CatalogCard] = {}
        for identifier in batch:
            card: CatalogCard | None
            if identifier.scryfall_id:
                card = by_id.get(identifier.scryfall_id)
            else:
                name = identifier.name.lower()
                if identifier.set_code:
                    card = by_name_set.get((name, identifier.set_code.lower()))
                else:
                    card = by_name.get(name)
            if card is not None:
                matched[identifier.key] = card
        return matched

    async def _get_json(
        self, path: str, params: dict[str, str] | None = None
    ) -> dict[str, Any] | None:
        try:
            response = await self._client.get(f"{self.base_url}{path}", params=params)
        except httpx.RequestError as e:
            raise CatalogError(f"Catalog request to {path} failed: {e}") from e

        if response.status_code == 404:
            return None
        if response.is_error:
            raise CatalogError(f"Catalog request to {path} failed: HTTP {response.status_code}")
        data: dict[str, Any] = response.json()
        return data
