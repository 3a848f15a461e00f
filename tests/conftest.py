from collections.abc import AsyncGenerator, Sequence

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from deckvault.api.operations import get_controller
from deckvault.db.containers import create_container
from deckvault.db.database import get_session
from deckvault.db.inventory import create_card
from deckvault.main import app
from deckvault.models.card import CardIdentifier, CardStatus, CatalogCard, NewCard
from deckvault.models.container import ContainerKind
from deckvault.models.db import Base, CardDB, ContainerDB
from deckvault.services.bulk_operations import BulkOperationController
from deckvault.services.card_catalog import CatalogError
from deckvault.services.checkpoints import CheckpointWriter, InMemoryCheckpointStore


@pytest.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine; every session shares the one connection."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for tests."""
    async with session_factory() as session:
        yield session


async def add_card(
    session: AsyncSession,
    name: str,
    quantity: int,
    *,
    edition: str = "",
    scryfall_id: str = "",
    price: float = 0.0,
    status: CardStatus = CardStatus.COLLECTION,
) -> CardDB:
    return await create_card(
        session,
        NewCard(
            name=name,
            quantity=quantity,
            edition=edition,
            scryfall_id=scryfall_id,
            price=price,
            status=status,
        ),
    )


async def add_deck(session: AsyncSession, name: str = "Deck") -> ContainerDB:
    return await create_container(session, ContainerKind.DECK, name)


async def add_binder(session: AsyncSession, name: str = "Binder") -> ContainerDB:
    return await create_container(session, ContainerKind.BINDER, name)


class FakeCatalog:
    """
    CardCatalog over a fixed set of cards, keyed by lowercase name.

    Records every call. `fail_batch` makes resolve_batch raise, `fail_names`
    makes resolve raise for those names.
    """

    def __init__(
        self,
        cards: Sequence[CatalogCard] = (),
        fail_batch: bool = False,
        fail_names: Sequence[str] = (),
    ) -> None:
        self.cards = {card.name.lower(): card for card in cards}
        self.fail_batch = fail_batch
        self.fail_names = {name.lower() for name in fail_names}
        self.batch_calls: list[list[CardIdentifier]] = []
        self.resolve_calls: list[str] = []

    async def resolve(self, name_or_id: str, set_hint: str | None = None) -> CatalogCard | None:
        self.resolve_calls.append(name_or_id)
        if name_or_id.lower() in self.fail_names:
            raise CatalogError(f"lookup of {name_or_id} failed")
        return self.cards.get(name_or_id.lower())

    async def resolve_batch(
        self, identifiers: Sequence[CardIdentifier]
    ) -> dict[str, CatalogCard]:
        self.batch_calls.append(list(identifiers))
        if self.fail_batch:
            raise CatalogError("batch lookup failed")
        found: dict[str, CatalogCard] = {}
        for identifier in identifiers:
            card = self.cards.get(identifier.name.lower())
            if card is not None:
                found[identifier.key] = card
        return found


BOLT = CatalogCard(
    scryfall_id="bolt-lea",
    name="Lightning Bolt",
    set_code="LEA",
    price=400.0,
    image="https://img/bolt.jpg",
)
COUNTERSPELL = CatalogCard(
    scryfall_id="counterspell-ice",
    name="Counterspell",
    set_code="ICE",
    price=2.5,
    image="https://img/counterspell.jpg",
)
NEGATE = CatalogCard(
    scryfall_id="negate-m19",
    name="Negate",
    set_code="M19",
    price=0.25,
    foil_price=1.0,
    image="https://img/negate.jpg",
)


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog([BOLT, COUNTERSPELL, NEGATE])


@pytest.fixture
def sample_deck_text() -> str:
    """Deck list with a sideboard section."""
    return """2 Lightning Bolt (LEA)
1 Counterspell
Sideboard
1 Negate"""


@pytest.fixture
def controller(
    session_factory: async_sessionmaker[AsyncSession], catalog: FakeCatalog
) -> BulkOperationController:
    return BulkOperationController(
        session_factory, catalog, CheckpointWriter(InMemoryCheckpointStore())
    )


@pytest.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    controller: BulkOperationController,
) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async test client with overridden database session and controller."""

    async def override_get_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_controller] = lambda: controller

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
