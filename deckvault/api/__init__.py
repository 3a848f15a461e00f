from deckvault.api.cards import router as cards_router
from deckvault.api.containers import router as containers_router
from deckvault.api.health import router as health_router
from deckvault.api.operations import router as operations_router

__all__ = [
    "cards_router",
    "containers_router",
    "health_router",
    "operations_router",
]
