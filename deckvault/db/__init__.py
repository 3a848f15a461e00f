from deckvault.db.containers import (
    add_wishlist_item,
    container_card_ids,
    create_container,
    delete_container,
    export_rows,
    get_container,
    hydrate_container,
    list_containers,
    recompute_stats,
)
from deckvault.db.database import get_session, init_db

__all__ = [
    "add_wishlist_item",
    "container_card_ids",
    "create_container",
    "delete_container",
    "export_rows",
    "get_container",
    "get_session",
    "hydrate_container",
    "init_db",
    "list_containers",
    "recompute_stats",
]
