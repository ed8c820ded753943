from cardkeeper.api.backups import router as backups_router
from cardkeeper.api.cards import router as cards_router
from cardkeeper.api.collections import router as collections_router
from cardkeeper.api.health import router as health_router
from cardkeeper.api.seed import router as seed_router

__all__ = [
    "backups_router",
    "cards_router",
    "collections_router",
    "health_router",
    "seed_router",
]
