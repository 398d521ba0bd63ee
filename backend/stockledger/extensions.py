# Overview: Flask extension instances for the database, migrations, and the lookup cache.

from flask import current_app
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

from .cache import TTLCache

CACHE_EXTENSION = "stockledger_cache"

db = SQLAlchemy()
migrate = Migrate()


def init_cache(app) -> TTLCache:
    """Attach one TTLCache per app; services receive it as an argument, never import it."""
    cache = TTLCache(ttl_seconds=app.config.get("STOCKLEDGER_CACHE_TTL_SECONDS", 300))
    app.extensions[CACHE_EXTENSION] = cache
    return cache


def get_cache() -> TTLCache:
    return current_app.extensions[CACHE_EXTENSION]
