# backend/stockledger/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate, init_cache


def create_app(config_object=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)

    app.logger.setLevel(app.config.get("STOCKLEDGER_LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    init_cache(app)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
