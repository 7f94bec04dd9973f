# backend/stockcheck/__init__.py
import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Collaborators and caches
    from .services.catalog_service import init_catalog
    from .services.assignment_service import init_resolver_cache
    init_catalog(app)
    init_resolver_cache(app)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.requests import requests_bp
    from .routes.counts import counts_bp
    from .routes.assignments import assignments_bp
    from .routes.dashboard import dashboard_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(requests_bp)
    app.register_blueprint(counts_bp)
    app.register_blueprint(assignments_bp)
    app.register_blueprint(dashboard_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
