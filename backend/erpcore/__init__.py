# backend/erpcore/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate



def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)

    # Overrides must land before db.init_app reads the database URI
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.catalog import catalog_bp
    from .routes.inventory import inventory_bp
    from .routes.credit import credit_bp
    from .routes.checkout import checkout_bp
    from .routes.formulas import formulas_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(credit_bp)
    app.register_blueprint(checkout_bp)
    app.register_blueprint(formulas_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
