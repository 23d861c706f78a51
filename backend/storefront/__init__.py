# backend/storefront/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate
from .kv_store import init_kv_store


def create_app(test_config: dict | None = None, kv_store=None) -> Flask:
    """
    Application factory.

    test_config overrides Config before extensions bind to the app.
    kv_store is the key-value backend for the token cache and reset codes;
    an in-process MemoryStore is used when omitted.
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    app.logger.setLevel(app.config["LOG_LEVEL"])

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    init_kv_store(app, kv_store)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.products import products_bp
    from .routes.cart import cart_bp
    from .routes.orders import orders_bp
    from .routes.promotions import promotions_bp
    from .routes.wishlist import wishlist_bp
    from .routes.reviews import reviews_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(cart_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(promotions_bp)
    app.register_blueprint(wishlist_bp)
    app.register_blueprint(reviews_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in app.config["CORS_ALLOWED_ORIGINS"]:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
