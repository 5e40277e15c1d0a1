# agricart/__init__.py
from __future__ import annotations

import logging

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from .settings import Config
from .extensions import db, migrate, login_manager, limiter, socketio


def create_app(config_class=Config) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_class)
    app.logger.setLevel(getattr(logging, app.config.get("LOG_LEVEL", "INFO"), logging.INFO))

    # ======================
    # Import Models + socket handlers (CRITICAL)
    # ======================
    # Handlers must be registered before socketio.init_app so every app
    # built by this factory attaches them, not only the first.
    from . import models  # noqa: F401
    from . import sockets  # noqa: F401

    # ======================
    # Initialize Extensions
    # ======================
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    limiter.init_app(app)
    socketio.init_app(
        app,
        cors_allowed_origins=app.config.get("CLIENT_URL") or "*",
        async_mode=app.config.get("SOCKETIO_ASYNC_MODE"),
    )

    # ======================
    # M-Pesa gateway client
    # ======================
    from .services.mpesa import MpesaClient, MpesaConfig

    app.extensions["mpesa"] = MpesaClient(MpesaConfig.from_mapping(app.config))

    # ======================
    # Register Blueprints
    # ======================
    from .auth import auth
    from .users import users_bp
    from .products import products_bp
    from .orders import orders_bp
    from .payments import payments_bp
    from .admin import admin_bp, farmer_bp

    app.register_blueprint(auth)
    app.register_blueprint(users_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(farmer_bp)

    # ======================
    # Error handlers (JSON envelope)
    # ======================
    from .errors import InternalError, MarketplaceError, UpstreamFailure

    @app.errorhandler(MarketplaceError)
    def marketplace_error(e: MarketplaceError):
        body = e.to_dict()
        if isinstance(e, UpstreamFailure):
            app.logger.warning("Gateway failure: %s", e.message)
            if app.config.get("APP_ENV") == "production":
                body["message"] = UpstreamFailure.default_message
        return jsonify(body), e.status_code

    @app.errorhandler(429)
    def ratelimit_handler(e):
        return jsonify({"success": False, "message": "Too many requests. Please try again later."}), 429

    @app.errorhandler(HTTPException)
    def http_error(e: HTTPException):
        return jsonify({"success": False, "message": e.description or e.name}), e.code

    @app.errorhandler(Exception)
    def unhandled_error(e: Exception):
        db.session.rollback()
        app.logger.exception("Unhandled error")
        return jsonify(InternalError().to_dict()), InternalError.status_code

    return app
