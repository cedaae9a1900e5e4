import os

from flask import Flask, jsonify
from sqlalchemy import text

from betwise.config import Config
from betwise.errors import BetwiseError
from betwise.extensions import db, migrate, cors, login_manager
from betwise.auth import api_auth
from betwise.segments.segment_payments import payments_bp
from betwise.segments.segment_games import games_bp
from betwise.segments.segment_wallets import wallets_bp
from betwise.segments.segment_admin import admin_bp


def create_app(overrides: dict | None = None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    env = (app.config.get("BETWISE_ENV") or "dev").strip().lower()

    # Production safety checks
    if env in ("prod", "production"):
        secret = (app.config.get("SECRET_KEY") or "").strip()
        if not secret or secret == "dev-secret" or len(secret) < 16:
            raise RuntimeError("SECRET_KEY must be set and at least 16 chars in production")
        if not (os.getenv("DATABASE_URL") or "").strip() and not (os.getenv("SQLALCHEMY_DATABASE_URI") or "").strip():
            raise RuntimeError("DATABASE_URL (or SQLALCHEMY_DATABASE_URI) must be set in production")
        if app.config.get("PAYMENT_PROVIDER") == "sim":
            raise RuntimeError("PAYMENT_PROVIDER=sim is not allowed in production")

    # Ensure instance dir exists for SQLite paths
    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///") and ":memory:" not in app.config["SQLALCHEMY_DATABASE_URI"]:
        os.makedirs(app.config["INSTANCE_DIR"], exist_ok=True)

    # CORS configuration
    origins = [o.strip() for o in (app.config.get("ALLOWED_ORIGINS") or "*").split(",") if o.strip()]
    cors.init_app(app, resources={r"/api/*": {"origins": origins}})

    # Init extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    # Register API routes
    app.register_blueprint(api_auth)
    app.register_blueprint(payments_bp)
    app.register_blueprint(games_bp)
    app.register_blueprint(wallets_bp)
    app.register_blueprint(admin_bp)

    from betwise.cli import register_cli
    register_cli(app)

    @app.errorhandler(BetwiseError)
    def _betwise_error(e: BetwiseError):
        if e.status_code >= 500:
            app.logger.error("%s: %s %s", e.code, e.message, e.meta)
        return jsonify(e.to_dict()), e.status_code

    if env not in ("prod", "production"):
        # Dev/test convenience; production schema comes from migrations.
        with app.app_context():
            db.create_all()

    # Health check
    @app.get("/api/health")
    def health():
        db_state = "ok"
        try:
            db.session.execute(text("SELECT 1"))
        except Exception:
            app.logger.warning("health check: database unreachable", exc_info=True)
            db_state = "fail"
        return jsonify({
            "ok": True,
            "service": "betwise-backend",
            "env": env,
            "db": db_state,
            "payment_provider": app.config.get("PAYMENT_PROVIDER"),
        })

    return app
