import os
import subprocess
from pathlib import Path

import click
from flask import Flask, g, jsonify, request
from pydantic import ValidationError
from sqlalchemy import text
from werkzeug.exceptions import HTTPException

from myzo.extensions import cors, db, migrate
from myzo.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError
from myzo.models import Category, User, UserRole
from myzo.segments.segment_addresses import addresses_bp
from myzo.segments.segment_admin import admin_bp
from myzo.segments.segment_auth import auth_bp
from myzo.segments.segment_cart import cart_bp
from myzo.segments.segment_catalog import catalog_bp
from myzo.segments.segment_notifications import notifications_bp
from myzo.segments.segment_orders import orders_bp
from myzo.segments.segment_payments import payments_bp
from myzo.segments.segment_uploads import uploads_bp
from myzo.segments.segment_wishlist import wishlist_bp
from myzo.utils.jwt_utils import decode_token, get_bearer_token
from myzo.utils.observability import init_otel, init_sentry, install_request_observers
from myzo.utils.rate_limit import guard_request


DEFAULT_CATEGORIES = (
    {"name": "Totes", "slug": "totes", "description": "Spacious everyday luxury", "order": 1},
    {"name": "Crossbody", "slug": "crossbody", "description": "Hands-free elegance", "order": 2},
    {"name": "Clutches", "slug": "clutches", "description": "Evening sophistication", "order": 3},
)


def _resolve_alembic_head() -> str:
    try:
        from alembic.config import Config
        from alembic.script import ScriptDirectory

        migrations_dir = Path(__file__).resolve().parents[1] / "migrations"
        cfg = Config(str(migrations_dir / "alembic.ini"))
        cfg.set_main_option("script_location", str(migrations_dir))
        script = ScriptDirectory.from_config(cfg)
        heads = script.get_heads()
        return heads[0] if heads else "unknown"
    except Exception:
        return "unknown"


def _resolve_git_sha() -> str:
    for env_key in ("GIT_SHA", "SOURCE_VERSION"):
        val = (os.getenv(env_key) or "").strip()
        if val:
            return val
    try:
        repo_root = Path(__file__).resolve().parents[1]
        out = subprocess.check_output(
            ["git", "rev-parse", "HEAD"],
            cwd=str(repo_root),
            stderr=subprocess.DEVNULL,
        )
        return out.decode().strip()
    except (OSError, subprocess.CalledProcessError):
        return "unknown"


def _env_int(name: str, default: int, *, minimum: int = 1, maximum: int = 100000) -> int:
    raw = (os.getenv(name) or "").strip()
    try:
        value = int(raw) if raw else int(default)
    except ValueError:
        value = int(default)
    return max(minimum, min(value, maximum))


def _error_payload(error: str, message: str, status: int, **extra) -> dict:
    payload = {"ok": False, "error": error, "message": message, "status": int(status)}
    payload.update(extra)
    rid = (getattr(g, "request_id", "") or "").strip()
    if rid:
        payload["trace_id"] = rid
    return payload


def create_app():
    app = Flask(__name__)
    init_sentry(app)

    env = (os.getenv("MYZO_ENV", "dev") or "dev").strip().lower()

    # Production safety checks
    if env in ("prod", "production"):
        secret = (os.getenv("SECRET_KEY") or "").strip()
        if not secret or len(secret) < 16:
            raise RuntimeError("SECRET_KEY must be set and at least 16 chars in production")
        if not (os.getenv("DATABASE_URL") or "").strip() and not (os.getenv("SQLALCHEMY_DATABASE_URI") or "").strip():
            raise RuntimeError("DATABASE_URL (or SQLALCHEMY_DATABASE_URI) must be set in production")

    app.config["SECRET_KEY"] = os.getenv("SECRET_KEY", "dev-secret")
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["MAX_CONTENT_LENGTH"] = 60 * 1024 * 1024

    instance_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "instance"))
    os.makedirs(instance_dir, exist_ok=True)

    database_url = os.getenv("SQLALCHEMY_DATABASE_URI") or os.getenv("DATABASE_URL")
    if not database_url:
        database_url = "sqlite:///instance/myzo.db"
    if database_url.startswith("sqlite://") and database_url != "sqlite:///:memory:":
        canonical_path = os.path.join(instance_dir, "myzo.db")
        database_url = f"sqlite:///{canonical_path.replace(os.sep, '/')}"
    if database_url.startswith("postgres://"):
        database_url = "postgresql://" + database_url[len("postgres://"):]
    app.config["SQLALCHEMY_DATABASE_URI"] = database_url
    engine_options = {
        "pool_pre_ping": True,
        "pool_reset_on_return": "rollback",
        "pool_recycle": _env_int("DB_POOL_RECYCLE_SECONDS", 1800, minimum=60, maximum=86400),
    }
    if not database_url.startswith("sqlite://"):
        engine_options.update(
            {
                "pool_size": _env_int("DB_POOL_SIZE", 10, minimum=1, maximum=200),
                "max_overflow": _env_int("DB_MAX_OVERFLOW", 20, minimum=0, maximum=500),
                "pool_timeout": _env_int("DB_POOL_TIMEOUT_SECONDS", 30, minimum=1, maximum=300),
            }
        )
        app.logger.info(
            "db_pooling_enabled pool_size=%s max_overflow=%s pool_timeout=%s pool_recycle=%s",
            engine_options["pool_size"],
            engine_options["max_overflow"],
            engine_options["pool_timeout"],
            engine_options["pool_recycle"],
        )
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options

    cors_origins = (os.getenv("CORS_ORIGINS") or "").strip()
    if env in ("prod", "production"):
        origins = [o.strip() for o in cors_origins.split(",") if o.strip()]
    else:
        origins = ["*"] if not cors_origins else [o.strip() for o in cors_origins.split(",") if o.strip()]
    cors.init_app(app, resources={r"/api/*": {"origins": origins}})

    db.init_app(app)
    migrate.init_app(app, db)
    install_request_observers(app)
    with app.app_context():
        init_otel(app, enabled=(os.getenv("OTEL_ENABLED") or "").strip() == "1")

    @app.errorhandler(ValidationError)
    def _api_validation_error(error: ValidationError):
        details = [
            {"field": ".".join(str(p) for p in e.get("loc", ())), "message": e.get("msg", "")}
            for e in error.errors()
        ]
        return jsonify(_error_payload("VALIDATION_FAILED", "Validation failed", 400, details=details)), 400

    @app.errorhandler(IntegrationDisabledError)
    def _integration_disabled(error: IntegrationDisabledError):
        return jsonify(_error_payload("INTEGRATION_DISABLED", str(error), 503)), 503

    @app.errorhandler(IntegrationMisconfiguredError)
    def _integration_misconfigured(error: IntegrationMisconfiguredError):
        app.logger.error("integration_misconfigured path=%s err=%s", request.path, error)
        return jsonify(_error_payload("INTEGRATION_MISCONFIGURED", str(error), 500)), 500

    @app.errorhandler(HTTPException)
    def _api_http_exception(error: HTTPException):
        # Keep API failures JSON-only for predictable client handling.
        if not request.path.startswith("/api/"):
            return error
        code = int(error.code or 500)
        return jsonify(_error_payload(error.name, error.description or error.name, code)), code

    @app.errorhandler(Exception)
    def _api_unhandled_exception(error: Exception):
        app.logger.exception("unhandled_exception path=%s", request.path)
        try:
            db.session.rollback()
        except Exception:
            app.logger.exception("unhandled_exception_rollback_failed")
        return jsonify(_error_payload("InternalServerError", "Internal server error", 500)), 500

    app.register_blueprint(auth_bp)
    app.register_blueprint(addresses_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(cart_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(wishlist_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(uploads_bp)
    app.register_blueprint(admin_bp)

    @app.get("/api/health")
    def health():
        db_state = "ok"
        db_error = None
        try:
            with db.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            db_state = "fail"
            msg = str(e)
            if msg:
                db_error = (msg[:300] + "...") if len(msg) > 300 else msg
        payload = {
            "ok": db_state == "ok",
            "service": "myzo-backend",
            "env": env,
            "db": db_state,
        }
        if db_error:
            payload["db_error"] = db_error
        return jsonify(payload), 200 if db_state == "ok" else 503

    @app.get("/")
    def root():
        return jsonify({"ok": True, "service": "myzo-backend", "env": env})

    @app.get("/api/version")
    def version():
        return jsonify({
            "ok": True,
            "alembic_head": _resolve_alembic_head(),
            "git_sha": _resolve_git_sha(),
        })

    @app.before_request
    def _capture_auth_context():
        g.auth_user_id = None
        g.auth_role = None
        token = get_bearer_token(request.headers.get("Authorization", ""))
        if not token:
            return
        payload = decode_token(token)
        if not payload:
            return
        try:
            g.auth_user_id = int(payload.get("sub"))
        except (TypeError, ValueError):
            return
        g.auth_role = (payload.get("role") or UserRole.CUSTOMER).strip().upper()

    @app.before_request
    def _global_rate_limit_guard():
        return guard_request()

    @app.before_request
    def _reset_db_session():
        db.session.rollback()

    @app.teardown_request
    def _cleanup_db_session(exc):
        try:
            if exc is not None:
                db.session.rollback()
        finally:
            db.session.remove()

    @app.cli.command("bootstrap-admin")
    def bootstrap_admin():
        allow = (os.getenv("ALLOW_ADMIN_BOOTSTRAP") or "").strip() == "1"
        if env not in ("dev", "development", "local", "test") and not allow:
            raise click.ClickException("Admin bootstrap disabled. Set ALLOW_ADMIN_BOOTSTRAP=1 or MYZO_ENV=dev.")

        email = (os.getenv("ADMIN_EMAIL") or "").strip().lower()
        password = (os.getenv("ADMIN_PASSWORD") or "").strip()
        if not email or not password:
            raise click.ClickException("ADMIN_EMAIL and ADMIN_PASSWORD must be set.")

        u = User.query.filter_by(email=email).first()
        try:
            if u:
                u.set_password(password)
                u.role = UserRole.ADMIN
            else:
                u = User(email=email, first_name="Admin", last_name="User", role=UserRole.ADMIN)
                u.set_password(password)
                db.session.add(u)
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            raise click.ClickException(f"Failed to bootstrap admin: {type(e).__name__}")
        click.echo(f"admin_bootstrap_ok {u.email}")

    @app.cli.command("seed-catalog")
    def seed_catalog():
        created = 0
        for entry in DEFAULT_CATEGORIES:
            if Category.query.filter_by(slug=entry["slug"]).first():
                continue
            db.session.add(Category(**entry))
            created += 1
        db.session.commit()
        click.echo(f"seed_catalog_ok created={created}")

    @app.cli.command("expire-abandoned-orders")
    @click.option("--limit", default=200, show_default=True, type=int)
    def expire_abandoned_orders(limit: int):
        from myzo.jobs.checkout_expiry import expire_abandoned_checkouts

        result = expire_abandoned_checkouts(limit=limit)
        click.echo(f"expire_abandoned_orders_ok scanned={result['scanned']} expired={result['expired']}")

    return app
