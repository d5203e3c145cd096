import os
import secrets
import time
from flask import Flask, session, request, current_app
from flask_login import LoginManager
from flask_sqlalchemy import SQLAlchemy
from functools import wraps
from flask_migrate import Migrate
from datetime import timedelta
from flask_limiter import Limiter
from flask_caching import Cache
from werkzeug.exceptions import HTTPException
from werkzeug.security import generate_password_hash
from flask_limiter.errors import RateLimitExceeded

# Global extensions
db = SQLAlchemy()
login_manager = LoginManager()
migrate = Migrate()


def _rate_key():
    try:
        ip = (request.headers.get("X-Forwarded-For") or request.remote_addr or "local")
        token = (session.get("rlid") or "")
        path = (getattr(request, "path", "/") or "/")
        return f"{ip}|{token}|{path}"
    except Exception:
        return "local"


limiter = Limiter(key_func=_rate_key)
cache = Cache()

PRODUCTION_REQUIRED_ENV = ("SECRET_KEY", "DATABASE_URL")


def _env_flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() == "true"


def validate_environment():
    """Fail fast when a production deployment is missing required settings."""
    missing = [name for name in PRODUCTION_REQUIRED_ENV if not os.environ.get(name)]
    if not (os.environ.get("ADMIN_PASSWORD") or os.environ.get("ADMIN_PASSWORD_HASH")):
        missing.append("ADMIN_PASSWORD")
    if missing:
        raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")
    return True


def create_app():
    app = Flask(__name__)

    app.config["NODUE_ENV"] = os.environ.get("NODUE_ENV", "development").strip().lower()
    if app.config["NODUE_ENV"] == "production":
        validate_environment()

    app.config["SECRET_KEY"] = os.environ.get("SECRET_KEY", "dev-secret-key")
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(minutes=30)

    REDIS_URL = os.environ.get("REDIS_URL")
    if REDIS_URL:
        app.config["CACHE_TYPE"] = "RedisCache"
        app.config["CACHE_REDIS_URL"] = REDIS_URL
        app.config["RATELIMIT_STORAGE_URI"] = REDIS_URL
    else:
        app.config["CACHE_TYPE"] = "SimpleCache"

    # Feature flags
    app.config["RATELIMIT_ENABLED"] = _env_flag("RATELIMIT_ENABLED", "true")
    app.config["CSRF_ENABLED"] = _env_flag("CSRF_ENABLED", "true")
    # CSRF token TTL (seconds)
    app.config["CSRF_TOKEN_TTL"] = int(os.environ.get("CSRF_TOKEN_TTL", "7200"))

    # Admin gate: a single configured credential
    app.config["ADMIN_USERNAME"] = os.environ.get("ADMIN_USERNAME", "admin")
    password_hash = os.environ.get("ADMIN_PASSWORD_HASH")
    if not password_hash:
        password_hash = generate_password_hash(os.environ.get("ADMIN_PASSWORD", "admin"))
    app.config["ADMIN_PASSWORD_HASH"] = password_hash

    # Optional JSON file replacing the built-in subject catalog
    app.config["SUBJECT_CATALOG_FILE"] = os.environ.get("SUBJECT_CATALOG_FILE")

    # Database configuration: use DATABASE_URL if provided, else sqlite file
    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        db_path = os.path.join(os.path.dirname(__file__), "..", "nodue.db")
        database_url = f"sqlite:///{os.path.abspath(db_path)}"

    app.config["SQLALCHEMY_DATABASE_URI"] = database_url
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

    app.config.setdefault("RATELIMIT_STORAGE_URI", "memory://")
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cache.init_app(app)

    login_manager.init_app(app)

    # Import models so they are registered with SQLAlchemy
    from . import models  # noqa: F401
    from .api_utils import api_error
    from .catalog import load_catalog

    app.extensions["nodue_catalog"] = load_catalog(app.config.get("SUBJECT_CATALOG_FILE"))

    @app.before_request
    def ensure_rate_key():
        if not session.get("rlid"):
            session["rlid"] = secrets.token_urlsafe(16)

    @login_manager.user_loader
    def load_user(user_id: str):
        from .models import AdminUser
        if user_id and user_id == app.config.get("ADMIN_USERNAME"):
            return AdminUser(user_id)
        return None

    @login_manager.unauthorized_handler
    def handle_unauthorized():
        return api_error("unauthorized", "Login required", 401)

    # Blueprints
    from .main.routes import main_bp
    app.register_blueprint(main_bp)

    from .students import students_bp
    app.register_blueprint(students_bp, url_prefix="/api/students")

    from .admin import admin_bp
    app.register_blueprint(admin_bp, url_prefix="/api/admin")

    @app.errorhandler(RateLimitExceeded)
    def handle_rate_limit(e):
        return api_error("rate_limited", "Too many requests", 429)

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        code = (e.name or "error").strip().lower().replace(" ", "_")
        return api_error(code, e.description or "", e.code)

    # Create tables on first run, then record which columns the live schema has
    with app.app_context():
        from .store import probe_capabilities
        db.create_all()
        app.extensions["nodue_capabilities"] = probe_capabilities(db.engine)

    return app


def issue_csrf_token():
    token = session.get("csrf_token")
    issued_at = session.get("csrf_token_issued_at")
    ttl = current_app.config.get("CSRF_TOKEN_TTL", 7200)
    # Regenerate token if missing or expired
    now = int(time.time())
    if (not token) or (not issued_at) or (ttl > 0 and (now - int(issued_at)) > ttl):
        token = secrets.token_urlsafe(32)
        session["csrf_token"] = token
        session["csrf_token_issued_at"] = now
    return token


def csrf_required(view_func):
    @wraps(view_func)
    def _wrapped(*args, **kwargs):
        from .api_utils import api_error
        if not current_app.config.get("CSRF_ENABLED", True):
            return view_func(*args, **kwargs)
        method = (request.method or "GET").upper()
        if method in ("POST", "PUT", "PATCH", "DELETE"):
            token = (request.headers.get("X-CSRF-Token") or request.form.get("csrf_token") or "").strip()
            sess_token = (session.get("csrf_token") or "")
            issued_at = session.get("csrf_token_issued_at")
            ttl = current_app.config.get("CSRF_TOKEN_TTL", 7200)
            now = int(time.time())
            # Expired token
            if not issued_at or (ttl > 0 and (now - int(issued_at)) > ttl):
                return api_error("csrf_failed", "Session expired; fetch a new token and retry", 400)
            # Missing token or mismatch
            if not token or not secrets.compare_digest(token, sess_token):
                return api_error("csrf_failed", "Missing or invalid CSRF token", 400)
        return view_func(*args, **kwargs)
    return _wrapped
