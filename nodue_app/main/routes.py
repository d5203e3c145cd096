from flask import Blueprint, request, current_app
from flask_login import login_user, logout_user, current_user
from werkzeug.security import check_password_hash
from .. import limiter, cache, issue_csrf_token
from ..api_utils import api_success, api_error, request_data
from ..catalog import get_catalog, DEPARTMENTS
from ..models import AdminUser

main_bp = Blueprint("main", __name__)


@main_bp.route("/")
def index():
    return api_success({"service": "nodue", "environment": current_app.config.get("NODUE_ENV")})


# Authentication routes
@main_bp.route("/login", methods=["POST"])
@limiter.limit("5 per minute", methods=["POST"])
def login():
    data = request_data(request)
    username = (data.get("username") or "").strip()
    password = data.get("password") or ""
    if not username or not password:
        return api_error("validation_error", "Username and password are required.", 400)

    expected = current_app.config.get("ADMIN_USERNAME")
    if username != expected or not check_password_hash(current_app.config.get("ADMIN_PASSWORD_HASH") or "", password):
        current_app.logger.warning("Failed admin login for %r from %s", username, request.remote_addr)
        return api_error("invalid_credentials", "Invalid credentials.", 401)

    login_user(AdminUser(username))
    current_app.logger.info("Admin %s logged in", username)
    return api_success({"username": username, "csrf_token": issue_csrf_token()})


@main_bp.route("/logout", methods=["POST"])
def logout():
    if current_user.is_authenticated:
        logout_user()
    return api_success({"logged_out": True})


@main_bp.route("/session", methods=["GET"])
def session_info():
    return api_success({
        "authenticated": bool(current_user.is_authenticated),
        "role": getattr(current_user, "role", None) if current_user.is_authenticated else None,
        "csrf_token": issue_csrf_token(),
    })


@main_bp.route("/api/catalog", methods=["GET"])
@cache.cached(timeout=300, query_string=True)
def catalog():
    """
    Subject lists with categories and column layout.
    With year (and optionally semester) narrows to one list.
    """
    cat = get_catalog()
    year = request.args.get("year", type=int)
    semester = request.args.get("semester", type=int)
    if year is None:
        return api_success({"entries": cat.entries(), "departments": DEPARTMENTS})

    subjects = cat.subjects_for(year, semester)
    return api_success({
        "year": year,
        "semester": semester,
        "subjects_configured": bool(subjects),
        "subjects": [
            {"name": s, "category": cat.category_of(s), "columns": cat.column_config(s)}
            for s in subjects
        ],
        "departments": DEPARTMENTS,
    })
