"""Login, logout and first-run setup, plus the auth decorators used by every page."""

import logging
import secrets
from functools import wraps

from flask import (
    Blueprint,
    current_app,
    g,
    redirect,
    render_template,
    request,
    url_for,
)

from fuzzy.core.auth import authenticate, validate_password_strength
from fuzzy.models import ADMIN_ROLE, User

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__)

LOGIN_ERRORS = {
    "missing": "Username and password are required",
    "invalid": "Invalid username or password",
    "disabled": "Account is disabled",
}
RATE_LIMITED_ERROR = "Too many login attempts. Please wait before trying again."


# ---------------------------------------------------------------------------
# App-context accessors
# ---------------------------------------------------------------------------


def _get_store():
    return current_app.config["store"]


def _get_config():
    return current_app.config["fuzzy_config"]


def _get_sessions():
    return current_app.config["sessions"]


def _get_rate_limiter():
    return current_app.config["rate_limiter"]


def get_client_ip() -> str:
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP", "")
    if real_ip:
        return real_ip.strip()
    return request.remote_addr or ""


def csrf_token_valid(sent: str | None) -> bool:
    """Compare ``sent`` with the CSRF token of the current session."""
    session = g.get("session")
    if session is None:
        return False
    return secrets.compare_digest(sent or "", session.csrf_token)


def load_current_user() -> None:
    """Resolve the session cookie into g.user / g.session (before_request hook)."""
    g.user = None
    g.session = None
    cookie_name = _get_config().security.session_cookie_name
    token = request.cookies.get(cookie_name)
    session = _get_sessions().get_session(token)
    if session is None:
        return

    user = _get_store().get_user(session.user_id)
    if user is None or not user.active:
        _get_sessions().destroy_session(token)
        return
    g.user = user
    g.session = session


# ---------------------------------------------------------------------------
# Decorators
# ---------------------------------------------------------------------------


def login_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        if g.get("user") is None:
            return redirect(url_for("auth.login"))
        return view(*args, **kwargs)

    return wrapped


def setup_or_login_required(view):
    """Send visitors to /setup while no user exists, otherwise require a login."""

    @wraps(view)
    def wrapped(*args, **kwargs):
        if not _get_store().has_users():
            return redirect(url_for("auth.setup"))
        return login_required(view)(*args, **kwargs)

    return wrapped


def anonymous_only(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        if g.get("user") is not None:
            return redirect(url_for("pages.home"))
        return view(*args, **kwargs)

    return wrapped


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def _set_session_cookie(response, token: str):
    cfg = _get_config()
    response.set_cookie(
        cfg.security.session_cookie_name,
        token,
        max_age=int(cfg.session_duration.total_seconds()),
        path="/",
        secure=cfg.security.https_enabled,
        httponly=True,
        samesite="Strict",
    )
    return response


def _clear_session_cookie(response):
    cfg = _get_config()
    response.delete_cookie(
        cfg.security.session_cookie_name,
        path="/",
        secure=cfg.security.https_enabled,
        httponly=True,
        samesite="Strict",
    )
    return response


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


def _render_login(error: str = "", notice: str = ""):
    return render_template("login.html", title="Login", error=error, notice=notice)


@auth_bp.route("/login", methods=["GET", "POST"])
@anonymous_only
def login():
    if request.method == "GET":
        if not _get_store().has_users():
            return redirect(url_for("auth.setup"))
        notice = "Setup complete. You can now log in." if request.args.get("setup") == "complete" else ""
        return _render_login(notice=notice)

    cfg = _get_config()
    limiter = _get_rate_limiter()
    client_ip = get_client_ip()

    # Throttle before looking at the credentials at all
    if limiter.is_rate_limited(
        client_ip, cfg.limits.login_timeout_minutes, cfg.limits.max_login_attempts
    ):
        logger.warning("Login rate limit hit for %s", client_ip)
        return _render_login(error=RATE_LIMITED_ERROR)

    username = request.form.get("username", "").strip()
    password = request.form.get("password", "")

    result = authenticate(_get_store(), username, password)
    if not result.ok:
        limiter.record_login_attempt(client_ip)
        logger.info("Failed login for '%s' from %s (%s)", username, client_ip, result.reason)
        return _render_login(error=LOGIN_ERRORS[result.reason])

    limiter.clear_login_attempts(client_ip)
    sessions = _get_sessions()
    sessions.purge_expired()
    token = sessions.create_session(result.user.id)
    logger.info("User '%s' logged in from %s", result.user.username, client_ip)
    return _set_session_cookie(redirect(url_for("pages.home")), token)


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    token = request.cookies.get(_get_config().security.session_cookie_name)
    _get_sessions().destroy_session(token)
    logger.info("User '%s' logged out", g.user.username)
    return _clear_session_cookie(redirect(url_for("auth.login")))


def _render_setup(error: str = "", form=None):
    return render_template(
        "setup.html", title="First Time Setup", error=error, form=form or {}
    )


@auth_bp.route("/setup", methods=["GET", "POST"])
def setup():
    store = _get_store()
    if store.has_users():
        return redirect(url_for("auth.login"))

    if request.method == "GET":
        return _render_setup()

    username = request.form.get("username", "").strip()
    email = request.form.get("email", "").strip()
    password = request.form.get("password", "")
    confirm = request.form.get("confirm_password", "")
    form = {"username": username, "email": email}

    if not username:
        return _render_setup("Username is required", form)
    if not password:
        return _render_setup("Password is required", form)
    weakness = validate_password_strength(password)
    if weakness:
        return _render_setup(weakness, form)
    if password != confirm:
        return _render_setup("Passwords do not match", form)

    user = User(username=username, email=email, role=ADMIN_ROLE, active=True)
    user.set_password(password)
    if store.create_initial_user(user) is None:
        # Another setup request won the race
        return redirect(url_for("auth.login"))

    logger.info("First-run setup created administrator '%s'", username)
    return redirect(url_for("auth.login", setup="complete"))
