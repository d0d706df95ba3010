"""Flask application factory for the Fuzzy admin panel."""

import base64
import logging
import secrets
import time

from flask import Flask, g, jsonify, request
from werkzeug.exceptions import BadRequest, HTTPException

from fuzzy.config import AppConfig, get_config
from fuzzy.core.auth import LoginRateLimiter, SessionManager
from fuzzy.core.store import Store
from fuzzy.utils.logs import configure_logging
from fuzzy.web.auth import auth_bp, csrf_token_valid, load_current_user
from fuzzy.web.views import pages_bp

logger = logging.getLogger(__name__)

CSRF_FIELD = "csrf_token"


def create_app(config: AppConfig | None = None, store: Store | None = None) -> Flask:
    """Create and configure the Flask app.

    Args:
        config: Optional AppConfig override (used in tests). When omitted the
            config file is loaded and logging is configured from it.
        store: Optional pre-built Store (used in tests).
    """
    app = Flask(__name__)

    if config is None:
        config = get_config()
        configure_logging(config.logging)

    if store is None:
        store = Store()
        if config.server.dev_mode:
            store.seed_sample_data()

    app.config["fuzzy_config"] = config
    app.config["store"] = store
    app.config["sessions"] = SessionManager(config.session_duration)
    app.config["rate_limiter"] = LoginRateLimiter()
    app.config["SECRET_KEY"] = config.security.secret_key
    app.config["MAX_CONTENT_LENGTH"] = config.limits.max_upload_size_mb * 1024 * 1024

    app.register_blueprint(auth_bp)
    app.register_blueprint(pages_bp)

    @app.context_processor
    def _inject_globals():
        session = g.get("session")
        return {
            "app_name": config.server.app_name,
            "app_version": config.server.version,
            "ui": config.ui,
            "features": config.features,
            "current_user": g.get("user"),
            "csrf_token": session.csrf_token if session else "",
            "csp_nonce": g.get("csp_nonce", ""),
        }

    @app.errorhandler(Exception)
    def handle_exception(e):
        """Global exception handler for unhandled errors."""
        if isinstance(e, HTTPException):
            return e

        logger.exception("Unhandled exception in request %s %s", request.method, request.path)
        if request.path.startswith("/api") or request.path == "/health":
            return jsonify({"error": "Internal server error"}), 500
        return "Internal server error", 500

    @app.before_request
    def _start_timer():
        g.start_time = time.monotonic()
        g.csp_nonce = base64.b64encode(secrets.token_bytes(16)).decode("ascii")

    app.before_request(load_current_user)

    @app.before_request
    def _check_csrf():
        if not config.security.csrf_enabled or request.method != "POST":
            return
        session = g.get("session")
        if session is None:
            return
        if not csrf_token_valid(request.form.get(CSRF_FIELD)):
            logger.warning("CSRF token mismatch on %s from user %d", request.path, session.user_id)
            raise BadRequest("Invalid CSRF token")

    @app.after_request
    def _security_headers(response):
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; "
            "style-src 'self' 'unsafe-inline'; "
            f"script-src 'self' 'nonce-{g.get('csp_nonce', '')}'; "
            "img-src 'self' data:; "
            "font-src 'self'; "
            "object-src 'none'; "
            "base-uri 'self'; "
            "form-action 'self'"
        )
        if config.security.https_enabled:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    @app.after_request
    def _log_request(response):
        duration_ms = (time.monotonic() - getattr(g, "start_time", time.monotonic())) * 1000
        logger.info(
            "%s %s %s %.0fms",
            request.method,
            request.path,
            response.status_code,
            duration_ms,
        )
        return response

    logger.info(
        "%s %s ready (dev_mode=%s, https=%s)",
        config.server.app_name,
        config.server.version,
        config.server.dev_mode,
        config.security.https_enabled,
    )
    return app
