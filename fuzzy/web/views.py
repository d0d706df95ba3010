"""Page blueprint: dashboard, providers & bouquets, channels, users, channel start/stop."""

import logging
from datetime import datetime
from functools import wraps

from flask import (
    Blueprint,
    abort,
    current_app,
    g,
    jsonify,
    redirect,
    render_template,
    request,
    url_for,
)

from fuzzy.core.auth import validate_password_strength
from fuzzy.models import DEFAULT_ROLE, Bouquet, Channel, Provider, User
from fuzzy.web.auth import csrf_token_valid, login_required, setup_or_login_required

logger = logging.getLogger(__name__)

pages_bp = Blueprint("pages", __name__)

ENCODING_FIELDS = (
    "video_codec",
    "audio_codec",
    "resolution",
    "video_bitrate",
    "audio_bitrate",
    "quality",
)


def _get_store():
    return current_app.config["store"]


def _get_config():
    return current_app.config["fuzzy_config"]


def _get_sessions():
    return current_app.config["sessions"]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def feature_required(flag: str):
    """404 when the [features] flag is switched off."""

    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            if not getattr(_get_config().features, flag):
                abort(404)
            return view(*args, **kwargs)

        return wrapped

    return decorator


def _form_str(name: str, prefix: str = "") -> str:
    return request.form.get(prefix + name, "").strip()


def _form_checkbox(name: str) -> bool:
    return request.form.get(name) in ("on", "true")


def _parse_id(raw: str | None) -> int | None:
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        return None


def _require_query_csrf() -> None:
    """Deletes are GET links, so they carry the CSRF token in the query string."""
    if _get_config().security.csrf_enabled and not csrf_token_valid(request.args.get("csrf_token")):
        logger.warning("CSRF token mismatch on %s from user %d", request.path, g.user.id)
        abort(400, description="Invalid CSRF token")


def _local_redirect_target(default: str) -> str:
    target = request.form.get("next", "")
    # Only same-site absolute paths
    if target.startswith("/") and not target.startswith("//"):
        return target
    return default


class PageMessages:
    """Collects the success/error strings a page renders."""

    def __init__(self):
        self.message = ""
        self.error = ""

    def ok(self, text: str) -> None:
        self.message = text

    def fail(self, text: str) -> None:
        self.error = text


# ---------------------------------------------------------------------------
# Health + dashboard
# ---------------------------------------------------------------------------


@pages_bp.route("/health")
def health():
    """Liveness probe."""
    return jsonify({"status": "healthy", "service": "fuzzy"})


@pages_bp.route("/")
@setup_or_login_required
def home():
    user = g.user
    app_name = _get_config().server.app_name
    welcome = f"Welcome back, {user.first_name}!" if user.first_name else f"Welcome to {app_name}!"
    return render_template(
        "home.html",
        title="Home",
        welcome_msg=welcome,
        current_time=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        counts=_get_store().counts(),
    )


# ---------------------------------------------------------------------------
# Providers & bouquets
# ---------------------------------------------------------------------------


def _render_providers(msgs: PageMessages):
    store = _get_store()
    providers = store.get_providers_with_bouquets()
    known = {p.id for p, _ in providers}
    unassigned = [b for b in store.get_all_bouquets() if b.provider_id not in known]
    return render_template(
        "providers.html",
        title="Providers & Bouquets",
        providers=sorted(providers, key=lambda pb: pb[0].id),
        unassigned=sorted(unassigned, key=lambda b: b.id),
        channels=sorted(store.get_all_channels(), key=lambda c: c.id),
        message=msgs.message,
        error=msgs.error,
    )


def _delete_by_query(param: str, label: str, delete_fn, msgs: PageMessages) -> None:
    raw = request.args.get(param)
    if not raw:
        return
    _require_query_csrf()
    entity_id = _parse_id(raw)
    if entity_id is None:
        msgs.fail(f"Invalid {label.lower()} ID")
    elif delete_fn(entity_id):
        logger.info("%s %d deleted by '%s'", label, entity_id, g.user.username)
        msgs.ok(f"{label} deleted successfully")
    else:
        msgs.fail(f"{label} not found")


@pages_bp.route("/providers", methods=["GET", "POST"])
@login_required
@feature_required("provider_management")
def providers():
    store = _get_store()
    msgs = PageMessages()

    if request.method == "GET":
        _delete_by_query("delete-provider", "Provider", store.delete_provider, msgs)
        _delete_by_query("delete-bouquet", "Bouquet", store.delete_bouquet, msgs)
        return _render_providers(msgs)

    handlers = {
        "create-provider": _create_provider,
        "update-provider": _update_provider,
        "create-bouquet": _create_bouquet,
        "update-bouquet": _update_bouquet,
    }
    handler = handlers.get(request.form.get("action", ""))
    if handler is None:
        msgs.fail("Invalid action")
    else:
        handler(msgs)
    return _render_providers(msgs)


def _provider_fields() -> dict:
    return {
        "name": _form_str("name"),
        "description": _form_str("description"),
        "url": _form_str("url"),
        "api_key": _form_str("api_key"),
        "active": _form_checkbox("active"),
    }


def _create_provider(msgs: PageMessages) -> None:
    fields = _provider_fields()
    if not fields["name"]:
        msgs.fail("Provider name is required")
        return
    provider = _get_store().create_provider(Provider(**fields))
    logger.info("Provider %d '%s' created", provider.id, provider.name)
    msgs.ok("Provider created successfully")


def _update_provider(msgs: PageMessages) -> None:
    store = _get_store()
    provider_id = _parse_id(request.form.get("id"))
    if provider_id is None:
        msgs.fail("Invalid provider ID")
        return
    existing = store.get_provider(provider_id)
    if existing is None:
        msgs.fail("Provider not found")
        return

    fields = _provider_fields()
    if not fields["name"]:
        msgs.fail("Provider name is required")
        return
    for key, value in fields.items():
        setattr(existing, key, value)

    if store.update_provider(existing):
        msgs.ok("Provider updated successfully")
    else:
        msgs.fail("Failed to update provider")


def _selected_channels(msgs: PageMessages) -> list[Channel] | None:
    """Canonical channels picked in the multi-select, or None after an error."""
    store = _get_store()
    picked = []
    for raw in request.form.getlist("channel_ids"):
        channel_id = _parse_id(raw)
        if channel_id is None:
            msgs.fail("Invalid channel ID")
            return None
        channel = store.get_channel(channel_id)
        if channel is None:
            msgs.fail(f"Channel {channel_id} not found")
            return None
        picked.append(channel)
    return picked


def _inline_channel() -> Channel | None:
    """Channel described by the channel_* fields of the bouquet form, if any."""
    name = _form_str("name", prefix="channel_")
    manifest = _form_str("manifest", prefix="channel_")
    key_kid = _form_str("keykid", prefix="channel_")
    if not (name and manifest and key_kid):
        return None
    channel = Channel(
        name=name,
        manifest=manifest,
        key_kid=key_kid,
        **{f: _form_str(f, prefix="channel_") for f in ENCODING_FIELDS},
    ).apply_encoding_defaults()
    # Registered canonically so it can be started and stopped
    return _get_store().create_channel(channel)


def _create_bouquet(msgs: PageMessages) -> None:
    store = _get_store()
    name = _form_str("name")
    if not name:
        msgs.fail("Bouquet name is required")
        return
    provider_id = _parse_id(request.form.get("provider_id"))
    if provider_id is None:
        msgs.fail("Invalid provider ID")
        return
    if store.get_provider(provider_id) is None:
        msgs.fail("Provider not found")
        return

    channels = _selected_channels(msgs)
    if channels is None:
        return
    inline = _inline_channel()
    if inline is not None:
        channels.append(inline)

    bouquet = store.create_bouquet(
        Bouquet(
            name=name,
            description=_form_str("description"),
            provider_id=provider_id,
            channels=channels,
        )
    )
    logger.info("Bouquet %d '%s' created with %d channel(s)", bouquet.id, name, len(channels))
    msgs.ok("Bouquet created successfully")


def _update_bouquet(msgs: PageMessages) -> None:
    store = _get_store()
    bouquet_id = _parse_id(request.form.get("id"))
    if bouquet_id is None:
        msgs.fail("Invalid bouquet ID")
        return
    existing = store.get_bouquet(bouquet_id)
    if existing is None:
        msgs.fail("Bouquet not found")
        return

    name = _form_str("name")
    if not name:
        msgs.fail("Bouquet name is required")
        return

    raw_provider = request.form.get("provider_id", "").strip()
    if raw_provider:
        provider_id = _parse_id(raw_provider)
        if provider_id is None:
            msgs.fail("Invalid provider ID")
            return
        if store.get_provider(provider_id) is None:
            msgs.fail("Provider not found")
            return
        existing.provider_id = provider_id

    if request.form.get("replace_channels"):
        channels = _selected_channels(msgs)
        if channels is None:
            return
        existing.channels = channels

    existing.name = name
    existing.description = _form_str("description")

    if store.update_bouquet(existing):
        msgs.ok("Bouquet updated successfully")
    else:
        msgs.fail("Failed to update bouquet")


# ---------------------------------------------------------------------------
# Channels
# ---------------------------------------------------------------------------


def _render_channels(msgs: PageMessages):
    return render_template(
        "channels.html",
        title="Channel Management",
        channels=sorted(_get_store().get_all_channels(), key=lambda c: c.id),
        message=msgs.message,
        error=msgs.error,
    )


@pages_bp.route("/channels", methods=["GET", "POST"])
@login_required
@feature_required("channel_management")
def channels():
    msgs = PageMessages()
    if request.method == "GET":
        _delete_by_query("delete", "Channel", _get_store().delete_channel, msgs)
        return _render_channels(msgs)

    action = request.form.get("action", "")
    if action == "create":
        _create_channel(msgs)
    elif action == "update":
        _update_channel(msgs)
    else:
        msgs.fail("Invalid action")
    return _render_channels(msgs)


def _channel_fields(msgs: PageMessages) -> dict | None:
    fields = {
        "name": _form_str("name"),
        "manifest": _form_str("manifest"),
        "key_kid": _form_str("key_kid"),
    }
    if not fields["name"]:
        msgs.fail("Channel name is required")
        return None
    if not fields["manifest"]:
        msgs.fail("Channel manifest URL is required")
        return None
    if not fields["key_kid"]:
        msgs.fail("Channel Key:Kid is required")
        return None
    fields.update({f: _form_str(f) for f in ENCODING_FIELDS})
    return fields


def _create_channel(msgs: PageMessages) -> None:
    fields = _channel_fields(msgs)
    if fields is None:
        return
    channel = _get_store().create_channel(Channel(**fields).apply_encoding_defaults())
    logger.info("Channel %d '%s' created", channel.id, channel.name)
    msgs.ok("Channel created successfully")


def _update_channel(msgs: PageMessages) -> None:
    store = _get_store()
    channel_id = _parse_id(request.form.get("id"))
    if channel_id is None:
        msgs.fail("Invalid channel ID")
        return
    existing = store.get_channel(channel_id)
    if existing is None:
        msgs.fail("Channel not found")
        return

    fields = _channel_fields(msgs)
    if fields is None:
        return
    for key, value in fields.items():
        setattr(existing, key, value)
    existing.apply_encoding_defaults()

    if store.update_channel(existing):
        msgs.ok("Channel updated successfully")
    else:
        msgs.fail("Failed to update channel")


@pages_bp.route("/api/channels")
@login_required
def channels_json():
    channels = sorted(_get_store().get_all_channels(), key=lambda c: c.id)
    return jsonify([c.to_dict() for c in channels])


# ---------------------------------------------------------------------------
# Channel lifecycle
# ---------------------------------------------------------------------------


def _lifecycle_channel_id() -> int:
    channel_id = _parse_id(request.form.get("channel_id"))
    if channel_id is None:
        abort(400, description="Invalid channel ID")
    return channel_id


@pages_bp.route("/channel/start", methods=["POST"])
@login_required
def channel_start():
    channel_id = _lifecycle_channel_id()
    port = _get_store().start_channel(channel_id)
    if port is None:
        abort(404, description="Channel not found")
    logger.info("Channel %d started on port %d by '%s'", channel_id, port, g.user.username)
    return redirect(_local_redirect_target(url_for("pages.channels")))


@pages_bp.route("/channel/stop", methods=["POST"])
@login_required
def channel_stop():
    channel_id = _lifecycle_channel_id()
    if not _get_store().stop_channel(channel_id):
        abort(404, description="Channel not found")
    logger.info("Channel %d stopped by '%s'", channel_id, g.user.username)
    return redirect(_local_redirect_target(url_for("pages.channels")))


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


def _render_users(msgs: PageMessages):
    return render_template(
        "users.html",
        title="Users",
        users=sorted(_get_store().get_all_users(), key=lambda u: u.id),
        message=msgs.message,
        error=msgs.error,
    )


@pages_bp.route("/users", methods=["GET", "POST"])
@login_required
@feature_required("user_management")
def users():
    msgs = PageMessages()
    if request.method == "GET":
        raw = request.args.get("delete")
        if raw:
            _require_query_csrf()
            _delete_user(raw, msgs)
        return _render_users(msgs)

    action = request.form.get("action", "")
    if action == "create":
        _create_user(msgs)
    elif action == "update":
        _update_user(msgs)
    else:
        msgs.fail("Invalid action")
    return _render_users(msgs)


def _delete_user(raw: str, msgs: PageMessages) -> None:
    user_id = _parse_id(raw)
    if user_id is None:
        msgs.fail("Invalid user ID")
        return
    if user_id == g.user.id:
        msgs.fail("You cannot delete your own account")
        return
    if _get_store().delete_user(user_id):
        _get_sessions().destroy_user_sessions(user_id)
        logger.info("User %d deleted by '%s'", user_id, g.user.username)
        msgs.ok("User deleted successfully")
    else:
        msgs.fail("User not found")


def _user_fields() -> dict:
    return {
        "username": _form_str("username"),
        "email": _form_str("email"),
        "first_name": _form_str("first_name"),
        "last_name": _form_str("last_name"),
        "role": _form_str("role") or DEFAULT_ROLE,
        "active": _form_checkbox("active"),
    }


def _create_user(msgs: PageMessages) -> None:
    store = _get_store()
    fields = _user_fields()
    password = request.form.get("password", "")

    if not fields["username"]:
        msgs.fail("Username is required")
        return
    if not fields["email"]:
        msgs.fail("Email is required")
        return
    if not password:
        msgs.fail("Password is required")
        return
    weakness = validate_password_strength(password)
    if weakness:
        msgs.fail(weakness)
        return
    if store.get_user_by_username(fields["username"]) is not None:
        msgs.fail("Username already exists")
        return

    user = User(**fields)
    user.set_password(password)
    user = store.create_user(user)
    logger.info("User %d '%s' created by '%s'", user.id, user.username, g.user.username)
    msgs.ok("User created successfully")


def _update_user(msgs: PageMessages) -> None:
    store = _get_store()
    user_id = _parse_id(request.form.get("id"))
    if user_id is None:
        msgs.fail("Invalid user ID")
        return
    existing = store.get_user(user_id)
    if existing is None:
        msgs.fail("User not found")
        return

    fields = _user_fields()
    password = request.form.get("password", "")
    if not fields["username"]:
        msgs.fail("Username is required")
        return
    if not fields["email"]:
        msgs.fail("Email is required")
        return
    other = store.get_user_by_username(fields["username"])
    if other is not None and other.id != user_id:
        msgs.fail("Username already exists")
        return
    if user_id == g.user.id and not fields["active"]:
        msgs.fail("You cannot disable your own account")
        return
    if password:
        weakness = validate_password_strength(password)
        if weakness:
            msgs.fail(weakness)
            return
        existing.set_password(password)

    for key, value in fields.items():
        setattr(existing, key, value)

    if not store.update_user(existing):
        msgs.fail("Failed to update user")
        return
    if not existing.active:
        _get_sessions().destroy_user_sessions(user_id)
    msgs.ok("User updated successfully")
