import pytest

from fuzzy.config import AppConfig, LoggingConfig
from fuzzy.core.store import Store
from fuzzy.models import ADMIN_ROLE, User
from fuzzy.web.app import create_app

ADMIN_PASSWORD = "Admin123!"


@pytest.fixture
def config():
    """Default config with console/file logging switched off."""
    return AppConfig(logging=LoggingConfig(console=False, file=""))


@pytest.fixture
def store():
    return Store()


@pytest.fixture
def seeded_store(store):
    store.seed_sample_data()
    return store


@pytest.fixture
def admin(store):
    user = User(
        username="admin",
        email="admin@example.com",
        first_name="Ada",
        role=ADMIN_ROLE,
        active=True,
    )
    user.set_password(ADMIN_PASSWORD, rounds=4)
    return store.create_user(user)


@pytest.fixture
def app(config, store):
    application = create_app(config=config, store=store)
    application.config["TESTING"] = True
    return application


@pytest.fixture
def client(app):
    return app.test_client()


def login(client, username="admin", password=ADMIN_PASSWORD):
    return client.post("/login", data={"username": username, "password": password})


def csrf_token_for(client, app) -> str:
    """CSRF token of the session the client's cookie points at."""
    cookie = client.get_cookie(app.config["fuzzy_config"].security.session_cookie_name)
    return app.config["sessions"].get_session(cookie.value).csrf_token


@pytest.fixture
def auth_client(app, client, admin):
    """Client logged in as the admin; ``post_form`` and ``get_link`` add the CSRF token."""
    r = login(client)
    assert r.status_code == 302
    token = csrf_token_for(client, app)

    def post_form(path, data=None, **kwargs):
        payload = dict(data or {})
        payload.setdefault("csrf_token", token)
        return client.post(path, data=payload, **kwargs)

    def get_link(path, params):
        return client.get(path, query_string={**params, "csrf_token": token})

    client.post_form = post_form
    client.get_link = get_link
    client.csrf_token = token
    return client
