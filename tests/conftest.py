"""Shared pytest fixtures for the inbox tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402

from .helpers import FakeDatabase, RecordingClient  # noqa: E402

_SETTINGS_ENV = (
    "WHATSAPP_VERIFY_TOKEN",
    "INSTAGRAM_VERIFY_TOKEN",
    "FACEBOOK_VERIFY_TOKEN",
    "META_APP_SECRET",
    "WHATSAPP_PHONE_NUMBER_ID",
    "META_GRAPH_API_VERSION",
    "OUTBOUND_TIMEOUT_SECONDS",
    "OUTBOUND_MAX_RETRIES",
    "OUTBOUND_MODE",
)


@pytest.fixture(autouse=True)
def _clean_settings_env(monkeypatch):
    """Start every test from default settings.

    Settings are read from the environment on each call, so a developer's
    shell (e.g. META_APP_SECRET) would otherwise change webhook behaviour.
    DATABASE_URL is left alone: it gates the Postgres tests.
    """
    for name in _SETTINGS_ENV:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def db():
    return FakeDatabase()


@pytest.fixture
def session_factory(db):
    return db.session


@pytest.fixture
def platform_client():
    return RecordingClient()
