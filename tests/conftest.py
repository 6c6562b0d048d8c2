"""
Shared fixtures: an in-memory store, a temporary upload directory, a
controllable clock and a test client for the full application.
"""
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from shareit.config import Settings
from shareit.database import ShareDatabase
from shareit.main import create_app
from shareit.service import ShareService
from shareit.storage import BlobStorage
from tests.consts import PASSWORDS


class FakeClock:
    """A clock that only moves when told to."""

    def __init__(self, now: datetime = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def make_settings(tmp_path, **overrides) -> Settings:
    settings = Settings()
    settings.REDIS_URL = "memory://"
    settings.APP_DOMAIN = "http://share.test"
    settings.UPLOAD_DIR = str(tmp_path / "shares")
    settings.PASSWORDS = dict(PASSWORDS)
    settings.MIN_NAME_LENGTH = 1
    settings.MAX_NAME_LENGTH = 32
    settings.RANDOM_NAME_LENGTH = 8
    settings.RANDOM_NAME_ATTEMPT_LIMIT = 3
    settings.MAX_UPLOAD_SIZE = 1000
    settings.MAX_LINK_LENGTH = 255
    settings.MAX_EXPIRY_TIME = None
    settings.ALLOWED_MIME_TYPES = []
    settings.DISALLOWED_MIME_TYPES = ["text/html"]
    settings.ALLOWED_LINK_SCHEMES = ["http", "https"]
    settings.HIGHLIGHTING_LANGUAGES = ["auto", "python", "rust"]
    settings.DEFAULT_HIGHLIGHTING_LANGUAGE = "auto"
    settings.DEFAULT_MIME_TYPE = "application/octet-stream"
    settings.EXPIRY_CHECK_INTERVAL = 3600
    for key, value in overrides.items():
        setattr(settings, key, value)
    return settings


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return ShareDatabase.connect("memory://")


@pytest.fixture
def blobs(tmp_path):
    storage = BlobStorage(tmp_path / "blobs")
    storage.ensure_directory()
    return storage


@pytest.fixture
def service(settings, store, blobs, clock):
    return ShareService.from_settings(settings, store, blobs, clock=clock)


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
