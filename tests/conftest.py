"""Pytest configuration shared across the suite."""
from __future__ import annotations

import pytest

from blog_api import create_app
from utils.security import TokenSigner

TEST_SECRETS = {
    "SECRET_KEY": "test-cookie-secret",
    "JWT_ACCESS_SECRET": "test-access-secret",
    "JWT_REFRESH_SECRET": "test-refresh-secret",
}


@pytest.fixture
def app(tmp_path):
    app = create_app(
        "testing",
        overrides={**TEST_SECRETS, "DATABASE_URL": f"sqlite:///{tmp_path / 'blog.db'}"},
    )
    yield app
    storage = app.extensions["storage"]
    storage.close()
    storage.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_client(app):
    """Independent clients, one cookie jar each."""
    return app.test_client


@pytest.fixture
def signer():
    return TokenSigner(
        access_secret=TEST_SECRETS["JWT_ACCESS_SECRET"],
        refresh_secret=TEST_SECRETS["JWT_REFRESH_SECRET"],
    )
