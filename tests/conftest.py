from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

import xml_gateway
from fastapi_app import app
from gateway_settings import Settings, load_settings


@pytest.fixture
def settings():
    return Settings(
        api_url="https://backend.test/api",
        server_certificate="client.crt",
        server_private_key="client.key",
        server_ca_certificate="ca.crt",
    )


@pytest.fixture
def client(settings):
    app.dependency_overrides[load_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def backend(monkeypatch):
    """Session returned by build_session; configure ``response`` or ``post.side_effect``."""
    session = MagicMock()
    response = MagicMock()
    response.status_code = 200
    response.content = b""
    session.post.return_value.__enter__.return_value = response
    session.response = response
    monkeypatch.setattr(xml_gateway, "build_session", lambda tls: session)
    return session
