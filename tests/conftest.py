"""Shared test fixtures.

Add fixtures here that are used across multiple test files. Fakes and
canned payloads live in ``fakes.py``.
"""

import httpx
import pytest
from fakes import SESSION_ID, FakeT3, make_settings

from t3services.client import SmartCare
from t3services.config import T3Settings


@pytest.fixture
def server() -> FakeT3:
    return FakeT3()


@pytest.fixture
def http(server: FakeT3) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(server.handler))


@pytest.fixture
def settings() -> T3Settings:
    return make_settings(session_id=SESSION_ID)


@pytest.fixture
def client(settings: T3Settings, http: httpx.AsyncClient) -> SmartCare:
    return SmartCare(settings, http=http)
