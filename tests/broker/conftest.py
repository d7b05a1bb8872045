"""Pytest fixtures for OAuth broker tests.

The upstream token endpoint is replaced by a recording test double so no
test touches the network.
"""

import json
from typing import Generator, List

import pytest
from fastapi.testclient import TestClient

from ticktick_cli.broker.config import BrokerSettings, get_settings
from ticktick_cli.broker.forwarding import UpstreamRequest, UpstreamResponse
from ticktick_cli.broker.main import app, get_upstream


class FakeUpstream:
    """Records upstream requests and replays a canned response."""

    def __init__(self):
        self.calls: List[UpstreamRequest] = []
        self.response = UpstreamResponse(
            status_code=200,
            body=json.dumps(
                {
                    "access_token": "A1",
                    "refresh_token": "R1",
                    "token_type": "bearer",
                    "expires_in": 3600,
                    "scope": "tasks:read tasks:write",
                }
            ).encode(),
            content_type="application/json;charset=UTF-8",
        )
        self.error = None

    def __call__(self, request: UpstreamRequest, timeout: float) -> UpstreamResponse:
        self.calls.append(request)
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def broker_settings() -> BrokerSettings:
    """Broker settings with credentials and no API key."""
    return BrokerSettings(client_id="broker_client_id", client_secret="broker_secret")


@pytest.fixture
def upstream() -> FakeUpstream:
    """Recording upstream test double."""
    return FakeUpstream()


@pytest.fixture
def client(broker_settings, upstream) -> Generator[TestClient, None, None]:
    """FastAPI test client wired to the test settings and fake upstream."""
    app.dependency_overrides[get_settings] = lambda: broker_settings
    app.dependency_overrides[get_upstream] = lambda: upstream

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
