"""Shared fixtures: a RegistryClient wired to the fake registry."""

import httpx
import pytest

from layerproxy.services.registry_client_service import RegistryClient

from .fake_registry import FakeRegistry


@pytest.fixture
def fake_registry():
    return FakeRegistry()


@pytest.fixture
def registry_client(fake_registry):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(fake_registry.handler))
    return RegistryClient(http_client=http_client)
