"""Shared fixtures."""

from __future__ import annotations

from typing import Iterator

import pytest

from mock_registry import MockRegistryServer


@pytest.fixture
def registry() -> Iterator[MockRegistryServer]:
    server = MockRegistryServer()
    server.start()
    try:
        yield server
    finally:
        server.stop()
