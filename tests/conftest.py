"""Shared test fixtures and marker registration."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from omnifs import Registry
from omnifs.backends import MemoryBackend

if TYPE_CHECKING:
    from collections.abc import Iterator


def pytest_configure(config: object) -> None:
    """Register custom markers."""
    if isinstance(config, pytest.Config):
        config.addinivalue_line("markers", "integration: requires external services")


@pytest.fixture()
def registry() -> Iterator[Registry]:
    with Registry() as reg:
        yield reg


@pytest.fixture()
def mem(registry: Registry) -> MemoryBackend:
    """Empty in-memory backend registered in ``registry``."""
    return MemoryBackend(registry=registry)
