"""Shared fixtures for framelink tests."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest

from framelink import Connection
from tests.utils import connection_pair


@pytest.fixture
async def pair() -> AsyncIterator[tuple[Connection, Connection]]:
    """A connected ``(client, server)`` pair with default settings."""
    async with connection_pair() as conns:
        yield conns
