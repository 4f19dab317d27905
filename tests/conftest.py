"""
Shared fixtures for TagDB tests.

Every store gets its own temporary directory, so tests never share a
database file.
"""

import tempfile
from pathlib import Path

import pytest
import pytest_asyncio

from tagdb.config import Settings
from tagdb.storage import StorageGateway, StorageWorker
from tagdb.store import TagStore


@pytest.fixture
def data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest_asyncio.fixture
async def gateway(data_dir):
    """Started gateway over a real storage worker."""
    gateway = StorageGateway(StorageWorker(Path(data_dir) / "tags.db"), call_timeout=10.0)
    await gateway.start()
    yield gateway
    await gateway.close()


@pytest_asyncio.fixture
async def store(data_dir):
    """Started store owned by user-1."""
    settings = Settings(data_dir=data_dir, user_id="user-1", call_timeout_seconds=10.0)
    async with TagStore.open(settings) as store:
        yield store
