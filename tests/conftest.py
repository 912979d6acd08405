"""
Shared pytest fixtures for engine and operation tests.
"""

import os
import tempfile

import pytest
import pytest_asyncio

from kvrest.engine.engine import Engine
from kvrest.models.write_batch import WriteBatch


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that is cleaned up after test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest_asyncio.fixture
async def engine(temp_dir):
    """Provide an open, empty Engine instance."""
    async with Engine(storage_dir=os.path.join(temp_dir, "db")) as eng:
        yield eng


@pytest_asyncio.fixture
async def abcd_engine(engine):
    """Provide an Engine holding {a: A, b: B, c: C, d: D}."""
    batch = WriteBatch()
    for key in (b"a", b"b", b"c", b"d"):
        batch.put(key, key.upper())
    await engine.write(batch)
    return engine


@pytest.fixture
def wal_path(temp_dir):
    """Provide a path for WAL file."""
    return os.path.join(temp_dir, "test.wal")


@pytest.fixture
def large_sample_entries():
    """Provide larger sample for stress testing."""
    return [(f"key{i:04d}".encode(), f"value{i}".encode()) for i in range(2500)]
