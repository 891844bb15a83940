"""Integration test fixtures for sentinel-client.

These tests require a running sentinel monitoring at least one replica set.
Point them at it with:
    SENTINEL_TEST_ADDRESS=localhost:26379 pytest -m integration
"""

import asyncio
import os

import pytest

SENTINEL_TEST_ADDRESS = os.environ.get("SENTINEL_TEST_ADDRESS", "localhost:26379")


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "integration: marks tests as requiring a running sentinel")


@pytest.fixture
async def sentinel_address() -> str:
    """Get the test sentinel address, skipping when nothing listens there."""
    host, _, port = SENTINEL_TEST_ADDRESS.rpartition(":")
    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(host, int(port)), 1.0)
    except (OSError, TimeoutError):
        pytest.skip(f"No sentinel at {SENTINEL_TEST_ADDRESS}")
    writer.close()
    await writer.wait_closed()
    return SENTINEL_TEST_ADDRESS
