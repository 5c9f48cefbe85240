"""Pytest hooks and fixtures."""

import os
import sys
from pathlib import Path

import pytest

from mcpbridge.bridge.session import PeerCommand

FAKE_PEER = Path(__file__).with_name("fake_peer.py")


def pytest_configure(config):
    """Register custom markers (also in pyproject.toml)."""
    config.addinivalue_line(
        "markers",
        "subprocess: spawns a real peer process (skipped when MCPBRIDGE_SKIP_SUBPROCESS=1)",
    )


def pytest_collection_modifyitems(config, items):
    """Skip subprocess tests on hosts that cannot fork a Python child."""
    if os.environ.get("MCPBRIDGE_SKIP_SUBPROCESS") != "1":
        return
    skip = pytest.mark.skip(reason="Subprocess tests disabled (MCPBRIDGE_SKIP_SUBPROCESS=1)")
    for item in items:
        if "subprocess" in item.keywords:
            item.add_marker(skip)


@pytest.fixture
def fake_peer():
    """Factory for a PeerCommand that runs tests/fake_peer.py with extra flags."""

    def _make(*flags: str) -> PeerCommand:
        return PeerCommand(argv=[sys.executable, str(FAKE_PEER), *flags])

    return _make
