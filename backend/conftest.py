"""
Root conftest.py for all backend tests.

This file makes fixtures available to all test files across all apps.
"""
import pytest


@pytest.fixture(autouse=True)
def in_memory_channel_layer(settings):
    """
    Every test publishes to a fresh in-memory channel layer.

    CRITICAL: channels caches layers per process; without a reset, messages
    sent by one test can be received by a consumer in the next one.
    """
    from channels.layers import channel_layers

    settings.CHANNEL_LAYERS = {
        "default": {"BACKEND": "channels.layers.InMemoryChannelLayer"}
    }
    channel_layers.backends.clear()
    yield
    channel_layers.backends.clear()


# ============================================================================
# IMPORT ALL FIXTURES FROM cafeflow/tests/fixtures.py
# ============================================================================
from cafeflow.tests.fixtures import *  # noqa: E402,F401,F403
