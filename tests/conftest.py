"""
Main pytest configuration for tokengate tests.

Fixtures for clocks, estimators and in-memory stores shared by unit tests.
"""

import os

import pytest

# Set test environment variables before importing package modules
os.environ["LOG_LEVEL"] = "DEBUG"

from tokengate.infrastructure.repositories import InMemoryWindowStore
from tokengate.services.tokens import HeuristicTokenEstimator
from tests.fakes import FakeClock


@pytest.fixture
def fake_clock():
    """Clock advancing one millisecond per read."""
    return FakeClock()


@pytest.fixture
def char_estimator():
    """Estimator charging one token per character."""
    return HeuristicTokenEstimator(chars_per_token=1.0)


@pytest.fixture
def memory_store():
    """Fresh in-memory window store."""
    return InMemoryWindowStore()
