"""
Pytest configuration and shared fixtures.

This module provides a session, a temporary SQLite store and deterministic
pacing helpers for the Vinted scout tests. Listing and response factories
live in ``helpers.py``.
"""

import random
from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from helpers import COOKIE_STRING
from vinted_scout.models.config import DelayConfig, FetchConfig
from vinted_scout.models.session import Session
from vinted_scout.services.alert_store import AlertStore


@pytest.fixture
def session():
    return Session(
        auth_token="token-value",
        cookie_header=COOKIE_STRING,
        user_agent="test-agent",
        referer="https://www.vinted.fr/",
    )


@pytest.fixture
def delay_source():
    """A delay source returning the default delay configuration."""
    source = Mock()
    source.current.return_value = DelayConfig()
    return source


@pytest.fixture
def sleeps():
    """Records every requested sleep instead of waiting."""
    return []


@pytest.fixture
def fetch_config():
    return FetchConfig()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def store(tmp_path):
    return AlertStore(str(tmp_path / "scout.db"))


@pytest.fixture
def now():
    return datetime.now(timezone.utc)

