"""Global test fixtures for stashreview."""

from __future__ import annotations

import pytest
from helpers.fake_stash import BASE_URL

from stashreview.config import Config, set_config
from stashreview.stash_api import StashClient


@pytest.fixture(autouse=True)
def _default_config():
    """Reset config to defaults before every test.

    A ``.stashreview.toml`` or ``STASH_*`` variables on the developer's
    machine must not leak into tests that read the active config.
    """
    set_config(Config())
    yield
    set_config(Config())


@pytest.fixture
def client():
    """A client pointed at the fake server's host; mount routes with respx."""
    with StashClient(BASE_URL, "alice", "s3cret") as c:
        yield c
