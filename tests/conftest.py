# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""Test configuration — paths, store and event bus isolation for tests."""

from datetime import datetime

import pytest

from core.events import bus
from core.paths import configure, reset
from core.store import get_store, reset_store


@pytest.fixture(autouse=True)
def isolated_paths(tmp_path):
    """Route all Hearth data to a temp directory for test isolation."""
    paths = configure(tmp_path)
    paths.ensure_dirs()
    reset_store()
    bus.reset()
    yield paths
    bus.reset()
    reset_store()
    reset()


@pytest.fixture
def store(isolated_paths):
    return get_store()


@pytest.fixture
def now():
    """Tuesday, 2026-03-10 12:00, a fixed clock for relative-date tests."""
    return datetime(2026, 3, 10, 12, 0, 0)
