"""Shared fixtures for sheetcalc tests."""

from __future__ import annotations

import pytest

from sheetcalc.logging.events import reset_sink


@pytest.fixture(autouse=True)
def _detached_event_sink():
    """Keep the module-level event sink from leaking between tests."""
    reset_sink()
    yield
    reset_sink()
