"""Shared fixtures for all tests."""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure repo root is on sys.path so tests can import the `voxrelay` package
# (and `tests.helpers`) when running pytest without an editable install.
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

import pytest  # noqa: E402

from voxrelay.config.settings import get_settings  # noqa: E402


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> None:
    """Each test sees settings built from its own environment."""
    get_settings.cache_clear()


@pytest.fixture
def pcm_frame() -> bytes:
    """100ms of PCM16 LE mono at 16kHz, quarter amplitude."""
    from tests.helpers import make_pcm_frame

    return make_pcm_frame()
