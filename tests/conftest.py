"""Shared fixtures and helpers for accelerator runtime tests."""

import pytest

from accel_runtime.config import RuntimeConfig
from accel_runtime.device import use_backend
from accel_runtime.emulated_backend import EmulatedBackend


@pytest.fixture(autouse=True)
def backend():
    """Fresh emulated backend installed as the current backend for each test."""
    emulated = EmulatedBackend(RuntimeConfig())
    with use_backend(emulated):
        yield emulated


@pytest.fixture
def make_backend():
    """Factory for backends with a custom config (not installed as current)."""

    def _make(**overrides):
        return EmulatedBackend(RuntimeConfig(**overrides))

    return _make

