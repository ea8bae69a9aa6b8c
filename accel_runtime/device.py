"""Process-wide current backend."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from accel_runtime.backend import Backend

_current: Backend | None = None


def get_backend() -> Backend:
    """Return the current backend, creating an emulated one on first use."""
    global _current
    if _current is None:
        from accel_runtime.emulated_backend import EmulatedBackend

        _current = EmulatedBackend()
    return _current


def set_backend(backend: Backend | None) -> Backend | None:
    """Install ``backend`` as current and return the previous one."""
    global _current
    previous, _current = _current, backend
    return previous


@contextmanager
def use_backend(backend: Backend) -> Iterator[Backend]:
    previous = set_backend(backend)
    try:
        yield backend
    finally:
        set_backend(previous)
