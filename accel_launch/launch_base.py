"""Shared stream handling for launchers."""

from __future__ import annotations

from accel_runtime.backend import Backend
from accel_runtime.device import get_backend
from accel_runtime.stream import Stream


class LaunchBase:
    """Base of every launcher: owns the stream work is issued to.

    Launch methods return ``self`` so calls chain, e.g.
    ``ParallelFor(64).apply(n, f).wait()``.
    """

    def __init__(self, stream: Stream | None = None, backend: Backend | None = None):
        if backend is None:
            backend = stream.backend if stream is not None else get_backend()
        self._backend = backend
        self._stream = stream
        self._kernel_name = ""

    @property
    def backend(self) -> Backend:
        return self._backend

    @property
    def stream(self) -> Stream | None:
        return self._stream

    @property
    def kernel_name(self) -> str:
        return self._kernel_name

    def set_kernel_name(self, name: str):
        self._kernel_name = name
        return self

    def wait(self):
        """Block until everything issued to this launcher's stream has run."""
        self._backend.synchronize(self._stream)
        return self
