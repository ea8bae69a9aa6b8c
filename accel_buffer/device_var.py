"""Owning single-value storage in host, device or unified memory.

A ``Var`` holds exactly one allocation of one element. Every transfer
(construct from a value, ``set``, ``get``, ``copy_from``) is synchronous:
it returns only after the copy has run, so a half-written value is never
observable. There are no implicit conversions; use ``get()``/``set()`` on the
host and ``viewer()``/``cviewer()`` inside kernels.

Usage:
    counter = DeviceVar(np.int64, 0)
    dense = counter.viewer()
    ParallelFor(64).apply(100, lambda i: dense.set(dense.get() + 1))
    counter.get()
"""

from __future__ import annotations

import logging
from typing import Any

import numpy as np

from accel_buffer.var_view import CDense, Dense, VarView, resolve_dtype
from accel_runtime.backend import Allocation, Backend, MemoryDomain
from accel_runtime.device import get_backend
from accel_runtime.errors import TransferError

logger = logging.getLogger(__name__)

_NO_VALUE = object()


class Var:
    """Owner of one element of storage in ``domain``."""

    domain: MemoryDomain = MemoryDomain.DEVICE

    def __init__(self, dtype: Any, value: Any = _NO_VALUE, *, backend: Backend | None = None):
        self._backend = backend or get_backend()
        self._allocation: Allocation | None = self._backend.allocate(self.domain, resolve_dtype(dtype))
        if value is _NO_VALUE:
            return
        try:
            self.view().copy_from(value)
        except BaseException:
            self.release()
            raise

    @classmethod
    def from_var(cls, other: Var | VarView, *, backend: Backend | None = None) -> Var:
        """Copy-construct from another var or view, whatever its domain."""
        source = other.view() if isinstance(other, Var) else other
        var = cls(source.dtype, backend=backend or source.backend)
        try:
            var.copy_from(source)
        except BaseException:
            var.release()
            raise
        return var

    def __copy__(self) -> Var:
        return type(self).from_var(self)

    def __deepcopy__(self, memo: dict) -> Var:
        return type(self).from_var(self)

    # ------------------------------------------------------------------

    @property
    def backend(self) -> Backend:
        return self._backend

    @property
    def data(self) -> Allocation | None:
        """The owned allocation, or None once moved from or released."""
        return self._allocation

    @property
    def empty(self) -> bool:
        return self._allocation is None

    @property
    def dtype(self) -> np.dtype:
        return self._live_allocation().dtype

    def _live_allocation(self) -> Allocation:
        if self._allocation is None:
            raise TransferError(f"{type(self).__name__} has no storage (moved from or released)")
        return self._allocation

    def view(self) -> VarView:
        return VarView(self._live_allocation(), self._backend)

    def viewer(self) -> Dense:
        return Dense(self._live_allocation(), self._backend)

    def cviewer(self) -> CDense:
        return CDense(self._live_allocation(), self._backend)

    # ------------------------------------------------------------------
    # Blocking transfers
    # ------------------------------------------------------------------

    def copy_from(self, other: Var | VarView) -> Var:
        if other is self:
            return self
        source = other.view() if isinstance(other, Var) else other
        if not isinstance(source, VarView):
            raise TypeError(f"copy_from expects a Var or VarView, got {type(other).__name__}; use set() for values")
        self.view().copy_from(source)
        return self

    def set(self, value: Any) -> Var:
        self.view().copy_from(value)
        return self

    def get(self) -> Any:
        return self.view().copy_to()

    # ------------------------------------------------------------------
    # Ownership
    # ------------------------------------------------------------------

    def move(self) -> Var:
        """Transfer the storage to a new owner; this var is left empty."""
        moved = object.__new__(type(self))
        moved._backend = self._backend
        moved._allocation = self._live_allocation()
        self._allocation = None
        logger.debug("moved %s storage at %#x", self.domain.value, moved._allocation.address)
        return moved

    def release(self) -> None:
        """Free the storage. Safe to call more than once."""
        allocation, self._allocation = self._allocation, None
        if allocation is not None:
            self._backend.free(allocation)

    def __enter__(self) -> Var:
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()

    def __del__(self) -> None:
        if getattr(self, "_allocation", None) is not None:
            self.release()

    def __repr__(self) -> str:
        if self._allocation is None:
            return f"{type(self).__name__}(<empty>)"
        return f"{type(self).__name__}({self._allocation.dtype}, {self._allocation.address:#x})"


class DeviceVar(Var):
    domain = MemoryDomain.DEVICE


class UniversalVar(Var):
    domain = MemoryDomain.UNIFIED


class HostVar(Var):
    domain = MemoryDomain.HOST


def make_dense(var: Var) -> Dense:
    return var.viewer()


def make_cdense(var: Var) -> CDense:
    return var.cviewer()


def make_viewer(var: Var) -> Dense:
    return make_dense(var)


def make_cviewer(var: Var) -> CDense:
    return make_cdense(var)
