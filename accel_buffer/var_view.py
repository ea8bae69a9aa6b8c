"""Non-owning handles to single-element storage.

``VarView`` is the host-side handle: it issues blocking transfers into and
out of the storage. ``Dense``/``CDense`` are the kernel-side viewers: they
only read or write the element in place and never allocate, free or copy
through a stream. None of them extends the owner's lifetime.
"""

from __future__ import annotations

from typing import Any

import ml_dtypes
import numpy as np

from accel_launch.buffer_launch import BufferLaunch
from accel_runtime.backend import Allocation, Backend, MemoryDomain
from accel_runtime.errors import TransferError

_DTYPE_MAP = {
    "float16": np.float16,
    "bfloat16": ml_dtypes.bfloat16,
    "float32": np.float32,
    "float64": np.float64,
    "int32": np.int32,
    "int64": np.int64,
}


def resolve_dtype(dtype: Any) -> np.dtype:
    """Turn a numpy dtype, scalar type or short name (incl. ``"bfloat16"``) into a dtype."""
    # np.dtype(None) would silently mean float64.
    if dtype is None:
        raise TypeError("element type must be given, got None")
    if isinstance(dtype, str) and dtype in _DTYPE_MAP:
        return np.dtype(_DTYPE_MAP[dtype])
    try:
        return np.dtype(dtype)
    except TypeError as exc:
        raise TypeError(f"unsupported element type: {dtype!r}") from exc


def _host_buffer(dtype: np.dtype, value: Any) -> np.ndarray:
    buf = np.empty(1, dtype=dtype)
    try:
        buf[0] = value
    except (TypeError, ValueError, OverflowError) as exc:
        raise TransferError(f"cannot store {value!r} as {dtype}") from exc
    return buf


class CDense:
    """Read-only kernel-side viewer of one element."""

    __slots__ = ("_allocation", "_backend")

    def __init__(self, allocation: Allocation, backend: Backend):
        self._allocation = allocation
        self._backend = backend

    @property
    def address(self) -> int:
        return self._allocation.address

    @property
    def domain(self) -> MemoryDomain:
        return self._allocation.domain

    @property
    def dtype(self) -> np.dtype:
        return self._allocation.dtype

    def get(self) -> Any:
        return self._backend.load(self._allocation)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.domain.value}, {self.dtype}, {self.address:#x})"


class Dense(CDense):
    """Read/write kernel-side viewer of one element."""

    __slots__ = ()

    def set(self, value: Any) -> None:
        self._backend.store(self._allocation, value)


class VarView:
    """Host-side, non-owning handle that performs blocking transfers."""

    def __init__(self, allocation: Allocation, backend: Backend):
        self._allocation = allocation
        self._backend = backend

    @property
    def allocation(self) -> Allocation:
        return self._allocation

    @property
    def backend(self) -> Backend:
        return self._backend

    @property
    def domain(self) -> MemoryDomain:
        return self._allocation.domain

    @property
    def dtype(self) -> np.dtype:
        return self._allocation.dtype

    @property
    def address(self) -> int:
        return self._allocation.address

    def copy_from(self, other: Any) -> None:
        """Overwrite the element from another view or from a host value."""
        if isinstance(other, VarView):
            src: Any = other
        else:
            src = _host_buffer(self.dtype, other)
        BufferLaunch(backend=self._backend).copy(self, src).wait()

    def copy_to(self) -> Any:
        """Transfer the element out into a fresh host value."""
        buf = np.empty(1, dtype=self.dtype)
        BufferLaunch(backend=self._backend).copy(buf, self).wait()
        return buf[0]

    def viewer(self) -> Dense:
        return Dense(self._allocation, self._backend)

    def cviewer(self) -> CDense:
        return CDense(self._allocation, self._backend)

    def __repr__(self) -> str:
        return f"VarView({self.domain.value}, {self.dtype}, {self.address:#x})"
