"""Abstract backend interfaces for the accelerator runtime."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Sequence

import numpy as np

from accel_runtime.config import RuntimeConfig
from accel_runtime.stream import Stream


class MemoryDomain(Enum):
    HOST = "host"
    DEVICE = "device"
    UNIFIED = "unified"


class MemcpyKind(Enum):
    HOST_TO_HOST = "host_to_host"
    HOST_TO_DEVICE = "host_to_device"
    DEVICE_TO_HOST = "device_to_host"
    DEVICE_TO_DEVICE = "device_to_device"
    # Unified storage on either side: the runtime resolves the direction.
    DEFAULT = "default"


def memcpy_kind(dst: MemoryDomain, src: MemoryDomain) -> MemcpyKind:
    """Infer the transfer direction from the two memory domains."""
    if MemoryDomain.UNIFIED in (dst, src):
        return MemcpyKind.DEFAULT
    if src is MemoryDomain.HOST:
        return MemcpyKind.HOST_TO_HOST if dst is MemoryDomain.HOST else MemcpyKind.HOST_TO_DEVICE
    return MemcpyKind.DEVICE_TO_HOST if dst is MemoryDomain.HOST else MemcpyKind.DEVICE_TO_DEVICE


@dataclass
class ThreadContext:
    """Coordinates of the execution unit running an entry point."""

    block_idx: int
    block_dim: int
    thread_idx: int
    grid_dim: int
    shared: np.ndarray
    kernel_name: str = ""

    @property
    def global_id(self) -> int:
        return self.block_idx * self.block_dim + self.thread_idx


class Allocation(ABC):
    """Storage for one element in a memory domain."""

    @property
    @abstractmethod
    def domain(self) -> MemoryDomain:
        ...

    @property
    @abstractmethod
    def dtype(self) -> np.dtype:
        ...

    @property
    @abstractmethod
    def address(self) -> int:
        ...

    @property
    @abstractmethod
    def released(self) -> bool:
        ...

    @property
    @abstractmethod
    def native_handle(self) -> Any:
        """Backend-native storage object."""
        ...

    @property
    def size_bytes(self) -> int:
        return self.dtype.itemsize


class Backend(ABC):
    """Abstract accelerator execution backend.

    ``copy`` and ``launch`` only enqueue work on a stream; ``synchronize``
    is the point where the calling context waits for it. ``stream=None``
    always means the backend's default stream.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    @abstractmethod
    def config(self) -> RuntimeConfig:
        ...

    @property
    @abstractmethod
    def default_stream(self) -> Stream:
        ...

    @abstractmethod
    def allocate(self, domain: MemoryDomain, dtype: np.dtype) -> Allocation:
        ...

    @abstractmethod
    def free(self, allocation: Allocation) -> None:
        ...

    @abstractmethod
    def copy(self, dst: Allocation | np.ndarray, src: Allocation | np.ndarray, stream: Stream | None = None) -> None:
        """Enqueue a one-element transfer. Plain ndarrays are pageable host memory."""
        ...

    @abstractmethod
    def launch(
        self,
        entry_point: Callable[..., None],
        grid_dim: int,
        block_dim: int,
        shared_mem_bytes: int,
        stream: Stream | None,
        args: Sequence[Any],
        kernel_name: str = "",
    ) -> None:
        """Enqueue ``entry_point(ctx, *args)`` over ``grid_dim * block_dim`` units."""
        ...

    @abstractmethod
    def execute(
        self,
        entry_point: Callable[..., None],
        grid_dim: int,
        block_dim: int,
        shared_mem_bytes: int,
        args: Sequence[Any],
        kernel_name: str = "",
    ) -> None:
        """Run an entry point to completion in the calling context.

        This is the body of a launch once its stream reaches it; graph
        replays call it directly for each node.
        """
        ...

    @abstractmethod
    def enqueue(self, stream: Stream | None, label: str, fn: Callable[[], None]) -> None:
        """Enqueue an arbitrary host callback in stream order."""
        ...

    @abstractmethod
    def create_stream(self, name: str = "") -> Stream:
        ...

    @abstractmethod
    def synchronize(self, stream: Stream | None = None) -> None:
        ...

    @abstractmethod
    def device_synchronize(self) -> None:
        ...

    @abstractmethod
    def load(self, allocation: Allocation) -> Any:
        """Read the element, as seen from the current execution context."""
        ...

    @abstractmethod
    def store(self, allocation: Allocation, value: Any) -> None:
        ...

    @abstractmethod
    def current_kernel(self) -> ThreadContext | None:
        """The executing thread context, or None when running host code."""
        ...
