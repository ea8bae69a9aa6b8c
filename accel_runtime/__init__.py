"""Accelerator runtime: backends, streams, memory domains and execution graphs."""

from accel_runtime.backend import Allocation, Backend, MemcpyKind, MemoryDomain, ThreadContext, memcpy_kind
from accel_runtime.config import DEFAULT_CONFIG, RuntimeConfig
from accel_runtime.device import get_backend, set_backend, use_backend
from accel_runtime.emulated_backend import EmulatedAllocation, EmulatedBackend
from accel_runtime.errors import (
    AccelError,
    ErrorCode,
    IllegalAddressError,
    InvalidRangeError,
    KernelExecutionError,
    LaunchConfigError,
    LaunchContextError,
    LaunchError,
    TransferError,
)
from accel_runtime.graph import Graph, GraphExec, GraphViewer
from accel_runtime.stream import LaunchStream, Stream

__all__ = [
    "AccelError",
    "Allocation",
    "Backend",
    "DEFAULT_CONFIG",
    "EmulatedAllocation",
    "EmulatedBackend",
    "ErrorCode",
    "Graph",
    "GraphExec",
    "GraphViewer",
    "IllegalAddressError",
    "InvalidRangeError",
    "KernelExecutionError",
    "LaunchConfigError",
    "LaunchContextError",
    "LaunchError",
    "LaunchStream",
    "MemcpyKind",
    "MemoryDomain",
    "RuntimeConfig",
    "Stream",
    "ThreadContext",
    "TransferError",
    "get_backend",
    "memcpy_kind",
    "set_backend",
    "use_backend",
]
