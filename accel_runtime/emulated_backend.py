"""Emulated backend: numpy-backed accelerator that executes kernels on the host.

Architecture:
    - Storage: every allocation is a one-element numpy array tagged with a
      memory domain and a unique integer address.
    - Streams: ``copy``/``launch`` only enqueue; work runs when a stream or
      the device is synchronized. The default stream is a barrier against
      every other stream (legacy default-stream semantics).
    - Kernels: an entry point is called once per execution unit with a
      ``ThreadContext``. Blocks run one after another, threads within a block
      in order; ``RuntimeConfig.shuffle_blocks`` permutes the block order.
    - Access checks: device storage is only visible to kernels, host storage
      only to host code, unified storage to both.
"""

from __future__ import annotations

import copy as _copy
import itertools
import logging
from typing import Any, Callable, Sequence

import numpy as np

from accel_runtime.backend import (
    Allocation,
    Backend,
    MemoryDomain,
    ThreadContext,
    memcpy_kind,
)
from accel_runtime.config import RuntimeConfig
from accel_runtime.errors import (
    AccelError,
    ErrorCode,
    IllegalAddressError,
    KernelExecutionError,
    LaunchConfigError,
    LaunchContextError,
    TransferError,
)
from accel_runtime.stream import Operation, Stream

logger = logging.getLogger(__name__)

# Allocation granularity of the emulated address space.
_ALIGNMENT = 256


class EmulatedAllocation(Allocation):
    """One element of emulated storage backed by numpy."""

    def __init__(self, domain: MemoryDomain, dtype: np.dtype, address: int):
        self._domain = domain
        self._dtype = np.dtype(dtype)
        self._address = address
        self._data = np.empty(1, dtype=self._dtype)
        self._released = False

    @property
    def domain(self) -> MemoryDomain:
        return self._domain

    @property
    def dtype(self) -> np.dtype:
        return self._dtype

    @property
    def address(self) -> int:
        return self._address

    @property
    def released(self) -> bool:
        return self._released

    @property
    def native_handle(self) -> np.ndarray:
        return self._data

    def __repr__(self) -> str:
        state = "released" if self._released else "live"
        return f"EmulatedAllocation({self._domain.value}, {self._dtype}, {self._address:#x}, {state})"


class EmulatedBackend(Backend):
    """Host emulation of the accelerator execution model."""

    def __init__(self, config: RuntimeConfig | None = None):
        self._config = config or RuntimeConfig.from_env()
        self._default_stream = Stream(self, is_default=True)
        self._streams: list[Stream] = []
        self._seq = itertools.count()
        self._addresses = itertools.count(0x10000, _ALIGNMENT)
        self._live: dict[int, EmulatedAllocation] = {}
        self._kernel_stack: list[ThreadContext] = []
        self._rng = np.random.default_rng(self._config.shuffle_seed)

    @property
    def name(self) -> str:
        return "emulated"

    @property
    def config(self) -> RuntimeConfig:
        return self._config

    @property
    def default_stream(self) -> Stream:
        return self._default_stream

    @property
    def live_allocations(self) -> int:
        return len(self._live)

    # ------------------------------------------------------------------
    # Memory
    # ------------------------------------------------------------------

    def allocate(self, domain: MemoryDomain, dtype: np.dtype) -> EmulatedAllocation:
        allocation = EmulatedAllocation(MemoryDomain(domain), dtype, next(self._addresses))
        self._live[allocation.address] = allocation
        logger.debug("alloc %s %s at %#x", allocation.domain.value, allocation.dtype, allocation.address)
        return allocation

    def free(self, allocation: Allocation) -> None:
        if allocation.released or self._live.get(allocation.address) is not allocation:
            raise TransferError(f"free of unknown or released storage at {allocation.address:#x}")
        del self._live[allocation.address]
        allocation._released = True  # type: ignore[attr-defined]
        logger.debug("free %s at %#x", allocation.domain.value, allocation.address)

    def _resolve_operand(self, operand: Allocation | np.ndarray, role: str) -> tuple[np.ndarray, MemoryDomain]:
        if isinstance(operand, np.ndarray):
            if operand.size != 1:
                raise TransferError(f"{role} host buffer must hold exactly one element, got {operand.size}")
            return operand.reshape(-1), MemoryDomain.HOST
        if not isinstance(operand, EmulatedAllocation):
            raise TransferError(f"{role} is not storage of this backend: {operand!r}")
        if operand.released:
            raise TransferError(f"{role} storage at {operand.address:#x} has been released")
        if self._live.get(operand.address) is not operand:
            raise TransferError(f"{role} storage at {operand.address:#x} belongs to another backend")
        return operand.native_handle, operand.domain

    def copy(self, dst: Allocation | np.ndarray, src: Allocation | np.ndarray, stream: Stream | None = None) -> None:
        dst_data, dst_domain = self._resolve_operand(dst, "destination")
        src_data, src_domain = self._resolve_operand(src, "source")
        if dst_data.dtype != src_data.dtype:
            raise TransferError(f"dtype mismatch: destination {dst_data.dtype}, source {src_data.dtype}")
        kind = memcpy_kind(dst_domain, src_domain)

        def run() -> None:
            # Storage may have been freed between issue and execution.
            for operand in (dst, src):
                if isinstance(operand, Allocation) and operand.released:
                    raise TransferError(f"storage at {operand.address:#x} released before copy executed")
            if dst_data.dtype.hasobject:
                dst_data[0] = _copy.deepcopy(src_data[0])
            else:
                np.copyto(dst_data, src_data)

        self.enqueue(stream, f"memcpy[{kind.value}]", run)

    # ------------------------------------------------------------------
    # Kernels
    # ------------------------------------------------------------------

    def _check_launch_config(self, grid_dim: int, block_dim: int, shared_mem_bytes: int) -> None:
        if grid_dim <= 0 or block_dim <= 0:
            raise LaunchConfigError(f"grid_dim and block_dim must be > 0, got grid={grid_dim}, block={block_dim}")
        if block_dim > self._config.max_block_dim:
            raise LaunchConfigError(f"block_dim={block_dim} exceeds max_block_dim={self._config.max_block_dim}")
        if shared_mem_bytes < 0:
            raise LaunchConfigError(f"shared_mem_bytes must be >= 0, got {shared_mem_bytes}")

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
        if not callable(entry_point):
            raise TypeError(f"entry point must be callable, got {type(entry_point).__name__}")
        self._check_launch_config(grid_dim, block_dim, shared_mem_bytes)
        name = kernel_name or getattr(entry_point, "__name__", "kernel")
        captured = tuple(args)
        logger.debug("launch %s<<<%d, %d, %d>>>", name, grid_dim, block_dim, shared_mem_bytes)
        self.enqueue(
            stream,
            name,
            lambda: self.execute(entry_point, grid_dim, block_dim, shared_mem_bytes, captured, name),
        )

    def execute(
        self,
        entry_point: Callable[..., None],
        grid_dim: int,
        block_dim: int,
        shared_mem_bytes: int,
        args: Sequence[Any],
        kernel_name: str = "",
    ) -> None:
        self._check_launch_config(grid_dim, block_dim, shared_mem_bytes)
        blocks: Sequence[int] = range(grid_dim)
        if self._config.shuffle_blocks:
            blocks = self._rng.permutation(grid_dim).tolist()
        for block_idx in blocks:
            shared = np.zeros(shared_mem_bytes, dtype=np.uint8)
            for thread_idx in range(block_dim):
                ctx = ThreadContext(
                    block_idx=block_idx,
                    block_dim=block_dim,
                    thread_idx=thread_idx,
                    grid_dim=grid_dim,
                    shared=shared,
                    kernel_name=kernel_name,
                )
                self._kernel_stack.append(ctx)
                try:
                    entry_point(ctx, *args)
                finally:
                    self._kernel_stack.pop()

    def current_kernel(self) -> ThreadContext | None:
        return self._kernel_stack[-1] if self._kernel_stack else None

    # ------------------------------------------------------------------
    # Element access from viewers
    # ------------------------------------------------------------------

    def _check_access(self, allocation: Allocation) -> None:
        if allocation.released:
            raise IllegalAddressError(f"access to released storage at {allocation.address:#x}")
        if not self._config.check_memory_access:
            return
        in_kernel = bool(self._kernel_stack)
        if allocation.domain is MemoryDomain.DEVICE and not in_kernel:
            raise IllegalAddressError(f"host code touched device storage at {allocation.address:#x}")
        if allocation.domain is MemoryDomain.HOST and in_kernel:
            raise IllegalAddressError(f"kernel touched host storage at {allocation.address:#x}")

    def load(self, allocation: Allocation) -> Any:
        self._check_access(allocation)
        return allocation.native_handle[0]

    def store(self, allocation: Allocation, value: Any) -> None:
        self._check_access(allocation)
        allocation.native_handle[0] = value

    # ------------------------------------------------------------------
    # Streams
    # ------------------------------------------------------------------

    def create_stream(self, name: str = "") -> Stream:
        stream = Stream(self, name)
        self._streams.append(stream)
        return stream

    def _resolve_stream(self, stream: Stream | None) -> Stream:
        if stream is None:
            return self._default_stream
        if not isinstance(stream, Stream) or stream.backend is not self:
            raise LaunchContextError(f"{stream!r} is not a stream of this backend", ErrorCode.INVALID_RESOURCE_HANDLE)
        return stream

    def enqueue(self, stream: Stream | None, label: str, fn: Callable[[], None]) -> None:
        if self._kernel_stack:
            raise LaunchContextError(f"cannot issue {label} to a stream from device code")
        target = self._resolve_stream(stream)
        target.pending.append(Operation(next(self._seq), label, fn))
        if self._config.launch_blocking:
            self.synchronize(target)

    def _run_next(self, stream: Stream) -> None:
        op = stream.pending[0]
        barriers = self._streams if stream.is_default else [self._default_stream]
        try:
            for other in barriers:
                while other.pending and other.pending[0].seq < op.seq:
                    self._run_next(other)
        except AccelError:
            # Work waiting behind a failed barrier is aborted with it.
            stream.pending.clear()
            raise
        stream.pending.popleft()
        logger.debug("run %s on %s", op.label, stream.name)
        try:
            op.run()
        except AccelError:
            stream.pending.clear()
            raise
        except Exception as exc:
            stream.pending.clear()
            raise KernelExecutionError(f"{op.label} failed on {stream.name}: {exc!r}") from exc

    def synchronize(self, stream: Stream | None = None) -> None:
        target = self._resolve_stream(stream)
        if self._kernel_stack:
            raise LaunchContextError("cannot synchronize a stream from device code")
        while target.pending:
            self._run_next(target)

    def device_synchronize(self) -> None:
        for stream in [self._default_stream, *self._streams]:
            self.synchronize(stream)
