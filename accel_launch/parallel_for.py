"""ParallelFor: run ``f(i)`` for every ``i`` in ``[begin, end)`` by ``step``.

Architecture:
    DispatchStrategy (ABC) picks the grid dimension and the entry point.
    - BoundedStrategy (``grid_dim <= 0``): enough blocks to give every index
      its own execution unit; units past the end do nothing.
    - GridStrideStrategy (``grid_dim > 0``): a fixed grid; each unit walks
      the domain with a stride of ``grid_dim * block_dim`` indices.

    ``apply`` issues the dispatch to the launcher's stream and returns
    without waiting. ``as_node_parms`` runs the same validation and shape
    computation but returns a ``KernelNodeParms`` for an execution graph.

Usage:
    ParallelFor(256).apply(n, lambda i: out.set(i)).wait()
    ParallelFor.grid_stride(grid_dim=8, block_dim=64).apply(0, n, 2, f)
"""

from __future__ import annotations

import logging
import operator
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from accel_launch.kernel_node import ArgRef, KernelNodeParms
from accel_launch.launch_base import LaunchBase
from accel_runtime.backend import Backend, ThreadContext
from accel_runtime.errors import ErrorCode, InvalidRangeError, LaunchConfigError
from accel_runtime.stream import Stream

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[[int], Any])


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def _before_end(i: int, end: int, step: int) -> bool:
    return i < end if step > 0 else i > end


def parallel_for_kernel(ctx: ThreadContext, f: Callable[[int], Any], begin: int, end: int, step: int) -> None:
    i = begin + step * ctx.global_id
    if _before_end(i, end, step):
        f(i)


def grid_stride_loop_kernel(ctx: ThreadContext, f: Callable[[int], Any], begin: int, end: int, step: int) -> None:
    k = ctx.global_id
    stride = ctx.block_dim * ctx.grid_dim
    i = begin + step * k
    while _before_end(i, end, step):
        f(i)
        k += stride
        i = begin + step * k


# ---------------------------------------------------------------------------
# Range checks and shape
# ---------------------------------------------------------------------------


def check_input(begin: int, end: int, step: int) -> None:
    if step == 0:
        raise InvalidRangeError("step should not be 0")
    if step * (end - begin) < 0:
        raise InvalidRangeError(f"step={step} direction is not consistent with [{begin}, {end})")


def calculate_grid_dim(begin: int, end: int, step: int, block_dim: int) -> int:
    """Blocks needed to give each index in the domain one execution unit."""
    n_min_threads = -(-abs(end - begin) // abs(step))
    return -(-n_min_threads // block_dim)


def _parse_range(args: tuple[Any, ...], caller: str) -> tuple[int, int, int, Callable[[int], Any]]:
    """Normalize ``(count, f)``, ``(begin, count, f)`` or ``(begin, end, step, f)``."""
    if len(args) == 2:
        count, f = args
        begin, end, step = 0, operator.index(count), 1
    elif len(args) == 3:
        begin, count, f = args
        begin = operator.index(begin)
        begin, end, step = begin, begin + operator.index(count), 1
    elif len(args) == 4:
        begin, end, step, f = args
        begin, end, step = operator.index(begin), operator.index(end), operator.index(step)
    else:
        raise TypeError(f"{caller}() takes (count, f), (begin, count, f) or (begin, end, step, f)")
    if not callable(f):
        raise TypeError(f"f must be callable as f(i: int), got {type(f).__name__}")
    return begin, end, step, f


@dataclass
class KernelData(Generic[F]):
    """Payload of one parallel-for dispatch."""

    begin: int
    step: int
    end: int
    callable: F


def _kernel_data_layout(p: KernelData) -> list[ArgRef]:
    # Must match the parameter order of both entry points.
    return [ArgRef(p, "callable"), ArgRef(p, "begin"), ArgRef(p, "end"), ArgRef(p, "step")]


# ---------------------------------------------------------------------------
# DispatchStrategy
# ---------------------------------------------------------------------------


class DispatchStrategy(ABC):
    """Computes the grid dimension and entry point for one dispatch."""

    @property
    @abstractmethod
    def entry_point(self) -> Callable[..., None]:
        ...

    @abstractmethod
    def grid_dim(self, begin: int, end: int, step: int, block_dim: int) -> int:
        ...


class BoundedStrategy(DispatchStrategy):
    @property
    def entry_point(self) -> Callable[..., None]:
        return parallel_for_kernel

    def grid_dim(self, begin: int, end: int, step: int, block_dim: int) -> int:
        return calculate_grid_dim(begin, end, step, block_dim)


class GridStrideStrategy(DispatchStrategy):
    def __init__(self, fixed_grid_dim: int):
        self._fixed_grid_dim = fixed_grid_dim

    @property
    def entry_point(self) -> Callable[..., None]:
        return grid_stride_loop_kernel

    def grid_dim(self, begin: int, end: int, step: int, block_dim: int) -> int:
        return self._fixed_grid_dim


# ---------------------------------------------------------------------------
# ParallelFor
# ---------------------------------------------------------------------------


class ParallelFor(LaunchBase):
    """Launcher for data-parallel loops over a 1D index range.

    With ``grid_dim <= 0`` the grid is sized from the range (bounded);
    with ``grid_dim > 0`` a fixed grid runs a grid-stride loop.
    """

    def __init__(
        self,
        block_dim: int | None = None,
        shared_mem_size: int = 0,
        stream: Stream | None = None,
        *,
        grid_dim: int = 0,
        backend: Backend | None = None,
    ):
        super().__init__(stream, backend)
        if block_dim is None:
            block_dim = self.backend.config.default_block_dim
        block_dim = operator.index(block_dim)
        shared_mem_size = operator.index(shared_mem_size)
        if block_dim <= 0:
            raise LaunchConfigError(f"block_dim must be > 0, got {block_dim}")
        if shared_mem_size < 0:
            raise LaunchConfigError(f"shared_mem_size must be >= 0, got {shared_mem_size}", ErrorCode.INVALID_VALUE)
        self.block_dim = block_dim
        self.grid_dim = operator.index(grid_dim)
        self.shared_mem_size = shared_mem_size

    @classmethod
    def grid_stride(
        cls,
        grid_dim: int,
        block_dim: int | None = None,
        shared_mem_size: int = 0,
        stream: Stream | None = None,
        *,
        backend: Backend | None = None,
    ) -> ParallelFor:
        return cls(block_dim, shared_mem_size, stream, grid_dim=grid_dim, backend=backend)

    @property
    def strategy(self) -> DispatchStrategy:
        if self.grid_dim <= 0:
            return BoundedStrategy()
        return GridStrideStrategy(self.grid_dim)

    def apply(self, *args: Any) -> ParallelFor:
        """Dispatch ``f`` over the range. Does not wait for completion.

        Accepts ``(count, f)``, ``(begin, count, f)`` or ``(begin, end, step, f)``.
        """
        begin, end, step, f = _parse_range(args, "apply")
        check_input(begin, end, step)
        if begin == end:
            logger.debug("empty domain [%d, %d), no dispatch", begin, end)
            return self

        data = KernelData(begin, step, end, f)
        strategy = self.strategy
        grid_dim = strategy.grid_dim(begin, end, step, self.block_dim)
        self.backend.launch(
            strategy.entry_point,
            grid_dim,
            self.block_dim,
            self.shared_mem_size,
            self.stream,
            [ref.get() for ref in _kernel_data_layout(data)],
            kernel_name=self.kernel_name,
        )
        return self

    def as_node_parms(self, *args: Any) -> KernelNodeParms[KernelData]:
        """Build a graph kernel node for the range instead of dispatching it.

        The descriptor owns its payload; keep it (or the graph holding it)
        alive for as long as the graph may be replayed.
        """
        begin, end, step, f = _parse_range(args, "as_node_parms")
        check_input(begin, end, step)

        strategy = self.strategy
        parms: KernelNodeParms[KernelData] = KernelNodeParms(KernelData(begin, step, end, f))
        parms.func = strategy.entry_point
        parms.grid_dim = strategy.grid_dim(begin, end, step, self.block_dim)
        parms.block_dim = self.block_dim
        parms.shared_mem_bytes = self.shared_mem_size
        parms.kernel_name = self.kernel_name
        parms.parse(_kernel_data_layout)
        logger.debug("node parms %r for [%d, %d) step %d", parms, begin, end, step)
        return parms
