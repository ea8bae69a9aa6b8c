"""Execution graphs: record kernel node descriptors once, replay many times.

A ``Graph`` retains every descriptor added to it, so a descriptor's payload
stays alive for as long as the graph (or any ``GraphExec`` instantiated from
it) may replay. Argument values are read through the descriptor's argument
references when a node runs, not when it is recorded; mutating a payload
between replays changes what the next replay sees. Mutating it while a
replay is in flight is the caller's problem.

``GraphViewer`` is the nested launch trampoline: kernel code running as part
of a replay may launch another graph, but only as a tail launch or a
fire-and-forget launch.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Sequence

from accel_runtime.backend import Backend
from accel_runtime.device import get_backend
from accel_runtime.errors import (
    AccelError,
    ErrorCode,
    LaunchConfigError,
    LaunchContextError,
    LaunchError,
    error_string,
)
from accel_runtime.stream import LaunchStream, Stream

logger = logging.getLogger(__name__)

_exec_handles = itertools.count(0x5000, 0x10)


class GraphExecState(Enum):
    READY = "ready"
    DESTROYED = "destroyed"


@dataclass(frozen=True)
class KernelNode:
    index: int
    parms: Any
    dependencies: tuple[int, ...] = ()


@dataclass
class _ReplayFrame:
    """Nested launches requested while one graph replay is running."""

    graph_exec: GraphExec
    tail: list[GraphExec] = field(default_factory=list)
    fire_and_forget: list[GraphExec] = field(default_factory=list)


_local = threading.local()


def _frames() -> list[_ReplayFrame]:
    stack = getattr(_local, "frames", None)
    if stack is None:
        stack = _local.frames = []
    return stack


class Graph:
    """Builder for an execution graph of kernel nodes."""

    def __init__(self, backend: Backend | None = None):
        self._backend = backend or get_backend()
        self._nodes: list[KernelNode] = []

    @property
    def nodes(self) -> tuple[KernelNode, ...]:
        return tuple(self._nodes)

    def add_kernel_node(self, parms: Any, dependencies: Sequence[int] = ()) -> int:
        """Record a kernel node descriptor and return its node index.

        ``parms`` must expose ``func``, ``grid_dim``, ``block_dim``,
        ``shared_mem_bytes`` and ``kernel_args`` (argument references with
        ``get()``, in the entry point's parameter order).
        """
        if not callable(parms.func):
            raise LaunchConfigError("kernel node has no entry point", ErrorCode.INVALID_VALUE)
        if parms.block_dim <= 0 or parms.grid_dim < 0:
            raise LaunchConfigError(
                f"invalid kernel node dims: grid={parms.grid_dim}, block={parms.block_dim}"
            )
        max_block_dim = self._backend.config.max_block_dim
        if parms.block_dim > max_block_dim:
            raise LaunchConfigError(f"kernel node block_dim={parms.block_dim} exceeds max_block_dim={max_block_dim}")
        deps = tuple(int(d) for d in dependencies)
        for dep in deps:
            if not 0 <= dep < len(self._nodes):
                raise AccelError(f"dependency {dep} is not a node of this graph", ErrorCode.INVALID_VALUE)
        node = KernelNode(index=len(self._nodes), parms=parms, dependencies=deps)
        self._nodes.append(node)
        return node.index

    def instantiate(self) -> GraphExec:
        graph_exec = GraphExec(self._backend, tuple(self._nodes))
        logger.debug("instantiate graph with %d nodes as %#x", len(self._nodes), graph_exec.handle)
        return graph_exec


class GraphExec:
    """An instantiated, replayable graph.

    Nodes replay in insertion order; dependencies always point backwards, so
    that order is topological.
    """

    def __init__(self, backend: Backend, nodes: tuple[KernelNode, ...]):
        self._backend = backend
        self._nodes = nodes
        self.handle = next(_exec_handles)
        self.state = GraphExecState.READY
        self.num_replays = 0

    @property
    def backend(self) -> Backend:
        return self._backend

    @property
    def nodes(self) -> tuple[KernelNode, ...]:
        return self._nodes

    def launch(self, stream: Stream | None = None) -> None:
        """Enqueue one replay on ``stream``. Does not wait for it."""
        if self.state is GraphExecState.DESTROYED:
            raise LaunchError(f"GraphExec={self.handle:#x} has been destroyed", ErrorCode.INVALID_RESOURCE_HANDLE)
        self._backend.enqueue(stream, f"graph[{self.handle:#x}]", self._replay)

    def destroy(self) -> None:
        self.state = GraphExecState.DESTROYED

    def viewer(self, name: str = "") -> GraphViewer:
        return GraphViewer(self, name)

    def _run_node(self, node: KernelNode) -> None:
        parms = node.parms
        if parms.grid_dim == 0:
            logger.debug("skip empty node %d of %#x", node.index, self.handle)
            return
        args = [arg.get() for arg in parms.kernel_args]
        kernel_name = getattr(parms, "kernel_name", "") or getattr(parms.func, "__name__", "kernel")
        self._backend.execute(parms.func, parms.grid_dim, parms.block_dim, parms.shared_mem_bytes, args, kernel_name)

    def _replay(self) -> None:
        if self.state is GraphExecState.DESTROYED:
            raise LaunchError(f"GraphExec={self.handle:#x} destroyed before replay", ErrorCode.INVALID_RESOURCE_HANDLE)
        self.num_replays += 1
        logger.debug("replay %#x (#%d)", self.handle, self.num_replays)
        frame = _ReplayFrame(self)
        stack = _frames()
        stack.append(frame)
        try:
            for node in self._nodes:
                self._run_node(node)
                while frame.fire_and_forget:
                    frame.fire_and_forget.pop(0)._replay()
        finally:
            stack.pop()
        for child in frame.tail:
            child._replay()


class GraphViewer:
    """Handle used to launch a graph, including from inside a running graph."""

    def __init__(self, graph_exec: GraphExec, name: str = ""):
        self._graph_exec = graph_exec
        self.name = name

    @property
    def graph_exec(self) -> GraphExec:
        return self._graph_exec

    def _error(self, code: ErrorCode, kernel_name: str = "", cls: type[LaunchError] = LaunchContextError) -> LaunchError:
        message = (
            f"GraphViewer[{kernel_name}:{self.name}]: launch error: "
            f"{error_string(code)}({int(code)}), GraphExec={self._graph_exec.handle:#x}"
        )
        return cls(message, code)

    def launch(self, stream: Stream | LaunchStream | None = None) -> None:
        ctx = self._graph_exec.backend.current_kernel()
        if ctx is None:
            if isinstance(stream, LaunchStream):
                raise self._error(ErrorCode.NOT_PERMITTED)
            if self._graph_exec.state is GraphExecState.DESTROYED:
                raise self._error(ErrorCode.INVALID_RESOURCE_HANDLE, cls=LaunchError)
            self._graph_exec.launch(stream)
            return

        # Device side: only the two graph launch streams are legal, and only
        # from a kernel that is itself part of a graph replay.
        stack = _frames()
        if not isinstance(stream, LaunchStream) or not stack:
            raise self._error(ErrorCode.NOT_PERMITTED, ctx.kernel_name)
        if self._graph_exec.state is GraphExecState.DESTROYED:
            raise self._error(ErrorCode.INVALID_RESOURCE_HANDLE, ctx.kernel_name, cls=LaunchError)
        frame = stack[-1]
        if stream is LaunchStream.GRAPH_TAIL_LAUNCH:
            frame.tail.append(self._graph_exec)
        else:
            frame.fire_and_forget.append(self._graph_exec)

    def tail_launch(self) -> None:
        self.launch(LaunchStream.GRAPH_TAIL_LAUNCH)

    def fire_and_forget(self) -> None:
        self.launch(LaunchStream.GRAPH_FIRE_AND_FORGET)
