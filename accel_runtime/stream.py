"""Streams: issuance-ordered queues of accelerator work."""

from __future__ import annotations

import itertools
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from accel_runtime.backend import Backend


class LaunchStream(Enum):
    """Device-side pseudo streams accepted only by nested graph launches."""

    GRAPH_TAIL_LAUNCH = "graph_tail_launch"
    GRAPH_FIRE_AND_FORGET = "graph_fire_and_forget"


@dataclass
class Operation:
    """One queued unit of stream work."""

    seq: int
    label: str
    run: Callable[[], None]


_stream_ids = itertools.count(1)


class Stream:
    """An ordered sequence of operations owned by a backend.

    Operations issued to one stream execute in issuance order. Nothing is
    executed until the stream (or the whole device) is synchronized.
    """

    GRAPH_TAIL_LAUNCH = LaunchStream.GRAPH_TAIL_LAUNCH
    GRAPH_FIRE_AND_FORGET = LaunchStream.GRAPH_FIRE_AND_FORGET

    def __init__(self, backend: Backend, name: str = "", is_default: bool = False):
        self._backend = backend
        self._pending: deque[Operation] = deque()
        self.id = 0 if is_default else next(_stream_ids)
        self.name = name or ("default" if is_default else f"stream{self.id}")
        self.is_default = is_default

    @property
    def backend(self) -> Backend:
        return self._backend

    @property
    def pending(self) -> deque[Operation]:
        return self._pending

    def query(self) -> bool:
        """True when no queued work remains."""
        return not self._pending

    def synchronize(self) -> Stream:
        self._backend.synchronize(self)
        return self

    def __repr__(self) -> str:
        return f"Stream(name={self.name!r}, pending={len(self._pending)})"
