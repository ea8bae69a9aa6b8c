"""Blocking-capable buffer copies issued on a stream."""

from __future__ import annotations

from typing import Any

import numpy as np

from accel_launch.launch_base import LaunchBase
from accel_runtime.backend import Allocation


def _storage(operand: Any) -> Allocation | np.ndarray:
    # Views and owners expose their storage as ``allocation``.
    if isinstance(operand, (Allocation, np.ndarray)):
        return operand
    allocation = getattr(operand, "allocation", None)
    if allocation is None:
        raise TypeError(f"cannot copy to/from {type(operand).__name__}")
    return allocation


class BufferLaunch(LaunchBase):
    """Issues element copies; chain ``.wait()`` for a blocking transfer."""

    def copy(self, dst: Any, src: Any) -> BufferLaunch:
        self.backend.copy(_storage(dst), _storage(src), self.stream)
        return self
