"""Single-value storage in host, device or unified memory, and its viewers."""

from accel_buffer.device_var import (
    DeviceVar,
    HostVar,
    UniversalVar,
    Var,
    make_cdense,
    make_cviewer,
    make_dense,
    make_viewer,
)
from accel_buffer.var_view import CDense, Dense, VarView, resolve_dtype

__all__ = [
    "CDense",
    "Dense",
    "DeviceVar",
    "HostVar",
    "UniversalVar",
    "Var",
    "VarView",
    "make_cdense",
    "make_cviewer",
    "make_dense",
    "make_viewer",
    "resolve_dtype",
]
