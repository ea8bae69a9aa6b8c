"""Kernel node descriptors: a dispatch captured as data for an execution graph."""

from __future__ import annotations

from typing import Any, Callable, Generic, TypeVar

P = TypeVar("P")


class ArgRef:
    """Address of one field of a payload, passed to an entry point by reference.

    The value is read when the node runs, so the payload must outlive every
    replay that uses it; holding the ref keeps it alive.
    """

    __slots__ = ("owner", "field")

    def __init__(self, owner: Any, field: str):
        if not hasattr(owner, field):
            raise AttributeError(f"{type(owner).__name__} has no field {field!r}")
        self.owner = owner
        self.field = field

    @property
    def address(self) -> tuple[int, str]:
        return id(self.owner), self.field

    def get(self) -> Any:
        return getattr(self.owner, self.field)

    def set(self, value: Any) -> None:
        setattr(self.owner, self.field, value)

    def __repr__(self) -> str:
        return f"ArgRef({type(self.owner).__name__}@{id(self.owner):#x}.{self.field})"


class KernelNodeParms(Generic[P]):
    """Entry point, launch shape and argument layout of one graph kernel node.

    ``kernel_args`` must list references into ``parms`` in exactly the order
    of the entry point's parameters (after the thread context).
    """

    def __init__(self, parms: P):
        self.parms = parms
        self.func: Callable[..., None] | None = None
        self.grid_dim = 0
        self.block_dim = 0
        self.shared_mem_bytes = 0
        self.kernel_name = ""
        self.kernel_args: list[ArgRef] = []

    def parse(self, layout: Callable[[P], list[ArgRef]]) -> KernelNodeParms[P]:
        """Build ``kernel_args`` from the payload with ``layout``."""
        refs = list(layout(self.parms))
        for ref in refs:
            if ref.owner is not self.parms:
                raise ValueError(f"{ref!r} does not point into this node's payload")
        self.kernel_args = refs
        return self

    def args(self) -> list[Any]:
        return [ref.get() for ref in self.kernel_args]

    def __repr__(self) -> str:
        func = getattr(self.func, "__name__", None)
        return (
            f"KernelNodeParms(func={func}, grid_dim={self.grid_dim}, block_dim={self.block_dim}, "
            f"shared_mem_bytes={self.shared_mem_bytes}, args={len(self.kernel_args)})"
        )
