"""Runtime configuration for the accelerator layer."""

from __future__ import annotations

import os
from dataclasses import dataclass


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class RuntimeConfig:
    """Launch and emulation settings shared by every backend."""

    default_block_dim: int = 256
    max_block_dim: int = 1024

    # Synchronize after every issued operation (debugging aid).
    launch_blocking: bool = False

    # Reject host access to device storage and device access to host storage.
    check_memory_access: bool = True

    # Visit blocks in a random order to surface order-dependent kernels.
    shuffle_blocks: bool = False
    shuffle_seed: int | None = None

    def __post_init__(self) -> None:
        if self.max_block_dim <= 0:
            raise ValueError("max_block_dim must be > 0")
        if not 0 < self.default_block_dim <= self.max_block_dim:
            raise ValueError(
                f"default_block_dim must be in (0, {self.max_block_dim}], got {self.default_block_dim}"
            )

    @staticmethod
    def from_env(**overrides) -> "RuntimeConfig":
        """Build a config from ``ACCEL_*`` environment variables."""
        values: dict[str, object] = {}
        block_dim = os.environ.get("ACCEL_DEFAULT_BLOCK_DIM")
        if block_dim:
            values["default_block_dim"] = int(block_dim)
        values["launch_blocking"] = _env_flag("ACCEL_LAUNCH_BLOCKING", False)
        values["shuffle_blocks"] = _env_flag("ACCEL_SHUFFLE_BLOCKS", False)
        seed = os.environ.get("ACCEL_SHUFFLE_SEED")
        if seed:
            values["shuffle_seed"] = int(seed)
        values.update(overrides)
        return RuntimeConfig(**values)


DEFAULT_CONFIG = RuntimeConfig()
