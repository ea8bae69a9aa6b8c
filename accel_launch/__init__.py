"""Launchers: parallel-for dispatch, graph node descriptors and buffer copies."""

from accel_launch.buffer_launch import BufferLaunch
from accel_launch.kernel_node import ArgRef, KernelNodeParms
from accel_launch.launch_base import LaunchBase
from accel_launch.parallel_for import (
    BoundedStrategy,
    DispatchStrategy,
    GridStrideStrategy,
    KernelData,
    ParallelFor,
    calculate_grid_dim,
    check_input,
    grid_stride_loop_kernel,
    parallel_for_kernel,
)

__all__ = [
    "ArgRef",
    "BoundedStrategy",
    "BufferLaunch",
    "DispatchStrategy",
    "GridStrideStrategy",
    "KernelData",
    "KernelNodeParms",
    "LaunchBase",
    "ParallelFor",
    "calculate_grid_dim",
    "check_input",
    "grid_stride_loop_kernel",
    "parallel_for_kernel",
]
