"""
Parallel Reduction Module

Implementation of the two-phase parallel sum: a group-reduction kernel run by
one execution group per chunk of W input values, and a host side that
chunks, dispatches and accumulates the partial sums.

Available Components:
    - schedule: Pure-Python group reduction (tree / sequential schedules),
      collision-freedom check, testable without any device
    - kernels: Taichi group-reduction kernels (phased and shared-memory)
    - dispatcher: ChunkLayout and HostDispatcher (chunking, padding, buffers)
    - final: Host final reduction, recursive re-dispatch, parallel_sum

Example Usage:
    ```python
    import numpy as np
    from pyparsum.device import DeviceContext
    from pyparsum.reduction import HostDispatcher, final_reduce, reduce_group

    # No device needed
    reduce_group([3, 5, 7], width=64)  # 15

    with DeviceContext(arch="cpu") as ctx:
        dispatcher = HostDispatcher(ctx, padding="bounds")
        partials = dispatcher.dispatch(np.ones(1000, dtype=np.uint32))
        # 16 partial sums: fifteen 64s and a final 40
        total = final_reduce(partials, dispatcher)  # 1000
    ```

Author: B. Gailleton
"""

from .schedule import (
    check_collision_free,
    is_power_of_two,
    num_passes,
    reduce_group,
    reduction_passes,
    sequential_passes,
    tree_passes,
    validate_group_width
)
from .kernels import GroupReductionKernel, build_shared_kernel, reset_kernel_cache
from .dispatcher import ChunkLayout, HostDispatcher, as_u32_array
from .final import final_reduce, host_sum, parallel_sum

__all__ = [
    'check_collision_free',
    'is_power_of_two',
    'num_passes',
    'reduce_group',
    'reduction_passes',
    'sequential_passes',
    'tree_passes',
    'validate_group_width',
    'GroupReductionKernel',
    'build_shared_kernel',
    'reset_kernel_cache',
    'ChunkLayout',
    'HostDispatcher',
    'as_u32_array',
    'final_reduce',
    'host_sum',
    'parallel_sum'
]
