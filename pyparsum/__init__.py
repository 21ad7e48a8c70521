"""
PyParSum - GPU-accelerated parallel sum of unsigned 32-bit integers.

A small Python package computing the sum of large arrays of unsigned integers
by offloading the work to a massively parallel device with Taichi. The input is
split into fixed-width chunks, every chunk is reduced to one partial sum by an
execution group of W lanes cooperating through group-local scratch memory and
barriers, and the partial sums are accumulated on the host (or reduced again
on the device when there are many of them).

Key Features:
- Group-reduction kernel with a log2(W) tree schedule (interleaved or sequential addressing)
- Two kernel strategies: true shared memory + hardware barriers (CUDA) and a
  phase-per-launch rendition running on every Taichi backend (CPU included)
- Explicit tail policy for partial chunks (zero padding or per-lane bounds checks)
- 32-bit (wrapping) or 64-bit device accumulation, with an overflow advisory
- Recursive final reduction for very large group counts
- Pooled device buffers with explicit lifecycle
- Pure-Python reference of the group reduction for testing without a device

Core Components:
- device: Device context (Taichi initialisation, buffers, transfers, dispatch)
- reduction: Group-reduction kernels, host dispatcher, final reduction
- visu: Plotting of per-group partial sums
- constants: Global configuration (group width, accumulation width, policies)
- exceptions: Error taxonomy (DeviceError, AllocationError, DeviceExecutionError, OverflowRisk)

Basic Usage:
    import numpy as np
    import pyparsum as ps

    with ps.device.DeviceContext(arch="gpu") as ctx:
        values = np.arange(1, 16385, dtype=np.uint32)

        # One call: dispatch + final reduction
        total = ps.reduction.parallel_sum(values, ctx)

        # Or step by step
        dispatcher = ps.reduction.HostDispatcher(ctx)
        partials = dispatcher.dispatch(values)        # one entry per group of 64
        total = ps.reduction.final_reduce(partials, dispatcher)

Author: B.G.
"""

__version__ = "0.1.0"
__author__ = "B.G."

# Import all submodules in alphabetical order
from . import constants
from . import device
from . import exceptions
from . import logger
from . import reduction
from . import visu

# Export all submodules
__all__ = [
    "constants",
    "device",
    "exceptions",
    "logger",
    "reduction",
    "visu"
]
