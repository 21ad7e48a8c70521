"""
Global constants and configuration parameters for PyParSum.

This module centralises the parameters read by the device context, the kernels
and the host dispatcher. Values are read when an object is constructed (a
HostDispatcher or a GroupReductionKernel), so changing a constant affects
objects created afterwards only.

Constant Categories:
- Group Constants: chunk width, intra-group schedule, kernel strategy
- Accumulation Constants: device accumulation width, tail policy, neutral element
- Host Constants: final-reduction threshold, buffer size cap
- Device Constants: default backend

Tail Policies (PADDING):
- "pad": the host uploads an input buffer of G*W elements, zero padded
  after the N real values (default)
- "bounds": the host uploads exactly N elements and each lane whose global
  index is >= N loads the neutral element instead of reading

Kernel Strategies (STRATEGY):
- "shared": one launch, group-local shared memory and hardware barriers (CUDA only)
- "phased": one launch per phase; the end of a launch is the group barrier
- "auto": "shared" when the backend supports it, "phased" otherwise

Usage:
    import pyparsum.constants as cte

    cte.GROUP_WIDTH = 128   # must stay a power of two
    cte.ACCUM_BITS = 64     # widen device accumulation

Author: B.G.
"""

import numpy as np
import taichi as ti

#########################################
###### UTILS CONSTANTS ##################
#########################################

# Set while a DeviceContext is open (Taichi initialised by us)
INITIALISED = False

# Default Taichi backend used by DeviceContext ("gpu" falls back to cpu in Taichi)
ARCH = "gpu"


#########################################
###### GROUP CONSTANTS ##################
#########################################

# Number of lanes per execution group == chunk width W
# Must be a power of two for the stride-doubling schedule
GROUP_WIDTH = 64

# Intra-group schedule: "tree" (interleaved addressing) or "sequential"
SCHEDULE = "tree"

# Kernel strategy: "auto", "shared" or "phased"
STRATEGY = "auto"


#########################################
###### ACCUMULATION CONSTANTS ###########
#########################################

# Device accumulation width in bits (32 wraps silently, 64 needs device support)
ACCUM_BITS = 32

# Tail policy for the last partial chunk: "pad" or "bounds"
PADDING = "pad"

# Identity of the reduction operator
NEUTRAL = 0


#########################################
###### HOST CONSTANTS ###################
#########################################

# Partial sums at or below this count are summed on the host
HOST_FINAL_THRESHOLD = 4096

# Largest single device buffer (elements), Taichi indexes with i32
MAX_BUFFER_ELEMENTS = 2**31 - 1

# Largest number of live device buffers (each one holds a Taichi SNode tree)
MAX_LIVE_BUFFERS = 256

# Largest value of an input element
U32_MAX = 2**32 - 1


def accum_dtypes(bits: int):
	"""
	Return the (taichi, numpy) dtype pair for an accumulation width.

	Args:
		bits: 32 or 64

	Returns:
		tuple: (ti.u32, np.uint32) or (ti.u64, np.uint64)

	Raises:
		ValueError: for any other width
	"""
	if bits == 32:
		return ti.u32, np.uint32
	if bits == 64:
		return ti.u64, np.uint64
	raise ValueError(f"Unsupported accumulation width: {bits} bits. Use 32 or 64.")


def ti_to_np_dtype(dtype):
	"""Numpy counterpart of a Taichi unsigned integer dtype."""
	if dtype == ti.u32:
		return np.uint32
	if dtype == ti.u64:
		return np.uint64
	raise ValueError(f"Unsupported buffer dtype: {dtype}")
