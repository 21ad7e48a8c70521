"""
Group-Reduction Kernels

Taichi kernels reducing every chunk of W input values to one partial sum.
Lane L of group G handles global position G*W + L. Each group runs three
strictly ordered phases separated by group barriers:

    1. load:      scratch[L] = input[G*W + L]  (neutral element when >= N)
    2. reduce:    log2(W) passes of the tree (or sequential) schedule,
                  a barrier after every pass
    3. writeback: lane 0 writes scratch[0] to partials[G]

Two strategies implement the barriers:
    - phased: one kernel launch per phase/pass over all G*W lanes. Taichi
      runs launches in order, so the end of a launch is a barrier for every
      group at once. Scratch lives in a device buffer of G*W slots where
      group G privately owns [G*W, (G+1)*W). Works on every backend.
    - shared: a single launch with block_dim = W, scratch in group-local
      shared memory (ti.simt.block.SharedArray) and ti.simt.block.sync()
      barriers. CUDA only.

Addressing is collision-free by construction: in a tree pass lane L writes
slot 2*stride*L and reads 2*stride*L + stride, an odd multiple of stride
that no lane writes in the same pass.

Author: B. Gailleton
"""

import taichi as ti

from .. import constants as cte
from ..exceptions import BindingError
from .schedule import SCHEDULES, num_passes, validate_group_width

STRATEGIES = ("phased", "shared")


#########################################
###### PHASED KERNELS ###################
#########################################

@ti.kernel
def load_phase(src: ti.template(), scratch: ti.template(), n: ti.i32, total: ti.i32):
    """
    Load phase: every lane copies its element to its scratch slot.

    Lanes whose global index is >= n write the neutral element and never
    read src, so src may hold either n (bounds policy) or total (pad policy)
    elements.

    Args:
        src: Input buffer
        scratch: Group scratch slots, total = G*W elements
        n: Number of real input values
        total: G*W lanes
    """
    for gid in range(total):
        scratch[gid] = cte.NEUTRAL
        if gid < n:
            scratch[gid] = src[gid]


@ti.kernel
def tree_pass(scratch: ti.template(), total: ti.i32, width: ti.i32, stride: ti.i32):
    """
    One pass of the interleaved tree schedule for all groups.

    Lane L of a group adds slot 2*stride*L + stride into slot 2*stride*L
    when both lie inside the group.
    """
    for gid in range(total):
        lane = gid % width
        base = gid - lane
        index = 2 * stride * lane
        if index + stride < width:
            scratch[base + index] += scratch[base + index + stride]


@ti.kernel
def sequential_pass(scratch: ti.template(), total: ti.i32, width: ti.i32, stride: ti.i32):
    """One pass of the sequential-addressing schedule: lanes below stride fold the upper half in."""
    for gid in range(total):
        lane = gid % width
        base = gid - lane
        if lane < stride:
            scratch[base + lane] += scratch[base + lane + stride]


@ti.kernel
def writeback_phase(scratch: ti.template(), partials: ti.template(), total: ti.i32, width: ti.i32):
    """Lane 0 of each group writes the group total to its partial-sum slot."""
    for gid in range(total):
        if gid % width == 0:
            partials[gid // width] = scratch[gid]


#########################################
###### SHARED MEMORY KERNEL #############
#########################################

_shared_kernels = {}


def build_shared_kernel(width: int, dtype, schedule: str = "tree"):
    """
    Compile the single-launch group reduction using group-local shared memory.

    The group width, accumulation dtype and schedule are baked in at compile
    time (shared array shapes and block_dim must be static). Kernels are
    cached per (width, dtype, schedule).

    Args:
        width: Group width W (power of two)
        dtype: Accumulation type (ti.u32 or ti.u64)
        schedule: "tree" or "sequential"

    Returns:
        Taichi kernel (src, partials, n, total)

    Author: B. Gailleton
    """
    width = validate_group_width(width)
    key = (width, dtype, schedule)
    if key in _shared_kernels:
        return _shared_kernels[key]

    interleaved = schedule == "tree"

    @ti.kernel
    def group_reduce_shared(src: ti.template(), partials: ti.template(), n: ti.i32, total: ti.i32):
        ti.loop_config(block_dim=width)
        for gid in range(total):
            lane = gid % width
            group = gid // width
            pad = ti.simt.block.SharedArray((width,), dtype)

            # Load phase
            pad[lane] = cte.NEUTRAL
            if gid < n:
                pad[lane] = src[gid]
            ti.simt.block.sync()

            # Reduction passes
            if ti.static(interleaved):
                stride = 1
                while stride < width:
                    index = 2 * stride * lane
                    if index + stride < width:
                        pad[index] += pad[index + stride]
                    ti.simt.block.sync()
                    stride *= 2
            else:
                stride = width // 2
                while stride > 0:
                    if lane < stride:
                        pad[lane] += pad[lane + stride]
                    ti.simt.block.sync()
                    stride //= 2

            # Writeback
            if lane == 0:
                partials[group] = pad[0]

    _shared_kernels[key] = group_reduce_shared
    return group_reduce_shared


def reset_kernel_cache():
    """Forget every compiled shared-memory kernel. Called when the Taichi runtime is reset."""
    _shared_kernels.clear()


#########################################
###### DISPATCHABLE KERNEL ##############
#########################################

class GroupReductionKernel:
    """
    Dispatchable group reduction: one execution group of W lanes per chunk.

    Attributes:
        width (int): Lanes per group (W)
        accum_bits (int): 32 or 64
        dtype: Taichi accumulation type
        schedule (str): "tree" or "sequential"
        strategy (str): "phased" or "shared"
        strides (list): Stride of every reduction pass, in execution order

    Author: B. Gailleton
    """

    def __init__(self, width = None, accum_bits = None, schedule = None, strategy = "phased"):
        self.width = validate_group_width(width if width is not None else cte.GROUP_WIDTH)
        self.accum_bits = accum_bits if accum_bits is not None else cte.ACCUM_BITS
        self.dtype, self.np_dtype = cte.accum_dtypes(self.accum_bits)
        self.schedule = schedule if schedule is not None else cte.SCHEDULE
        if self.schedule not in SCHEDULES:
            raise ValueError(f"Unknown schedule '{self.schedule}', expected one of {SCHEDULES}")
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown kernel strategy '{strategy}', expected one of {STRATEGIES}")
        self.strategy = strategy

        if self.schedule == "tree":
            self.strides = [1 << k for k in range(num_passes(self.width))]
            self._pass = tree_pass
        else:
            self.strides = [self.width >> (k + 1) for k in range(num_passes(self.width))]
            self._pass = sequential_pass

        self._shared = None

    @property
    def passes(self):
        return len(self.strides)

    @property
    def needs_scratch(self):
        return self.strategy == "phased"

    def launch(self, group_count, src, partials, n, scratch = None):
        """
        Run the three phases for `group_count` groups.

        Args:
            group_count: Number of execution groups G
            src: DeviceBuffer holding at least n input values
            partials: DeviceBuffer of at least G slots, accumulation dtype
            n: Number of real input values
            scratch: DeviceBuffer of at least G*W slots (phased strategy only)

        Raises:
            BindingError: if a binding is too small or of the wrong dtype
        """
        total = group_count * self.width
        if src.length < n:
            raise BindingError(f"Input buffer holds {src.length} values, {n} expected")
        if partials.length < group_count or partials.dtype != self.dtype:
            raise BindingError(f"Partial-sum buffer must hold {group_count} values of {self.dtype}")

        if self.strategy == "shared":
            if self._shared is None:
                self._shared = build_shared_kernel(self.width, self.dtype, self.schedule)
            self._shared(src.field, partials.field, n, total)
            return

        if scratch is None or scratch.length < total or scratch.dtype != self.dtype:
            raise BindingError(f"Scratch buffer must hold {total} values of {self.dtype}")

        load_phase(src.field, scratch.field, n, total)
        for stride in self.strides:
            self._pass(scratch.field, total, self.width, stride)
        writeback_phase(scratch.field, partials.field, total, self.width)

    def __str__(self):
        return (f"GroupReductionKernel(width={self.width}, accum=u{self.accum_bits}, "
                f"schedule={self.schedule}, strategy={self.strategy})")
