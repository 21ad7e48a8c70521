"""
Host Dispatcher

Splits an input sequence of N unsigned 32-bit integers into chunks of W
values, uploads it, dispatches one execution group per chunk and reads the
G = ceil(N / W) partial sums back in group order.

Tail policy (N not a multiple of W) is explicit:
    - "pad": the input buffer holds G*W values, zero padded after N
    - "bounds": the input buffer holds exactly N values, lanes past N load
      the neutral element without reading
Both leave the partial sums unchanged since 0 is the neutral element.

Author: B.G.
"""

import warnings

import numpy as np
import taichi as ti

from .. import constants as cte
from ..exceptions import OverflowRisk
from ..logger import logger
from .kernels import GroupReductionKernel
from .schedule import validate_group_width

POLICIES = ("pad", "bounds")


class ChunkLayout:
    """
    Partition of N values into chunks of `width` values.

    Attributes:
        n (int): Number of real values
        width (int): Chunk width W
        groups (int): ceil(n / width), 0 when n == 0
        padded_length (int): groups * width
        tail (int): Real values in the last chunk (0 when n == 0)
    """

    def __init__(self, n: int, width: int):
        if n < 0:
            raise ValueError(f"Input length must be non-negative, got {n}")
        self.n = int(n)
        self.width = validate_group_width(width)
        self.groups = (self.n + self.width - 1) // self.width
        self.padded_length = self.groups * self.width
        self.tail = self.n - (self.groups - 1) * self.width if self.groups else 0

    @property
    def is_partial(self):
        """True when the last chunk holds fewer than W real values."""
        return self.n != self.padded_length

    def chunk_bounds(self, group: int):
        """Half-open range [start, stop) of real values owned by `group`."""
        if not 0 <= group < self.groups:
            raise IndexError(f"Group {group} outside [0, {self.groups})")
        start = group * self.width
        return start, min(start + self.width, self.n)

    def __repr__(self):
        return f"ChunkLayout(n={self.n}, width={self.width}, groups={self.groups})"


def as_u32_array(values) -> np.ndarray:
    """
    Validate and convert an input sequence to a contiguous uint32 array.

    Accepts lists, ranges, numpy arrays and raw little-endian bytes (no
    header, 4 bytes per value).

    Raises:
        ValueError: non-integer, negative or > 2**32 - 1 values, or a byte
            string whose length is not a multiple of 4
    """
    if isinstance(values, (bytes, bytearray, memoryview)):
        if len(values) % 4:
            raise ValueError(f"Raw input of {len(values)} bytes is not a whole number of u32 values")
        return np.frombuffer(values, dtype="<u4").astype(np.uint32)

    arr = np.asarray(values)
    if arr.size == 0:
        return np.zeros(0, dtype=np.uint32)
    if arr.ndim != 1:
        arr = arr.ravel()
    if arr.dtype == np.uint32:
        return np.ascontiguousarray(arr)
    if not np.issubdtype(arr.dtype, np.integer):
        raise ValueError(f"Input values must be unsigned integers, got dtype {arr.dtype}")
    if arr.min() < 0 or int(arr.max()) > cte.U32_MAX:
        raise ValueError("Input values must lie in [0, 2**32 - 1]")
    return arr.astype(np.uint32)


class HostDispatcher:
    """
    Chunk/dispatch contract between the host and the group-reduction kernel.

    Every dispatch allocates its buffers from the context pool and releases
    them before returning, also when the device fails. No state is carried
    between two dispatches.

    Attributes:
        context (DeviceContext): Device owning buffers and dispatch
        width (int): Chunk width W
        accum_bits (int): Device accumulation width
        padding (str): Tail policy, "pad" or "bounds"
        kernel (GroupReductionKernel): Kernel dispatched once per call

    Author: B.G.
    """

    def __init__(self, context, width = None, accum_bits = None, padding = None, schedule = None, strategy = None):
        """
        Args:
            context: Open DeviceContext
            width: Group width (default cte.GROUP_WIDTH)
            accum_bits: 32 or 64 (default cte.ACCUM_BITS)
            padding: "pad" or "bounds" (default cte.PADDING)
            schedule: "tree" or "sequential" (default cte.SCHEDULE)
            strategy: "auto", "phased" or "shared" (default cte.STRATEGY)

        Raises:
            ValueError: unknown policy/strategy, or "shared" on a backend
                without group shared memory
        """
        self.context = context
        self.padding = padding if padding is not None else cte.PADDING
        if self.padding not in POLICIES:
            raise ValueError(f"Unknown padding policy '{self.padding}', expected one of {POLICIES}")

        strategy = strategy if strategy is not None else cte.STRATEGY
        if strategy == "auto":
            strategy = "shared" if context.supports_shared_memory else "phased"
        elif strategy == "shared" and not context.supports_shared_memory:
            raise ValueError(f"Shared-memory strategy is not supported on {context.arch_name}")

        self.kernel = GroupReductionKernel(width, accum_bits, schedule, strategy)

    @property
    def width(self):
        return self.kernel.width

    @property
    def accum_bits(self):
        return self.kernel.accum_bits

    def layout(self, n: int) -> ChunkLayout:
        return ChunkLayout(n, self.width)

    def check_overflow(self, arr: np.ndarray):
        """
        Warn with OverflowRisk when a partial sum may exceed the accumulation width.

        The bound used is max(values) * min(N, W), the largest sum a single
        group can produce.
        """
        if arr.size == 0:
            return False
        bound = int(arr.max()) * min(arr.size, self.width)
        if bound > 2**self.accum_bits - 1:
            warnings.warn(
                f"Partial sums may reach {bound}, beyond u{self.accum_bits}: "
                f"device results wrap modulo 2**{self.accum_bits}",
                OverflowRisk, stacklevel=3)
            return True
        return False

    def dispatch(self, values) -> np.ndarray:
        """
        Reduce every chunk of `values` to its partial sum on the device.

        Args:
            values: Input sequence of unsigned 32-bit integers (any length)

        Returns:
            np.ndarray: G partial sums in group-index order (uint32 or
                uint64 depending on accum_bits), empty when N == 0

        Raises:
            AllocationError: buffers cannot be sized/allocated
            DeviceExecutionError: the kernel failed to launch or faulted

        Author: B.G.
        """
        return self._dispatch_array(as_u32_array(values), ti.u32)

    def dispatch_partials(self, partials) -> np.ndarray:
        """Reduce an array of partial sums again, keeping the accumulation dtype."""
        arr = np.ascontiguousarray(partials, dtype=self.kernel.np_dtype)
        return self._dispatch_array(arr, self.kernel.dtype)

    def _dispatch_array(self, arr: np.ndarray, src_dtype) -> np.ndarray:
        layout = self.layout(arr.shape[0])
        if layout.groups == 0:
            return np.zeros(0, dtype=self.kernel.np_dtype)

        self.check_overflow(arr)

        ctx = self.context
        held = []
        try:
            # Input buffer, padded with the neutral element or exactly N long
            if self.padding == "pad":
                src = ctx.allocate(layout.padded_length, src_dtype)
                held.append(src)
                host = np.full(layout.padded_length, cte.NEUTRAL, dtype=arr.dtype)
                host[:layout.n] = arr
            else:
                src = ctx.allocate(layout.n, src_dtype)
                held.append(src)
                host = arr
            ctx.upload(src, host)

            partials = ctx.allocate(layout.groups, self.kernel.dtype)
            held.append(partials)

            scratch = None
            if self.kernel.needs_scratch:
                scratch = ctx.allocate(layout.padded_length, self.kernel.dtype)
                held.append(scratch)

            logger.debug(f"{layout} padding={self.padding} {self.kernel}")
            ctx.dispatch(self.kernel, layout.groups,
                         src=src, partials=partials, n=layout.n, scratch=scratch)

            return ctx.read(partials)
        finally:
            for buf in held:
                ctx.release(buf)
