"""
Device Buffer Pool Module

Linear device buffers backed by Taichi fields, and a pool that reuses them to
avoid repeated allocation when the same dispatch shape runs several times
(benchmarks, recursive final reduction).

Each buffer is a 1D field of unsigned integers placed with the FieldsBuilder
pattern so that its memory can be freed independently by destroying its SNode
tree. Buffers are organised by (dtype, length) for O(1) lookup.

Author: B.G.
"""

import taichi as ti
from typing import Any

from .. import constants as cte
from ..exceptions import AllocationError


class DeviceBuffer:
    """
    Linear device buffer wrapper around a 1D Taichi field.

    Attributes:
        id: Unique buffer identifier
        field: Underlying Taichi field
        in_use: Current usage status
        dtype: Taichi element type (ti.u32 or ti.u64)
        length: Number of elements
        snodetree: Finalized field structure, None once destroyed

    Author: B.G.
    """

    _next_id = 0

    def __init__(self, dtype: Any, length: int):
        """
        Allocate a linear buffer of `length` elements of `dtype`.

        Args:
            dtype: Taichi unsigned integer type (ti.u32, ti.u64)
            length: Number of elements (>= 1)

        Author: B.G.
        """
        if length < 1:
            raise ValueError(f"Buffer length must be positive, got {length}")

        DeviceBuffer._next_id += 1
        self.id = DeviceBuffer._next_id
        self.in_use = False
        self.dtype = dtype
        self.length = int(length)

        # FieldsBuilder so the memory can be released on its own
        self.fb = ti.FieldsBuilder()
        self.field = ti.field(dtype)
        self.fb.dense(ti.i, self.length).place(self.field)
        self.snodetree = self.fb.finalize()

    @property
    def itemsize(self):
        return 8 if self.dtype == ti.u64 else 4

    @property
    def nbytes(self):
        return self.length * self.itemsize

    @property
    def alive(self):
        return self.snodetree is not None

    def acquire(self):
        """Mark buffer as in use and unavailable for other requests."""
        self.in_use = True

    def release(self):
        """
        Mark buffer as available for reuse in the pool.

        Does not free device memory, the content is left as is and will be
        overwritten by the next user.
        """
        self.in_use = False

    def destroy(self):
        """
        Destroy buffer and free device memory.

        Only called when permanently removing the buffer from its pool.

        Author: B.G.
        """
        if self.snodetree is not None:
            self.snodetree.destroy()
            self.snodetree = None
        self.in_use = False

    def to_numpy(self):
        return self.field.to_numpy()

    def from_numpy(self, val):
        return self.field.from_numpy(val)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False

    def __str__(self):
        return f"Device buffer id:{self.id} - in_use:{self.in_use} - dtype:{self.dtype} - length:{self.length}"


class BufferPool:
    """
    Pool manager for linear device buffers.

    Buffers are organised by (dtype, length). A released buffer is handed out
    again for the next request with the same key instead of allocating. A
    request for a new key first destroys every released buffer, so the pool
    only keeps the shapes of the latest dispatch alive.

    Usage:
        pool = BufferPool()
        buf = pool.get_buffer(ti.u32, 1024)
        # Use buf...
        pool.release_buffer(buf)
        pool.clear_unused()  # frees released buffers

    Author: B.G.
    """

    def __init__(self):
        self._pools = {}  # (dtype, length) -> [DeviceBuffer]

    def get_buffer(self, dtype: Any, length: int) -> DeviceBuffer:
        """
        Get an available DeviceBuffer or create a new one.

        Args:
            dtype: Taichi unsigned integer type
            length: Number of elements

        Returns:
            DeviceBuffer: buffer marked as in use

        Author: B.G.
        """
        key = (dtype, int(length))

        if key not in self._pools:
            self._pools[key] = []

        pool = self._pools[key]

        for buf in pool:
            if not buf.in_use:
                buf.acquire()
                return buf

        # New shape: free released buffers of other shapes first, every
        # buffer holds one of the backend's limited SNode trees
        self.clear_unused()
        if len(self) >= cte.MAX_LIVE_BUFFERS:
            raise AllocationError(
                f"{len(self)} device buffers in use, limit is {cte.MAX_LIVE_BUFFERS}",
                length = int(length))

        buf = DeviceBuffer(dtype, length)
        pool.append(buf)
        buf.acquire()
        return buf

    def release_buffer(self, buf: DeviceBuffer):
        """Release a buffer back to the pool for reuse."""
        buf.release()

    def clear_unused(self):
        """
        Remove unused buffers and free their device memory.

        Author: B.G.
        """
        for pool in self._pools.values():
            for buf in pool[:]:
                if not buf.in_use:
                    buf.destroy()
                    pool.remove(buf)

    def clear_all(self):
        """
        Forced removal of all buffers, EVEN IF POTENTIALLY STILL IN USE.

        Author: B.G.
        """
        for pool in self._pools.values():
            for buf in pool[:]:
                buf.destroy()
                pool.remove(buf)

    def stats(self) -> dict:
        """
        Get pool usage statistics.

        Returns:
            dict: total, in_use and available buffer counts
        """
        total = sum(len(pool) for pool in self._pools.values())
        in_use = sum(1 for pool in self._pools.values() for buf in pool if buf.in_use)
        return {"total": total, "in_use": in_use, "available": total - in_use}

    def __len__(self):
        return sum(len(pool) for pool in self._pools.values())


def check_length(length: int) -> bool:
    """True when `length` elements fit in a single device buffer."""
    return 1 <= length <= cte.MAX_BUFFER_ELEMENTS
