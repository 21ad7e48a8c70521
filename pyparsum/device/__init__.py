"""
Device context and buffer management for PyParSum.

This submodule owns everything the reduction core needs from the device:
Taichi initialisation and teardown, linear buffers, raw byte transfers and
blocking kernel dispatch. The context is an explicit object passed to the
host dispatcher, never ambient global state.

Core Classes:
- DeviceContext: allocate / upload / download / dispatch, context manager lifecycle
- DeviceBuffer: Linear 1D buffer of unsigned integers backed by a Taichi field
- BufferPool: Reuse of released buffers keyed by (dtype, length)

Usage:
    import numpy as np
    import taichi as ti
    import pyparsum as ps

    with ps.device.DeviceContext(arch="cpu") as ctx:
        buf = ctx.allocate(128, dtype=ti.u32)
        ctx.upload(buf, np.arange(128, dtype=np.uint32).tobytes())
        raw = ctx.download(buf)   # 512 little-endian bytes
        ctx.release(buf)
        print(ctx.pool.stats())   # {'total': 1, 'in_use': 0, 'available': 1}

Author: B.G.
"""

from .buffers import BufferPool, DeviceBuffer
from .context import DeviceContext

__all__ = [
    "BufferPool",
    "DeviceBuffer",
    "DeviceContext"
]
