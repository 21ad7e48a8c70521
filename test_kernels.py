#!/usr/bin/env python3
"""Group-reduction kernel launched directly on device buffers."""
import numpy as np
import pytest
import taichi as ti

from pyparsum.exceptions import BindingError
from pyparsum.reduction import GroupReductionKernel, HostDispatcher, kernels, reset_kernel_cache


def test_kernel_passes():
    kernel = GroupReductionKernel(width=64, accum_bits=32, schedule="tree")
    assert kernel.passes == 6
    assert kernel.strides == [1, 2, 4, 8, 16, 32]
    assert kernel.needs_scratch
    seq = GroupReductionKernel(width=64, accum_bits=32, schedule="sequential")
    assert seq.strides == [32, 16, 8, 4, 2, 1]


def test_unknown_strategy_and_schedule():
    with pytest.raises(ValueError):
        GroupReductionKernel(strategy="warp")
    with pytest.raises(ValueError):
        GroupReductionKernel(schedule="butterfly")


def test_launch_writes_one_slot_per_group(ctx):
    kernel = GroupReductionKernel(width=64, accum_bits=32)
    values = np.arange(256, dtype=np.uint32)
    src = ctx.allocate(256)
    partials = ctx.allocate(4)
    scratch = ctx.allocate(256)
    try:
        ctx.upload(src, values)
        ctx.dispatch(kernel, 4, src=src, partials=partials, n=256, scratch=scratch)
        result = ctx.read(partials)
        lanes = ctx.read(scratch)
    finally:
        for buf in (src, partials, scratch):
            ctx.release(buf)
    assert result.tolist() == [int(values[g * 64:(g + 1) * 64].sum()) for g in range(4)]
    # slot 0 of each group's scratch window holds the group total
    assert lanes[::64].tolist() == result.tolist()


def test_bounds_checked_lanes_load_neutral(ctx):
    """Lanes past n never read the (short) input buffer"""
    kernel = GroupReductionKernel(width=64, accum_bits=32)
    src = ctx.allocate(70)
    partials = ctx.allocate(2)
    scratch = ctx.allocate(128)
    try:
        ctx.upload(src, np.full(70, 2, dtype=np.uint32))
        ctx.dispatch(kernel, 2, src=src, partials=partials, n=70, scratch=scratch)
        result = ctx.read(partials)
        lanes = ctx.read(scratch)
    finally:
        for buf in (src, partials, scratch):
            ctx.release(buf)
    assert result.tolist() == [128, 12]
    assert int(lanes[70:].sum()) == 0


def test_launch_rejects_small_bindings(ctx):
    kernel = GroupReductionKernel(width=64, accum_bits=32)
    src = ctx.allocate(128)
    partials = ctx.allocate(2)
    scratch = ctx.allocate(64)
    wide = ctx.allocate(2, ti.u64)
    try:
        with pytest.raises(BindingError):
            ctx.dispatch(kernel, 2, src=src, partials=partials, n=128, scratch=scratch)
        with pytest.raises(BindingError):
            ctx.dispatch(kernel, 2, src=src, partials=wide, n=128, scratch=scratch)
        with pytest.raises(BindingError):
            ctx.dispatch(kernel, 2, src=src, partials=partials, n=129, scratch=scratch)
    finally:
        for buf in (src, partials, scratch, wide):
            ctx.release(buf)


def test_shared_memory_strategy(ctx):
    if not ctx.supports_shared_memory:
        pytest.skip("group shared memory needs the CUDA backend")
    np.random.seed(5)
    values = np.random.randint(0, 2**20, 5000, dtype=np.uint32)
    for schedule in ("tree", "sequential"):
        dispatcher = HostDispatcher(ctx, strategy="shared", schedule=schedule)
        partials = dispatcher.dispatch(values)
        assert int(partials.astype(np.uint64).sum()) == int(values.astype(np.uint64).sum())


def test_reset_kernel_cache():
    shared = kernels.build_shared_kernel(32, ti.u32, "sequential")
    assert kernels.build_shared_kernel(32, ti.u32, "sequential") is shared
    reset_kernel_cache()
    assert (32, ti.u32, "sequential") not in kernels._shared_kernels
    assert kernels.build_shared_kernel(32, ti.u32, "sequential") is not shared
    reset_kernel_cache()
