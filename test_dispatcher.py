#!/usr/bin/env python3
"""Host dispatcher and final reduction on the CPU backend."""
import warnings

import numpy as np
import pytest

import pyparsum.constants as cte
from pyparsum.exceptions import OverflowRisk
from pyparsum.reduction import (
    ChunkLayout,
    HostDispatcher,
    as_u32_array,
    final_reduce,
    host_sum,
    parallel_sum,
)


def test_chunk_layout():
    layout = ChunkLayout(1000, 64)
    assert layout.groups == 16
    assert layout.padded_length == 1024
    assert layout.tail == 40
    assert layout.is_partial
    assert layout.chunk_bounds(15) == (960, 1000)
    assert ChunkLayout(128, 64).tail == 64
    assert not ChunkLayout(128, 64).is_partial
    empty = ChunkLayout(0, 64)
    assert empty.groups == 0 and empty.tail == 0
    with pytest.raises(IndexError):
        layout.chunk_bounds(16)


def test_empty_input_needs_no_dispatch(ctx):
    before = ctx.pool.stats()["total"]
    dispatcher = HostDispatcher(ctx)
    partials = dispatcher.dispatch([])
    assert partials.size == 0
    assert final_reduce(partials, dispatcher) == 0
    assert ctx.pool.stats()["total"] == before


@pytest.mark.parametrize("padding", ["pad", "bounds"])
def test_short_input_is_padded_with_zeros(ctx, padding):
    dispatcher = HostDispatcher(ctx, padding=padding)
    partials = dispatcher.dispatch([3, 5, 7])
    assert partials.tolist() == [15]


def test_exact_multiple_groups_are_independent(ctx):
    np.random.seed(42)
    values = np.random.randint(0, 2**16, 128, dtype=np.uint32)
    dispatcher = HostDispatcher(ctx)
    partials = dispatcher.dispatch(values)
    assert partials.size == 2
    assert int(partials[0]) == int(values[:64].sum())
    assert int(partials[1]) == int(values[64:].sum())

    values[64:] = 12345
    changed = dispatcher.dispatch(values)
    assert changed[0] == partials[0]
    assert int(changed[1]) == 64 * 12345


@pytest.mark.parametrize("padding", ["pad", "bounds"])
@pytest.mark.parametrize("schedule", ["tree", "sequential"])
@pytest.mark.parametrize("n", [1, 63, 64, 65, 1000, 4097])
def test_sum_matches_numpy(ctx, padding, schedule, n):
    np.random.seed(n)
    values = np.random.randint(0, 2**20, n, dtype=np.uint32)
    dispatcher = HostDispatcher(ctx, padding=padding, schedule=schedule)
    partials = dispatcher.dispatch(values)
    assert partials.size == (n + 63) // 64
    expected = [int(values[g * 64:(g + 1) * 64].astype(np.uint64).sum()) for g in range(partials.size)]
    assert partials.tolist() == expected
    assert final_reduce(partials, dispatcher) == int(values.astype(np.uint64).sum())


def test_dispatch_is_idempotent(ctx):
    np.random.seed(3)
    values = np.random.randint(0, 2**24, 3000, dtype=np.uint32)
    dispatcher = HostDispatcher(ctx)
    first = dispatcher.dispatch(values)
    second = dispatcher.dispatch(values)
    assert np.array_equal(first, second)
    assert ctx.pool.stats()["in_use"] == 0


def test_other_group_width(ctx):
    values = np.ones(1000, dtype=np.uint32)
    dispatcher = HostDispatcher(ctx, width=128)
    partials = dispatcher.dispatch(values)
    assert partials.tolist() == [128] * 7 + [104]


def test_32_bit_accumulation_wraps_with_advisory(ctx):
    values = np.full(64, 2**32 - 1, dtype=np.uint32)
    dispatcher = HostDispatcher(ctx, accum_bits=32)
    with pytest.warns(OverflowRisk):
        partials = dispatcher.dispatch(values)
    assert int(partials[0]) == (64 * (2**32 - 1)) % 2**32


def test_64_bit_accumulation(ctx):
    values = np.full(100, 2**32 - 1, dtype=np.uint32)
    dispatcher = HostDispatcher(ctx, accum_bits=64)
    with warnings.catch_warnings():
        warnings.simplefilter("error", OverflowRisk)
        partials = dispatcher.dispatch(values)
    assert partials.dtype == np.uint64
    assert partials.tolist() == [64 * (2**32 - 1), 36 * (2**32 - 1)]
    assert final_reduce(partials) == 100 * (2**32 - 1)


def test_recursive_final_reduction(ctx):
    np.random.seed(11)
    values = np.random.randint(0, 2**10, 64 * 64 * 5 + 17, dtype=np.uint32)
    dispatcher = HostDispatcher(ctx)
    partials = dispatcher.dispatch(values)
    assert partials.size == 64 * 5 + 1
    assert final_reduce(partials, dispatcher, threshold=1) == int(values.astype(np.uint64).sum())
    assert final_reduce(partials, dispatcher, threshold=10) == int(values.astype(np.uint64).sum())


def test_parallel_sum_closed_form(ctx):
    n = 16384
    assert parallel_sum(np.arange(1, n + 1, dtype=np.uint32), ctx) == n * (n + 1) // 2
    assert parallel_sum([], ctx) == 0


def test_constants_are_defaults(ctx):
    cte.PADDING = "bounds"
    cte.SCHEDULE = "sequential"
    dispatcher = HostDispatcher(ctx)
    assert dispatcher.padding == "bounds"
    assert dispatcher.kernel.schedule == "sequential"
    assert dispatcher.kernel.strategy == "phased"


def test_raw_bytes_input(ctx):
    values = np.arange(200, dtype="<u4")
    assert parallel_sum(values.tobytes(), ctx) == int(values.sum())


@pytest.mark.parametrize("bad", [[1, -2, 3], [0.5, 1.0], [2**32], b"\x00\x01\x02"])
def test_invalid_input(bad):
    with pytest.raises(ValueError):
        as_u32_array(bad)


def test_invalid_options(ctx):
    with pytest.raises(ValueError):
        HostDispatcher(ctx, padding="mirror")
    with pytest.raises(ValueError):
        HostDispatcher(ctx, width=48)
    with pytest.raises(ValueError):
        HostDispatcher(ctx, accum_bits=16)
    with pytest.raises(ValueError):
        HostDispatcher(ctx, strategy="shared")


def test_host_sum():
    assert host_sum([]) == 0
    assert host_sum(np.array([2**32 - 1, 2**32 - 1], dtype=np.uint32)) == 2 * (2**32 - 1)
    assert host_sum(np.array([2**32 - 1, 2**32 - 1], dtype=np.uint32), bits=32) == 2**32 - 2
    assert host_sum(np.array([2**63, 2**63], dtype=np.uint64), bits=64) == 0
    with pytest.raises(ValueError):
        host_sum([1], bits=16)


def test_many_distinct_sizes(ctx):
    dispatcher = HostDispatcher(ctx)
    for groups in range(1, 211):
        values = np.ones(groups * 64, dtype=np.uint32)
        assert final_reduce(dispatcher.dispatch(values), dispatcher) == groups * 64
        # input, scratch and partial-sum buffers of the latest dispatch only
        assert ctx.pool.stats()["total"] <= 3
    assert ctx.pool.stats()["in_use"] == 0


def test_32_bit_final_sum_wraps(ctx):
    values = np.full(128, 2**32 - 1, dtype=np.uint32)
    with pytest.warns(OverflowRisk):
        total = parallel_sum(values, ctx, accum_bits=32)
    assert total == (128 * (2**32 - 1)) % 2**32
    assert total == 4294967168


def test_64_bit_final_sum_is_exact(ctx):
    values = np.full(128, 2**32 - 1, dtype=np.uint32)
    assert parallel_sum(values, ctx, accum_bits=64) == 549755813760


def test_final_sum_does_not_depend_on_threshold(ctx):
    np.random.seed(5)
    values = np.random.randint(2**30, 2**32, 64 * 40, dtype=np.uint32)
    expected = int(values.astype(np.uint64).sum()) % 2**32
    dispatcher = HostDispatcher(ctx, accum_bits=32)
    with pytest.warns(OverflowRisk):
        partials = dispatcher.dispatch(values)
    with pytest.warns(OverflowRisk):
        assert final_reduce(partials, dispatcher, threshold=1) == expected
    assert final_reduce(partials, dispatcher, threshold=100) == expected
    assert final_reduce(partials, accum_bits=32) == expected
