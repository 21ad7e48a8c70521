#!/usr/bin/env python3
"""Group reduction schedules, checked without any device."""
import numpy as np
import pytest

from pyparsum.reduction import (
    check_collision_free,
    num_passes,
    reduce_group,
    reduction_passes,
    tree_passes,
    sequential_passes,
    validate_group_width,
)


def test_padded_short_chunk():
    """[3, 5, 7] zero padded to 64 lanes sums to 15"""
    assert reduce_group([3, 5, 7], width=64) == 15
    assert reduce_group([3, 5, 7], schedule="sequential", width=64) == 15


def test_empty_and_single_chunk():
    assert reduce_group([], width=64) == 0
    assert reduce_group([42]) == 42


def test_pass_count_and_strides():
    assert num_passes(64) == 6
    assert [s for s, _ in tree_passes(64)] == [1, 2, 4, 8, 16, 32]
    assert [s for s, _ in sequential_passes(64)] == [32, 16, 8, 4, 2, 1]
    assert num_passes(1) == 0


def test_first_tree_pass_addressing():
    stride, active = next(tree_passes(64))
    assert stride == 1
    assert len(active) == 32
    assert active[0] == (0, 0, 1)
    assert active[-1] == (31, 62, 63)


@pytest.mark.parametrize("schedule", ["tree", "sequential"])
def test_collision_free(schedule):
    for k in range(11):
        assert check_collision_free(2**k, schedule)


@pytest.mark.parametrize("schedule", ["tree", "sequential"])
def test_slots_partition_the_chunk(schedule):
    """After every pass each slot holds the sum of a disjoint set of lanes; slot 0 ends with all of them"""
    width = 64
    covered = [{lane} for lane in range(width)]
    for _, active in reduction_passes(width, schedule):
        for _, dst, src in active:
            assert not covered[dst] & covered[src]
            covered[dst] = covered[dst] | covered[src]
            covered[src] = set()
    assert covered[0] == set(range(width))


def test_tree_and_sequential_agree_on_random_chunks():
    np.random.seed(42)
    for _ in range(20):
        chunk = np.random.randint(0, 2**20, 64, dtype=np.uint32)
        expected = int(chunk.astype(np.uint64).sum())
        assert reduce_group(chunk) == expected
        assert reduce_group(chunk, schedule="sequential") == expected


def test_permuted_chunk_gives_same_sum():
    np.random.seed(7)
    chunk = np.random.randint(0, 2**20, 64, dtype=np.uint32)
    assert reduce_group(np.random.permutation(chunk)) == reduce_group(chunk)


def test_accumulation_width():
    chunk = [2**32 - 1, 1]
    assert reduce_group(chunk, accum_bits=32) == 0
    assert reduce_group(chunk, accum_bits=64) == 2**32


@pytest.mark.parametrize("width", [0, 3, 48, 65, -64])
def test_non_power_of_two_width_rejected(width):
    with pytest.raises(ValueError):
        validate_group_width(width)


def test_chunk_wider_than_group_rejected():
    with pytest.raises(ValueError):
        reduce_group(range(65), width=64)


def test_unknown_schedule_rejected():
    with pytest.raises(ValueError):
        list(reduction_passes(64, "butterfly"))
