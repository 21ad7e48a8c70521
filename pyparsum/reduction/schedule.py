"""
Group Reduction Schedules (pure Python)

This module describes, independently of any device, how the W lanes of one
execution group combine the W values of their chunk into slot 0 of the
group's scratch array, and provides a host rendition of the whole group
reduction for testing without a device.

Schedules:
    - tree (interleaved addressing): stride = 1, 2, 4, ..., W/2. Lane L
      computes index = 2*stride*L and, if index + stride < W, adds slot
      index + stride into slot index.
    - sequential (sequential addressing): stride = W/2, ..., 2, 1. Lane L
      with L < stride adds slot L + stride into slot L.

Both run log2(W) passes and leave the exact sum of the W values in slot 0.
A pass is applied to every lane before the next pass starts, which is what
the barrier after each pass guarantees on the device.

Author: B. Gailleton
"""

import numpy as np

from .. import constants as cte

SCHEDULES = ("tree", "sequential")


def is_power_of_two(w: int) -> bool:
    return w > 0 and (w & (w - 1)) == 0


def validate_group_width(w: int) -> int:
    """
    Check that `w` can be used as a group width.

    The stride-doubling schedule only terminates with the total in slot 0
    after log2(W) passes when W is a power of two, other widths are rejected.

    Raises:
        ValueError: if w is not a positive power of two
    """
    if not isinstance(w, (int, np.integer)) or not is_power_of_two(int(w)):
        raise ValueError(f"Group width must be a positive power of two, got {w}")
    return int(w)


def num_passes(w: int) -> int:
    """Number of reduction passes for a group of width w (log2 w)."""
    return validate_group_width(w).bit_length() - 1


def tree_passes(w: int):
    """
    Yield (stride, [(lane, dst, src), ...]) for the interleaved tree schedule.

    Author: B. Gailleton
    """
    w = validate_group_width(w)
    stride = 1
    while stride < w:
        active = []
        for lane in range(w):
            index = 2 * stride * lane
            if index + stride < w:
                active.append((lane, index, index + stride))
        yield stride, active
        stride *= 2


def sequential_passes(w: int):
    """Yield (stride, [(lane, dst, src), ...]) for the sequential-addressing schedule."""
    w = validate_group_width(w)
    stride = w // 2
    while stride > 0:
        yield stride, [(lane, lane, lane + stride) for lane in range(stride)]
        stride //= 2


def reduction_passes(w: int, schedule: str = "tree"):
    if schedule == "tree":
        return tree_passes(w)
    if schedule == "sequential":
        return sequential_passes(w)
    raise ValueError(f"Unknown schedule '{schedule}', expected one of {SCHEDULES}")


def check_collision_free(w: int, schedule: str = "tree") -> bool:
    """
    Exhaustively check that no two active lanes of a pass touch the same slot.

    For every pass, destinations must be pairwise distinct and no lane may
    read a slot that another lane writes in the same pass.

    Returns:
        bool: True when every pass of the schedule is race-free

    Author: B. Gailleton
    """
    for _, active in reduction_passes(w, schedule):
        dsts = [dst for _, dst, _ in active]
        srcs = [src for _, _, src in active]
        if len(set(dsts)) != len(dsts):
            return False
        if set(dsts) & set(srcs):
            return False
        if len(set(srcs)) != len(srcs):
            return False
    return True


def reduce_group(chunk, schedule: str = "tree", accum_bits: int = 32, width: int = None) -> int:
    """
    Reduce one chunk to its sum the way one execution group does.

    The chunk is loaded into a scratch array of `width` slots (neutral
    element past the end of a short chunk), each pass is applied to all of
    its active lanes at once, and slot 0 is returned.

    Args:
        chunk: Sequence of unsigned integers, at most `width` long
        schedule: "tree" or "sequential"
        accum_bits: 32 (wraps modulo 2**32) or 64
        width: Group width, defaults to the next power of two >= len(chunk)
            (and at least 1)

    Returns:
        int: slot 0 after the last pass

    Example:
        reduce_group([3, 5, 7], width=64)  # 15

    Author: B. Gailleton
    """
    _, np_dtype = cte.accum_dtypes(accum_bits)
    values = np.asarray(chunk, dtype=np.uint64).ravel()
    n = values.shape[0]

    if width is None:
        width = 1
        while width < n:
            width *= 2
    width = validate_group_width(width)
    if n > width:
        raise ValueError(f"Chunk of {n} values does not fit a group of width {width}")

    # Load phase
    scratch = np.full(width, cte.NEUTRAL, dtype=np_dtype)
    scratch[:n] = values.astype(np_dtype)

    # Reduction passes, each one applied to every lane before the next
    with np.errstate(over="ignore"):
        for _, active in reduction_passes(width, schedule):
            if not active:
                continue
            dst = np.fromiter((d for _, d, _ in active), dtype=np.int64, count=len(active))
            src = np.fromiter((s for _, _, s in active), dtype=np.int64, count=len(active))
            scratch[dst] = scratch[dst] + scratch[src]

    # Writeback
    return int(scratch[0])
