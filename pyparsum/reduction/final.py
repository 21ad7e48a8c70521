"""
Host Final-Reduction

Sums the G partial sums produced by a dispatch into the final sum. Small
arrays are summed linearly on the host. Large arrays can be fed back to the
device: the partial sums become a new input sequence and the group reduction
runs again, dividing the count by W each level, until it falls to the host
threshold.

The final sum follows the device accumulation width: it is the true sum of
the input modulo 2**accum_bits. Under 32-bit accumulation the wrapped
partial sums are therefore also summed modulo 2**32 on the host, so the
result does not depend on how the work was split between device and host.

Author: B.G.
"""

import numpy as np

from .. import constants as cte
from ..logger import logger
from .dispatcher import HostDispatcher


def host_sum(partials, bits: int = None) -> int:
    """
    Linear host sum of partial sums (0 for an empty array).

    Args:
        partials: Partial sums
        bits: Wrap the sum modulo 2**bits (32 or 64). None sums in 64 bits.

    Returns:
        int: The sum
    """
    arr = np.asarray(partials)
    if arr.size == 0:
        return 0
    total = int(arr.astype(np.uint64).sum(dtype=np.uint64))
    if bits is not None:
        cte.accum_dtypes(bits)
        total %= 2**bits
    return total


def final_reduce(partials, dispatcher: HostDispatcher = None, threshold: int = None, accum_bits: int = None) -> int:
    """
    Reduce partial sums to the final sum.

    Args:
        partials: Partial sums in group order
        dispatcher: HostDispatcher used to re-dispatch large arrays; when
            None the whole reduction is done on the host
        threshold: Host-side threshold (default cte.HOST_FINAL_THRESHOLD),
            clamped to at least 1
        accum_bits: Width the final sum wraps at. Defaults to the
            dispatcher's accumulation width, or 64 bits without a dispatcher.

    Returns:
        int: Final sum modulo 2**accum_bits

    Author: B.G.
    """
    threshold = max(1, threshold if threshold is not None else cte.HOST_FINAL_THRESHOLD)
    if accum_bits is None and dispatcher is not None:
        accum_bits = dispatcher.accum_bits
    arr = np.asarray(partials)

    level = 0
    while dispatcher is not None and arr.size > threshold:
        level += 1
        arr = dispatcher.dispatch_partials(arr)
        logger.debug(f"final reduction level {level}: {arr.size} partial sums left")

    if level:
        logger.info(f"final reduction re-dispatched {level} time(s)")
    return host_sum(arr, accum_bits)


def parallel_sum(values, context, threshold: int = None, **dispatcher_options) -> int:
    """
    Sum `values` on the device: dispatch one group per chunk, then final-reduce.

    Args:
        values: Input sequence of unsigned 32-bit integers
        context: Open DeviceContext
        threshold: Host final-reduction threshold
        **dispatcher_options: width, accum_bits, padding, schedule, strategy

    Returns:
        int: Sum of the input modulo 2**accum_bits (0 for an empty input,
            without any dispatch)

    Example:
        with DeviceContext(arch="cpu") as ctx:
            parallel_sum([3, 5, 7], ctx)  # 15
    """
    dispatcher = HostDispatcher(context, **dispatcher_options)
    partials = dispatcher.dispatch(values)
    return final_reduce(partials, dispatcher, threshold)
