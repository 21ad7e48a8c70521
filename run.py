#!/usr/bin/env python3
"""
Parallel sum of 1..=n on the device, checked against n*(n+1)/2
"""
import argparse
import sys
import time

import numpy as np

import pyparsum as ps
import pyparsum.constants as cte


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Sum 1..=n with the PyParSum group-reduction kernel")
    parser.add_argument("--n", type=int, default=16384, help="number of values (default: 16384)")
    parser.add_argument("--arch", default="gpu", help="Taichi arch: gpu, cpu, cuda, vulkan, metal ... (default: gpu)")
    parser.add_argument("--width", type=int, default=cte.GROUP_WIDTH, help="group width W (power of two)")
    parser.add_argument("--accum-bits", type=int, choices=(32, 64), default=cte.ACCUM_BITS)
    parser.add_argument("--padding", choices=("pad", "bounds"), default=cte.PADDING)
    parser.add_argument("--schedule", choices=("tree", "sequential"), default=cte.SCHEDULE)
    parser.add_argument("--strategy", choices=("auto", "phased", "shared"), default=cte.STRATEGY)
    parser.add_argument("--plot", action="store_true", help="plot the partial sums")
    parser.add_argument("--verbose", action="store_true", help="debug logging")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    if args.verbose:
        ps.logger.logger.set_level("debug")

    values = np.arange(1, args.n + 1, dtype=np.uint32)
    expected = args.n * (args.n + 1) // 2

    with ps.device.DeviceContext(arch=args.arch) as ctx:
        print(f"Backend: {ctx.arch_name}")
        dispatcher = ps.reduction.HostDispatcher(
            ctx, width=args.width, accum_bits=args.accum_bits, padding=args.padding,
            schedule=args.schedule, strategy=args.strategy)

        # Warm up (kernel compilation)
        dispatcher.dispatch(values[:dispatcher.width])

        gpu_start = time.perf_counter()
        partials = dispatcher.dispatch(values)
        gpu_elapsed = time.perf_counter() - gpu_start

        full_start = time.perf_counter()
        total = ps.reduction.final_reduce(partials, dispatcher)
        full_elapsed = time.perf_counter() - full_start

    print(f"num_groups = {partials.size}")
    print(f"First partials (up to 16) = {partials[:16].tolist()}")
    print(f"GPU dispatch+execute+readback time: {gpu_elapsed * 1e3:.3f} ms")
    print(f"Final reduction time: {full_elapsed * 1e3:.3f} ms")
    print(f"Total from GPU partials = {total}")
    print(f"Expected total = {expected}")
    print(f"Match: {total == expected}")

    if args.plot:
        import matplotlib.pyplot as plt
        width = dispatcher.width
        ref = [sum(range(g * width + 1, min((g + 1) * width, args.n) + 1)) for g in range(partials.size)]
        ps.visu.plot_partial_sums(partials, expected=ref, title=f"n = {args.n}, W = {width}")
        plt.show()

    return 0 if total == expected else 1


if __name__ == "__main__":
    sys.exit(main())
