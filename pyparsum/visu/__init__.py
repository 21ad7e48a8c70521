"""
Visualization submodule for PyParSum.

Plots the per-group partial sums returned by a dispatch, handy to spot a
faulty group (a bar out of line with its neighbours) when validating a
backend.

Available Functions:
- plot_partial_sums: Bar plot of partial sums against group index

Usage:
    import matplotlib.pyplot as plt
    import pyparsum as ps

    partials = dispatcher.dispatch(values)
    ax = ps.visu.plot_partial_sums(partials)
    plt.show()

Author: B.G.
"""

from .partials import plot_partial_sums

__all__ = [
    "plot_partial_sums"
]
