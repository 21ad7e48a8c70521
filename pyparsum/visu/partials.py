"""
Partial-sum plotting with matplotlib.

Author: B.G.
"""

import matplotlib.pyplot as plt
import numpy as np


def plot_partial_sums(partials, ax = None, expected = None, title = None):
    """
    Plot partial sums against their group index.

    Args:
        partials: Partial sums in group order
        ax: Matplotlib Axes to draw into (a new figure is created when None)
        expected: Optional reference partial sums, drawn as a line on top
        title: Optional axes title

    Returns:
        matplotlib.axes.Axes: the axes drawn into

    Author: B.G.
    """
    partials = np.asarray(partials)
    if ax is None:
        _, ax = plt.subplots(figsize = (8, 4))

    groups = np.arange(partials.size)
    ax.bar(groups, partials, width = 1.0, color = "steelblue", label = "device")
    if expected is not None:
        ax.plot(groups, np.asarray(expected), color = "darkorange", lw = 1.5, label = "expected")
        ax.legend()

    ax.set_xlabel("Group index")
    ax.set_ylabel("Partial sum")
    if title is not None:
        ax.set_title(title)
    return ax
