import matplotlib
matplotlib.use("Agg")

import pytest

import pyparsum.constants as cte
from pyparsum.device import DeviceContext


_CONFIG = (
    "GROUP_WIDTH", "SCHEDULE", "STRATEGY", "ACCUM_BITS", "PADDING",
    "HOST_FINAL_THRESHOLD", "MAX_LIVE_BUFFERS",
)


@pytest.fixture(scope="session")
def ctx():
    """One CPU device context for the whole test session."""
    context = DeviceContext(arch="cpu")
    context.open()
    yield context
    context.close()


@pytest.fixture(autouse=True)
def restore_constants():
    saved = {name: getattr(cte, name) for name in _CONFIG}
    yield
    for name, value in saved.items():
        setattr(cte, name, value)
