"""Error taxonomy for PyParSum device work."""


class DeviceError(RuntimeError):
    """Base exception for every device-side failure (also raised for transfer faults)."""

    pass


class AllocationError(DeviceError):
    """Raised when a device buffer cannot be sized or allocated."""

    def __init__(self, message: str, length: int = None):
        super().__init__(message)
        self.length = length


class DeviceExecutionError(DeviceError):
    """Raised when a kernel cannot be launched or faults during execution."""

    def __init__(self, message: str, group_count: int = None):
        super().__init__(message)
        self.group_count = group_count


class OverflowRisk(UserWarning):
    """
    Advisory warning: the accumulation width may not hold a partial sum.

    Issued through warnings.warn, never raised. Under 32-bit accumulation
    the device result is then the true sum modulo 2**32.
    """

    pass


class BindingError(ValueError):
    """Raised by a kernel launch when a bound buffer or scalar does not fit the dispatch."""

    pass
