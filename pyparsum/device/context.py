"""
Device context for PyParSum.

Wraps the process-wide Taichi runtime in an explicitly constructed and
explicitly owned object. The context initialises Taichi once, hands out
linear buffers from its pool, moves raw bytes in and out of them and submits
kernel dispatches, blocking until the whole dispatch has completed.

Author: B.G.
"""

import numpy as np
import taichi as ti

from .. import constants as cte
from ..exceptions import AllocationError, BindingError, DeviceError, DeviceExecutionError
from ..logger import logger
from ..reduction.kernels import reset_kernel_cache
from .buffers import BufferPool, DeviceBuffer, check_length


def _resolve_arch(arch):
	"""Turn an arch name ("cpu", "gpu", "cuda", ...) into a Taichi arch."""
	if isinstance(arch, str):
		try:
			return getattr(ti, arch.lower())
		except AttributeError:
			raise ValueError(f"Unknown Taichi arch: {arch}") from None
	return arch


class DeviceContext:
	"""
	Explicitly owned device/context provider.

	Lifecycle: created once, opened once (Taichi initialisation), closed once
	(pooled buffers destroyed, Taichi reset). A closed context is never
	re-opened implicitly; every operation on it raises RuntimeError.

	Attributes:
		arch: Requested Taichi arch
		debug (bool): Taichi debug mode (bounds checks on device accesses)
		pool (BufferPool): Buffers allocated through this context
		is_open (bool): True between open() and close()

	Usage:
		with DeviceContext(arch="cpu") as ctx:
			buf = ctx.allocate(64)
			ctx.upload(buf, np.arange(64, dtype=np.uint32))
			raw = ctx.download(buf)
			ctx.release(buf)

	Author: B.G.
	"""

	def __init__(self, arch = None, debug = False):
		self.arch = _resolve_arch(arch if arch is not None else cte.ARCH)
		self.debug = debug
		self.pool = BufferPool()
		self.is_open = False
		self._closed = False
		self._active_arch = None

	def open(self):
		"""
		Initialise the Taichi runtime for this context.

		Raises:
			RuntimeError: If a context is already open or this one was closed

		Author: B.G.
		"""
		if(self._closed):
			raise RuntimeError("DeviceContext was closed and cannot be re-opened")
		if(cte.INITIALISED):
			raise RuntimeError("A PyParSum DeviceContext is already open")

		ti.init(arch = self.arch, debug = self.debug)
		self._active_arch = ti.lang.impl.current_cfg().arch
		self.is_open = True
		cte.INITIALISED = True
		logger.info(f"Device context opened on {self.arch_name}")
		return self

	def close(self):
		"""
		Destroy every pooled buffer, drop compiled kernels and reset the Taichi runtime.

		Author: B.G.
		"""
		if not self.is_open:
			return
		self.pool.clear_all()
		reset_kernel_cache()
		ti.reset()
		self.is_open = False
		self._closed = True
		cte.INITIALISED = False
		logger.info("Device context closed")

	def __enter__(self):
		return self.open()

	def __exit__(self, exc_type, exc_val, exc_tb):
		self.close()
		return False

	def _check_open(self):
		if not self.is_open:
			raise RuntimeError("DeviceContext is not open")

	@property
	def arch_name(self):
		arch = self._active_arch if self._active_arch is not None else self.arch
		return getattr(arch, "name", str(arch))

	@property
	def supports_shared_memory(self):
		"""Group-shared arrays and block barriers are only available on CUDA."""
		return self.is_open and self._active_arch == ti.cuda

	#########################################
	###### BUFFERS ##########################
	#########################################

	def allocate(self, length, dtype = ti.u32) -> DeviceBuffer:
		"""
		Allocate (or reuse from the pool) a linear buffer of `length` elements.

		Raises:
			AllocationError: length outside [1, MAX_BUFFER_ELEMENTS] or backend refusal

		Author: B.G.
		"""
		self._check_open()
		length = int(length)
		if not check_length(length):
			raise AllocationError(
				f"Cannot size a device buffer of {length} elements (limit {cte.MAX_BUFFER_ELEMENTS})",
				length = length)
		try:
			buf = self.pool.get_buffer(dtype, length)
		except AllocationError:
			raise
		except Exception as exc:
			raise AllocationError(f"Device refused a buffer of {length} elements: {exc}", length = length) from exc
		logger.debug(f"allocated {buf}")
		return buf

	def release(self, buf: DeviceBuffer):
		"""Return a buffer to the pool. Its memory stays allocated for reuse."""
		self.pool.release_buffer(buf)

	def upload(self, buf: DeviceBuffer, data):
		"""
		Copy host data into a device buffer.

		Args:
			buf: Destination buffer
			data: Raw little-endian bytes (no header) or a numpy array, exactly
				buf.length elements

		Raises:
			DeviceError: size mismatch, destroyed buffer or transfer fault
		"""
		self._check_open()
		if not buf.alive:
			raise DeviceError(f"Upload to destroyed buffer {buf.id}")

		np_dtype = cte.ti_to_np_dtype(buf.dtype)
		if isinstance(data, (bytes, bytearray, memoryview)):
			if len(data) != buf.nbytes:
				raise DeviceError(f"Upload of {len(data)} bytes into a {buf.nbytes} bytes buffer")
			arr = np.frombuffer(data, dtype = np.dtype(np_dtype).newbyteorder("<")).astype(np_dtype)
		else:
			arr = np.ascontiguousarray(data, dtype = np_dtype)
			if arr.shape != (buf.length,):
				raise DeviceError(f"Upload of shape {arr.shape} into a buffer of {buf.length} elements")

		try:
			buf.from_numpy(arr)
		except Exception as exc:
			raise DeviceError(f"Upload to buffer {buf.id} failed: {exc}") from exc

	def read(self, buf: DeviceBuffer) -> np.ndarray:
		"""Copy a device buffer back to the host as a numpy array."""
		self._check_open()
		if not buf.alive:
			raise DeviceError(f"Download from destroyed buffer {buf.id}")
		try:
			return buf.to_numpy()
		except Exception as exc:
			raise DeviceError(f"Download from buffer {buf.id} failed: {exc}") from exc

	def download(self, buf: DeviceBuffer) -> bytes:
		"""Copy a device buffer back to the host as raw little-endian bytes."""
		arr = self.read(buf)
		return arr.astype(arr.dtype.newbyteorder("<")).tobytes()

	#########################################
	###### DISPATCH #########################
	#########################################

	def dispatch(self, kernel, group_count, **bindings):
		"""
		Submit `group_count` execution groups of `kernel` and wait for all of them.

		Groups run independently and finish in no defined order, results are
		only valid once this call returns. There is no cancellation and no
		retry.

		Args:
			kernel: Object exposing launch(group_count, **bindings)
			group_count: Number of execution groups (one per chunk)
			**bindings: Buffers and scalars forwarded to kernel.launch

		Raises:
			BindingError: kernel.launch rejected its bindings (not wrapped)
			DeviceExecutionError: any other launch or execution fault

		Author: B.G.
		"""
		self._check_open()
		if group_count < 0:
			raise ValueError(f"group_count must be non-negative, got {group_count}")
		if group_count == 0:
			return

		logger.debug(f"dispatching {group_count} groups of {kernel}")
		try:
			kernel.launch(group_count, **bindings)
			ti.sync()
		except (BindingError, DeviceError):
			raise
		except Exception as exc:
			raise DeviceExecutionError(
				f"Dispatch of {group_count} groups failed on {self.arch_name}: {exc}",
				group_count = group_count) from exc
