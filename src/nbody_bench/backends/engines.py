"""
Device engines for the accelerator backend.

An engine wraps one GPU library and exposes the handful of primitives the
accelerator backend and its synchronizer are built from: upload, allocate,
launch, device-to-staging copy, completion event and wait. Numba is the
default; CuPy is optional and only imported when that engine is requested.
"""

import math
from contextlib import contextmanager

import numpy as np
from numba import cuda
from numba.cuda.cudadrv.driver import CudaAPIError
from numba.cuda.cudadrv.error import CudaSupportError

from nbody_bench.errors import DeviceUnavailable
from nbody_bench.kernel import advance_kernel, cuda_source, CUDA_KERNEL_NAME


def grid_size(count, workgroup_size):
    """Workgroups needed to cover `count` work-items; the last one may be partial."""
    return math.ceil(count / workgroup_size)


class NumbaEngine:
    """
    One numba.cuda device. Every device call runs with this engine's primary
    context pushed, so several engines on different devices never act on each
    other's current context.
    """

    name = "numba"
    device_errors = (CudaAPIError, CudaSupportError)

    def __init__(self, device_id=0, workgroup_size=64):
        if not cuda.is_available():
            raise DeviceUnavailable("No CUDA device available to Numba")
        try:
            self.gpu = cuda.gpus[device_id]
        except (CudaSupportError, CudaAPIError, IndexError) as exc:
            raise DeviceUnavailable(f"Cannot open CUDA device {device_id}: {exc}") from exc
        self.device_id = device_id
        self.workgroup_size = workgroup_size
        with self.gpu:
            self.context = cuda.current_context()
            self.stream = cuda.stream()

    @property
    def device_name(self):
        name = self.context.device.name
        return name.decode() if isinstance(name, bytes) else str(name)

    def memory_info(self):
        """(free, total) bytes of device memory."""
        free, total = self.context.get_memory_info()
        return free, total

    def prepare(self, particle_count):
        # The Numba kernel reads N from the array shape, nothing to build per size
        pass

    def upload(self, host):
        with self.gpu:
            return cuda.to_device(host, stream=self.stream)

    def empty_like(self, device_array):
        with self.gpu:
            return cuda.device_array(device_array.shape, dtype=device_array.dtype, stream=self.stream)

    def launch(self, source, destination, start, stop):
        blocks = grid_size(stop - start, self.workgroup_size)
        with self.gpu:
            advance_kernel[blocks, self.workgroup_size, self.stream](source, destination, start, stop)

    @contextmanager
    def staging(self, shape):
        """Page-locked host memory mapped into the device address space for the scope."""
        host = np.empty(shape, dtype=np.float32)
        with self.gpu, cuda.mapped(host, stream=self.stream) as target:
            yield target, host

    def copy(self, device_array, target):
        # Device-side copy straight into the mapped host region
        with self.gpu:
            target.copy_to_device(device_array, stream=self.stream)

    def record(self):
        with self.gpu:
            event = cuda.event(timing=False)
            event.record(self.stream)
        return event

    def wait(self, event):
        event.synchronize()

    def synchronize(self):
        self.stream.synchronize()

    def close(self):
        # Only this engine's work and pending frees; the primary context stays
        # alive for any other engine on the same device
        with self.gpu:
            if self.stream is not None:
                self.stream.synchronize()
                self.stream = None
            self.context.deallocations.clear()


class CupyEngine:
    name = "cupy"

    def __init__(self, device_id=0, workgroup_size=64):
        import cupy as cp
        import cupyx

        self.cp = cp
        self.cupyx = cupyx
        self.device_errors = (cp.cuda.runtime.CUDARuntimeError, cp.cuda.driver.CUDADriverError)
        try:
            count = cp.cuda.runtime.getDeviceCount()
        except self.device_errors as exc:
            raise DeviceUnavailable(f"No CUDA device available to CuPy: {exc}") from exc
        if device_id >= count:
            raise DeviceUnavailable(f"CUDA device {device_id} requested but only {count} found")

        self.device_id = device_id
        self.workgroup_size = workgroup_size
        self.device = cp.cuda.Device(device_id)
        self.device.use()
        self.stream = cp.cuda.Stream(non_blocking=True)
        self._kernels = {}

    @property
    def device_name(self):
        name = self.cp.cuda.runtime.getDeviceProperties(self.device_id)["name"]
        return name.decode() if isinstance(name, bytes) else str(name)

    def memory_info(self):
        free, total = self.cp.cuda.runtime.memGetInfo()
        return free, total

    def kernel(self, particle_count):
        # Compile once per particle count, the count is baked into the source
        if particle_count not in self._kernels:
            kernel = self.cp.RawKernel(cuda_source(particle_count, self.workgroup_size), CUDA_KERNEL_NAME)
            kernel.compile()
            self._kernels[particle_count] = kernel
        return self._kernels[particle_count]

    def prepare(self, particle_count):
        self.kernel(particle_count)

    def upload(self, host):
        with self.stream:
            return self.cp.asarray(host, dtype=self.cp.float32)

    def empty_like(self, device_array):
        with self.stream:
            return self.cp.empty_like(device_array)

    def launch(self, source, destination, start, stop):
        kernel = self.kernel(source.shape[0])
        blocks = grid_size(stop - start, self.workgroup_size)
        with self.stream:
            kernel((blocks,), (self.workgroup_size,), (source, destination, np.int32(start), np.int32(stop)))

    @contextmanager
    def staging(self, shape):
        # The pinned block returns to the pool once the caller drops its views;
        # close() and cleanup_gpu() free the pool
        host = self.cupyx.empty_pinned(shape, dtype=np.float32)
        yield host, host

    def copy(self, device_array, target):
        device_array.get(stream=self.stream, out=target)

    def record(self):
        return self.stream.record()

    def wait(self, event):
        event.synchronize()

    def synchronize(self):
        self.stream.synchronize()

    def close(self):
        self.stream.synchronize()
        self._kernels.clear()
        self.cp.get_default_memory_pool().free_all_blocks()
        self.cp.get_default_pinned_memory_pool().free_all_blocks()


ENGINES = {
    "numba": NumbaEngine,
    "cupy": CupyEngine,
}
