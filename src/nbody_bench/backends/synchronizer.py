import enum
from contextlib import contextmanager

import numpy as np

from nbody_bench.errors import DeviceMapFailure


class Stage(enum.Enum):
    IDLE = "idle"
    DISPATCHED = "dispatched"
    COPIED = "copied"
    MAP_REQUESTED = "map_requested"
    MAPPED = "mapped"
    READ = "read"
    UNMAPPED = "unmapped"


class MappedRegion:
    """Host view of the staging bytes, valid only until the region is released."""

    def __init__(self, host, on_read=None):
        self._floats = host.view(np.float32).reshape(-1)
        self._shape = host.shape
        self._on_read = on_read

    @property
    def released(self):
        return self._floats is None

    def _check(self):
        if self._floats is None:
            raise RuntimeError("Mapped region was already released")

    def read(self, index=0):
        self._check()
        value = float(self._floats[index])
        if self._on_read is not None:
            self._on_read()
        return value

    def to_array(self):
        self._check()
        data = self._floats.reshape(self._shape).copy()
        if self._on_read is not None:
            self._on_read()
        return data

    def release(self):
        self._floats = None


class AcceleratorSynchronizer:
    """
    Gets a device buffer back to the host after the last dispatch:

        Dispatched -> Copied -> MapRequested -> Mapped -> Read -> Unmapped

    The copy into staging memory is queued on the device stream. The host then
    blocks exactly once, waiting for the completion event. There is no timeout:
    a hung device blocks the caller until the context is torn down.
    """

    def __init__(self, engine):
        self.engine = engine
        self.stage = Stage.IDLE

    def mark_dispatched(self):
        self.stage = Stage.DISPATCHED

    def _mark_read(self):
        self.stage = Stage.READ

    @contextmanager
    def fetch(self, device_buffer):
        try:
            with self.engine.staging(device_buffer.shape) as (target, host):
                try:
                    self.engine.copy(device_buffer, target)
                    self.stage = Stage.COPIED
                    event = self.engine.record()
                    self.stage = Stage.MAP_REQUESTED
                    self.engine.wait(event)
                except self.engine.device_errors as exc:
                    raise DeviceMapFailure(f"Device error while mapping results: {exc}") from exc

                self.stage = Stage.MAPPED
                region = MappedRegion(host, on_read=self._mark_read)
                try:
                    yield region
                finally:
                    region.release()
        finally:
            # Staging memory is released on every exit path, including failures
            self.stage = Stage.UNMAPPED

    def read_checksum(self, device_buffer):
        with self.fetch(device_buffer) as region:
            return region.read(0)

    def download(self, device_buffer):
        with self.fetch(device_buffer) as region:
            return region.to_array()
