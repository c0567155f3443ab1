from nbody_bench.backends.base import Backend
from nbody_bench.backends.engines import ENGINES
from nbody_bench.backends.synchronizer import AcceleratorSynchronizer
from nbody_bench.config import WORKGROUP_SIZE, MAX_BUFFER_BYTES
from nbody_bench.errors import AllocationTooLarge, ConfigError
from nbody_bench.state import BufferPair, uniform_particles

DEVICE_BUFFERS = 2  # A and B live on the device, staging is host memory


class AcceleratorContext:
    """
    Explicitly opened and closed handle to one device. Several backends may be
    given the same context to share device state; a backend that creates its
    own context also closes it.
    """

    def __init__(self, engine="numba", device_id=0, workgroup_size=WORKGROUP_SIZE, max_buffer_bytes=MAX_BUFFER_BYTES):
        if engine not in ENGINES:
            raise ConfigError(f"Unknown engine '{engine}', expected one of {tuple(ENGINES)}")
        self.engine_name = engine
        self.device_id = device_id
        self.workgroup_size = workgroup_size
        self.max_buffer_bytes = max_buffer_bytes
        self.engine = None

    @property
    def is_open(self):
        return self.engine is not None

    def open(self):
        if self.engine is None:
            self.engine = ENGINES[self.engine_name](self.device_id, self.workgroup_size)
        return self

    def close(self):
        if self.engine is not None:
            engine, self.engine = self.engine, None
            engine.close()

    def check_allocation(self, buffer_bytes):
        """Raise AllocationTooLarge before anything is uploaded or dispatched."""
        if buffer_bytes > self.max_buffer_bytes:
            raise AllocationTooLarge(buffer_bytes, self.max_buffer_bytes, what="State buffer")
        free, _ = self.engine.memory_info()
        if DEVICE_BUFFERS * buffer_bytes > free:
            raise AllocationTooLarge(DEVICE_BUFFERS * buffer_bytes, free, what="Device buffer pair")

    def describe(self):
        if self.engine is None:
            return f"{self.engine_name} (closed)"
        free, total = self.engine.memory_info()
        return f"{self.engine.device_name} via {self.engine_name}, {free / 2**20:.0f}/{total / 2**20:.0f} MiB free"

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class AcceleratorBackend(Backend):
    """
    Runs every step on the device. The source state is uploaded once, steps
    ping-pong between two device buffers without host involvement, and only the
    final state travels back through the synchronizer.
    """

    name = "accelerator"

    def __init__(self, context=None, engine="numba", device_id=0):
        self._owns_context = context is None
        self.context = context if context is not None else AcceleratorContext(engine=engine, device_id=device_id)
        self.context.open()
        self.synchronizer = AcceleratorSynchronizer(self.context.engine)

    @property
    def engine(self):
        return self.context.engine

    def attach(self, store):
        self.context.check_allocation(store.size_bytes)
        self.engine.prepare(store.particle_count)
        device_a = self.engine.upload(store.buffers.source)
        device_b = self.engine.empty_like(device_a)
        return BufferPair(device_a, device_b)

    def dispatch(self, source, destination, start, stop):
        if stop <= start:
            return
        self.engine.launch(source, destination, start, stop)
        self.synchronizer.mark_dispatched()

    def checksum(self, pair):
        return self.synchronizer.read_checksum(pair.readable)

    def download(self, pair):
        return self.synchronizer.download(pair.readable)

    def warmup(self):
        particles = uniform_particles(2)
        source = self.engine.upload(particles)
        destination = self.engine.empty_like(source)
        self.engine.launch(source, destination, 0, particles.shape[0])
        self.engine.synchronize()

    def describe(self):
        return self.context.describe()

    def close(self):
        if self._owns_context:
            self.context.close()

