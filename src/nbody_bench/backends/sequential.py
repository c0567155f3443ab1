from nbody_bench.backends.base import Backend
from nbody_bench.kernel import advance_range


class SequentialBackend(Backend):
    """Indices 0..N-1 in increasing order on the calling thread."""

    name = "sequential"

    def __init__(self, kernel=advance_range):
        self.kernel = kernel

    def dispatch(self, source, destination, start, stop):
        self.kernel(source, destination, start, stop)

    def describe(self):
        return "CPU (single thread)"
