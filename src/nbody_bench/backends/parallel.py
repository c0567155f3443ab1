import numba

from nbody_bench.backends.base import Backend
from nbody_bench.errors import ConfigError
from nbody_bench.kernel import advance_range_parallel


class DataParallelBackend(Backend):
    """
    Splits the index range over numba's thread pool with `prange`. Each
    thread writes a disjoint slice of the destination, so no locks are needed,
    and the compiled loop returns only once every thread is done.

    `workers` limits the threads used for this backend's dispatches; it is
    capped at `numba.config.NUMBA_NUM_THREADS`, the size of the pool.
    """

    name = "parallel"

    def __init__(self, workers=None, kernel=advance_range_parallel):
        if workers is None:
            workers = numba.config.NUMBA_NUM_THREADS
        if isinstance(workers, bool) or not isinstance(workers, int) or workers < 1:
            raise ConfigError(f"workers must be a positive integer, got {workers!r}")
        self.workers = min(workers, numba.config.NUMBA_NUM_THREADS)
        self.kernel = kernel

    def dispatch(self, source, destination, start, stop):
        if stop <= start:
            return
        # The thread count is per calling thread, restore it for other users
        previous = numba.get_num_threads()
        numba.set_num_threads(self.workers)
        try:
            self.kernel(source, destination, start, stop)
        finally:
            numba.set_num_threads(previous)

    def describe(self):
        return f"CPU ({self.workers} threads)"
