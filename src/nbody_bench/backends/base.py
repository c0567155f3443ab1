from abc import ABC, abstractmethod

import numpy as np

from nbody_bench.state import BufferPair, POS_X, uniform_particles


class Backend(ABC):
    """
    Strategy for spreading particle indices over compute resources.

    The only operation a step needs is `dispatch`: apply the kernel to every
    index in [start, stop), reading `source` and writing the same slots of
    `destination`. Everything else is lifecycle around it.
    """

    name = None

    def attach(self, store):
        """Return the buffer pair the steps run on."""
        return store.buffers

    @abstractmethod
    def dispatch(self, source, destination, start, stop):
        ...

    def checksum(self, pair):
        return float(pair.readable[0, POS_X])

    def download(self, pair):
        return np.array(pair.readable, dtype=np.float32)

    def warmup(self):
        """Compile the kernels on a scratch pair so that JIT time stays out of measurements."""
        particles = uniform_particles(2)
        pair = BufferPair(particles, np.empty_like(particles))
        self.dispatch(pair.source, pair.destination, 0, len(pair))

    def describe(self):
        return self.name

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
