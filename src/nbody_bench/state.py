import math
import numpy as np

# Columns of a state buffer: pos.x, pos.y, vel.x, vel.y
POS_X, POS_Y, VEL_X, VEL_Y = range(4)
PARTICLE_FIELDS = 4
PARTICLE_BYTES = PARTICLE_FIELDS * np.dtype(np.float32).itemsize

BUFFER_LABELS = ("A", "B")


def uniform_particles(n):
    """Reference start state: every particle at (0.5, 0.5) at rest."""
    particles = np.zeros((n, PARTICLE_FIELDS), dtype=np.float32)
    particles[:, POS_X] = 0.5
    particles[:, POS_Y] = 0.5
    return particles


def lattice_particles(n, spacing=None):
    """
    Deterministic square lattice inside [0, 1)^2, all velocities zero.
    Unlike the uniform layout the pairwise displacements are non-zero, so
    particles actually move and backends can be compared on real work.
    """
    side = math.ceil(math.sqrt(n))
    if spacing is None:
        spacing = 1.0 / side
    idx = np.arange(n)
    particles = np.zeros((n, PARTICLE_FIELDS), dtype=np.float32)
    particles[:, POS_X] = (idx % side) * spacing + 0.5 * spacing
    particles[:, POS_Y] = (idx // side) * spacing + 0.5 * spacing
    return particles


LAYOUT_FUNCS = {
    "uniform": uniform_particles,
    "lattice": lattice_particles,
}


class BufferPair:
    """
    Two fixed state buffers plus the role flag saying which one the next step
    reads from. Swapping roles only flips the flag; nothing is copied or
    reallocated. Works for host (numpy) and device arrays alike.
    """

    def __init__(self, buffer_a, buffer_b):
        if buffer_a.shape != buffer_b.shape:
            raise ValueError(f"Buffer shapes differ: {buffer_a.shape} vs {buffer_b.shape}")
        self._buffers = (buffer_a, buffer_b)
        self._source = 0
        self._readable = 0
        self.steps_taken = 0

    def __len__(self):
        return self._buffers[0].shape[0]

    @property
    def source(self):
        return self._buffers[self._source]

    @property
    def destination(self):
        return self._buffers[1 - self._source]

    @property
    def readable(self):
        """The buffer holding the newest complete state (last written)."""
        return self._buffers[self._readable]

    @property
    def readable_label(self):
        return BUFFER_LABELS[self._readable]

    def buffer(self, label):
        return self._buffers[BUFFER_LABELS.index(label)]

    def swap(self):
        # The destination just written becomes both the readable state and the next source
        self._readable = 1 - self._source
        self._source = self._readable
        self.steps_taken += 1


class StateStore:
    """Owns the host-side buffer pair for the lifetime of a run."""

    def __init__(self, particle_count, layout="uniform"):
        if particle_count < 1:
            raise ValueError(f"particle_count must be positive, got {particle_count}")
        if layout not in LAYOUT_FUNCS:
            raise ValueError(f"Unknown layout '{layout}', expected one of {tuple(LAYOUT_FUNCS)}")
        self._init_buffers(LAYOUT_FUNCS[layout](particle_count))

    @classmethod
    def from_particles(cls, particles):
        particles = np.ascontiguousarray(particles, dtype=np.float32)
        if particles.ndim != 2 or particles.shape[1] != PARTICLE_FIELDS or particles.shape[0] < 1:
            raise ValueError(f"Expected an (N, {PARTICLE_FIELDS}) particle array, got shape {particles.shape}")
        store = cls.__new__(cls)
        store._init_buffers(particles)
        return store

    def _init_buffers(self, particles):
        buffer_a = particles.copy()
        buffer_b = np.empty_like(buffer_a)
        self.buffers = BufferPair(buffer_a, buffer_b)

    @property
    def particle_count(self):
        return len(self.buffers)

    @property
    def size_bytes(self):
        return self.particle_count * PARTICLE_BYTES

    def checksum(self):
        return float(self.buffers.readable[0, POS_X])
