import numpy as np
import pytest

from nbody_bench.state import (
    BufferPair, StateStore, uniform_particles, lattice_particles, PARTICLE_BYTES, POS_X, POS_Y,
)


def test_uniform_particles_reference_state():
    p = uniform_particles(5)
    assert p.dtype == np.float32
    assert p.shape == (5, 4)
    assert np.all(p[:, :2] == 0.5)
    assert np.all(p[:, 2:] == 0.0)


def test_lattice_particles_are_distinct_and_inside_unit_square():
    p = lattice_particles(50)
    positions = {(float(x), float(y)) for x, y in p[:, :2]}
    assert len(positions) == 50
    assert np.all((p[:, :2] > 0.0) & (p[:, :2] < 1.0))
    assert np.all(p[:, 2:] == 0.0)
    # Deterministic
    assert np.array_equal(p, lattice_particles(50))


def test_swap_is_a_role_flip_not_a_copy():
    a = uniform_particles(3)
    b = np.empty_like(a)
    pair = BufferPair(a, b)

    assert pair.source is a and pair.destination is b
    assert pair.readable is a
    pair.swap()
    assert pair.source is b and pair.destination is a
    assert pair.readable is b
    assert pair.steps_taken == 1
    pair.swap()
    assert pair.source is a and pair.readable is a


@pytest.mark.parametrize("steps, label", [(0, "A"), (1, "B"), (2, "A"), (5, "B"), (8, "A")])
def test_readable_buffer_follows_step_parity(steps, label):
    pair = BufferPair(uniform_particles(2), uniform_particles(2))
    for _ in range(steps):
        pair.swap()
    assert pair.readable_label == label
    assert pair.readable is pair.buffer(label)


def test_mismatched_buffers_rejected():
    with pytest.raises(ValueError):
        BufferPair(uniform_particles(2), uniform_particles(3))


def test_store_owns_two_fixed_buffers():
    store = StateStore(8, layout="lattice")
    assert store.particle_count == 8
    assert store.size_bytes == 8 * PARTICLE_BYTES == 128
    assert store.buffers.source.shape == store.buffers.destination.shape == (8, 4)
    assert store.checksum() == float(lattice_particles(8)[0, POS_X])


def test_store_from_particles_copies_input():
    particles = np.array([[0.1, 0.2, 0.3, 0.4], [0.5, 0.6, 0.7, 0.8]])
    store = StateStore.from_particles(particles)
    particles[0, POS_Y] = 9.0
    assert store.buffers.source.dtype == np.float32
    assert store.buffers.source[0, POS_Y] == np.float32(0.2)


@pytest.mark.parametrize("bad", [np.zeros((3, 3)), np.zeros((0, 4)), np.zeros(4)])
def test_store_rejects_bad_particle_arrays(bad):
    with pytest.raises(ValueError):
        StateStore.from_particles(bad)


def test_store_rejects_unknown_layout_and_empty_population():
    with pytest.raises(ValueError):
        StateStore(4, layout="spiral")
    with pytest.raises(ValueError):
        StateStore(0)
