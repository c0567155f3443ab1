import numpy as np
import pytest
from numba import cuda

from nbody_bench.backends.sequential import SequentialBackend
from nbody_bench.benchmark.harness import (
    run, run_config, compare_backends, create_backend, interaction_throughput, relative_error, main, RunResult,
)
from nbody_bench.config import RunConfig
from nbody_bench.errors import ConfigError
from nbody_bench.state import lattice_particles

# Sequential G-interactions/s measured for N=16384, S=50
SEQUENTIAL_BASELINE = 0.36


@pytest.mark.parametrize("backend", ["sequential", "parallel"])
def test_single_particle_run_keeps_initial_value(backend):
    result = run(backend, 1, 10)
    assert isinstance(result, RunResult)
    assert result.backend == backend
    assert result.particle_count == 1 and result.step_count == 10
    assert result.checksum == 0.5
    assert result.elapsed_seconds >= 0.0


@pytest.mark.parametrize("backend", ["sequential", "parallel"])
def test_zero_steps_returns_initial_checksum(backend):
    result = run(backend, 32, 0)
    assert result.checksum == 0.5
    assert result.throughput == 0.0


@pytest.mark.parametrize("backend", ["sequential", "parallel"])
def test_coincident_pair_scenario(backend):
    result = run(backend, 2, 1)
    assert result.checksum == 0.5


def test_sequential_and_parallel_checksums_identical():
    seq = run("sequential", 200, 5, layout="lattice")
    par = run("parallel", 200, 5, layout="lattice", workers=3)
    assert seq.checksum == par.checksum
    assert seq.checksum != float(lattice_particles(200)[0, 0])


def test_compare_backends_reports_relative_error():
    results = compare_backends(["sequential", "parallel"], 64, 3)
    assert [r.backend for r, _ in results] == ["sequential", "parallel"]
    assert [err for _, err in results] == [0.0, 0.0]


def test_initial_state_overrides_layout():
    particles = np.array([[0.125, 0.5, 0.0, 0.0]], dtype=np.float32)
    result = run("sequential", None, 3, initial_state=particles)
    assert result.particle_count == 1
    assert result.checksum == 0.125


def test_initial_state_size_mismatch_rejected():
    with pytest.raises(ConfigError):
        run("sequential", 5, 1, initial_state=lattice_particles(4))


@pytest.mark.parametrize("n, s", [(0, 1), (-3, 1), (4, -1), (2.5, 1), (True, 1), (4, None)])
def test_invalid_counts_rejected(n, s):
    with pytest.raises(ConfigError):
        run("sequential", n, s)


@pytest.mark.parametrize("workers", [0, -1])
def test_parallel_run_rejects_non_positive_workers(workers):
    with pytest.raises(ConfigError):
        run("parallel", 4, 1, workers=workers)


def test_unknown_backend_rejected():
    with pytest.raises(ConfigError):
        create_backend("quantum")


def test_progress_is_advisory():
    seen = []
    quiet = run("sequential", 50, 12, layout="lattice")
    noisy = run("sequential", 50, 12, layout="lattice", progress=lambda step, total: seen.append(step), progress_interval=5)
    assert seen == [0, 5, 10]
    assert noisy.checksum == quiet.checksum


def test_instance_backend_left_open():
    closed = []

    class TrackingBackend(SequentialBackend):
        def close(self):
            closed.append(True)

    backend = TrackingBackend()
    run(backend, 4, 1)
    assert closed == []


def test_throughput_formula():
    assert interaction_throughput(1000, 10, 2.0) == pytest.approx(0.005)
    assert interaction_throughput(16384, 50, 37.0) == pytest.approx(16384**2 * 50 / 37.0 / 1e9)
    assert interaction_throughput(10, 10, 0.0) == 0.0


def test_relative_error():
    assert relative_error(1.0001, 1.0) == pytest.approx(1e-4)
    assert relative_error(0.5, 0.0) == 0.5


def test_run_config():
    result = run_config(RunConfig(backend="parallel", particle_count=8, step_count=2, workers=2))
    assert result.backend == "parallel"
    assert result.checksum == 0.5


def test_cli_sequential(capsys):
    assert main(["-n", "16", "-s", "3", "-b", "sequential", "--progress-interval", "1"]) == 0
    out = capsys.readouterr().out
    assert "Particles: 16" in out
    assert "..." in out
    assert "Check (Pos X[0]):         0.5000" in out


def test_cli_invalid_count_exits():
    with pytest.raises(SystemExit):
        main(["-n", "0", "-s", "3"])


@pytest.mark.skipif(cuda.is_available(), reason="only meaningful without a CUDA device")
def test_cli_accelerator_failure_is_an_error(capsys):
    assert main(["-n", "16", "-s", "1", "-b", "accelerator"]) == 1
    assert "accelerator run failed" in capsys.readouterr().err


@pytest.mark.slow
def test_sequential_throughput_regression():
    result = run("sequential", 16384, 50)
    assert result.checksum == 0.5
    assert SEQUENTIAL_BASELINE / 10 <= result.throughput <= SEQUENTIAL_BASELINE * 10
