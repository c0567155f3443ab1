import sys
import time
import argparse
from dataclasses import dataclass

from nbody_bench.backends.accelerator import AcceleratorBackend
from nbody_bench.backends.parallel import DataParallelBackend
from nbody_bench.backends.sequential import SequentialBackend
from nbody_bench.benchmark.util import print_banner, print_progress, print_results, cleanup_gpu
from nbody_bench.config import (
    RunConfig, validate_counts, BACKEND_NAMES, ENGINE_NAMES, LAYOUTS,
    DEFAULT_PARTICLES, DEFAULT_STEPS, PROGRESS_INTERVAL,
)
from nbody_bench.driver import StepDriver
from nbody_bench.errors import AcceleratorError, ConfigError
from nbody_bench.state import StateStore


@dataclass
class RunResult:
    backend: str
    particle_count: int
    step_count: int
    elapsed_seconds: float
    throughput: float
    checksum: float
    hardware: str = ""


def interaction_throughput(particle_count, step_count, elapsed_seconds):
    """Billions of pairwise interactions per second (N^2 per step, self term included)."""
    if elapsed_seconds <= 0:
        return 0.0
    return particle_count * particle_count * step_count / elapsed_seconds / 1e9


def create_backend(name, workers=None, engine="numba"):
    if name == "sequential":
        return SequentialBackend()
    if name == "parallel":
        return DataParallelBackend(workers=workers)
    if name == "accelerator":
        return AcceleratorBackend(engine=engine)
    raise ConfigError(f"Unknown backend '{name}', expected one of {BACKEND_NAMES}")


def run(backend, particle_count, step_count, layout="uniform", initial_state=None,
        progress=None, progress_interval=PROGRESS_INTERVAL, warmup=True, workers=None, engine="numba"):
    """
    Run `step_count` steps of `particle_count` particles on `backend` and time it.

    `backend` is a backend name or an instance. Backends created here from a
    name are closed before returning; instances stay open for the caller.
    The buffers are attached before the kernels are warmed up. The timed span
    starts after warm-up and ends when the checksum has been read back to the
    host, so for the accelerator it covers every dispatch plus the final
    transfer.

    Accelerator failures propagate as AcceleratorError. They are never
    retried on another backend.
    """
    if initial_state is not None:
        store = StateStore.from_particles(initial_state)
        if particle_count is None:
            particle_count = store.particle_count
        elif particle_count != store.particle_count:
            raise ConfigError(f"particle_count={particle_count} but initial_state has {store.particle_count} particles")
    validate_counts(particle_count, step_count)
    if initial_state is None:
        store = StateStore(particle_count, layout=layout)

    owns_backend = isinstance(backend, str)
    if owns_backend:
        backend = create_backend(backend, workers=workers, engine=engine)

    try:
        # attach() runs the allocation check, so nothing reaches the device before it
        pair = backend.attach(store)
        if warmup:
            backend.warmup()
        hardware = backend.describe()
        driver = StepDriver(backend, pair)

        start_time = time.perf_counter()
        driver.run(step_count, progress=progress, progress_interval=progress_interval)
        checksum = backend.checksum(pair)
        end_time = time.perf_counter()
    finally:
        if owns_backend:
            backend.close()

    elapsed = end_time - start_time
    return RunResult(
        backend=backend.name,
        particle_count=particle_count,
        step_count=step_count,
        elapsed_seconds=elapsed,
        throughput=interaction_throughput(particle_count, step_count, elapsed),
        checksum=checksum,
        hardware=hardware,
    )


def run_config(config, progress=None):
    return run(
        config.backend, config.particle_count, config.step_count,
        layout=config.layout, progress=progress, progress_interval=config.progress_interval,
        workers=config.workers, engine=config.engine,
    )


def relative_error(value, reference):
    if reference == 0:
        return abs(value)
    return abs(value - reference) / abs(reference)


def compare_backends(names, particle_count, step_count, layout="lattice", **kwargs):
    """Run the same configuration on each backend; errors are relative to the first one."""
    results = [run(name, particle_count, step_count, layout=layout, **kwargs) for name in names]
    reference = results[0].checksum
    return [(r, relative_error(r.checksum, reference)) for r in results]


def main(argv=None):
    parser = argparse.ArgumentParser(description="N-Body Cross-Backend Benchmark")
    parser.add_argument("-n", "--num-particles", type=int, default=DEFAULT_PARTICLES, help="Number of particles")
    parser.add_argument("-s", "--steps", type=int, default=DEFAULT_STEPS, help="Number of steps per run")
    parser.add_argument("-b", "--backend", type=str, choices=list(BACKEND_NAMES) + ["all"], default="sequential", help="Backend to run (sequential, parallel, accelerator or all)")
    parser.add_argument("-l", "--layout", type=str, choices=LAYOUTS, default="uniform", help="Initial particle layout")
    parser.add_argument("-w", "--workers", type=int, default=None, help="Worker threads for the parallel backend (default: all cores)")
    parser.add_argument("-e", "--engine", type=str, choices=ENGINE_NAMES, default="numba", help="Device library for the accelerator backend")
    parser.add_argument("--progress-interval", type=int, default=PROGRESS_INTERVAL, help="Print a progress mark every k steps")
    args = parser.parse_args(argv)

    backends = BACKEND_NAMES if args.backend == "all" else [args.backend]
    results = []
    try:
        for name in backends:
            args.backend = name
            config = RunConfig.from_args(args)
            print_banner(name, config.particle_count, config.step_count)
            result = run_config(config, progress=print_progress)
            print_results(result)
            results.append(result)
            cleanup_gpu()
    except ConfigError as exc:
        parser.error(str(exc))
    except AcceleratorError as exc:
        print(f"\nERROR: accelerator run failed: {exc}", file=sys.stderr)
        return 1

    if len(results) > 1:
        reference = results[0]
        print(f"Checksums relative to {reference.backend}:")
        for r in results:
            print(f"  {r.backend:<12} {r.checksum:.6f}  (rel. error {relative_error(r.checksum, reference.checksum):.2e})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
