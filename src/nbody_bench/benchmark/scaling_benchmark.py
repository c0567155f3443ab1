import sys
import argparse

from nbody_bench.benchmark.harness import run
from nbody_bench.benchmark.util import cleanup_gpu, store_results, plot_results, create_report, print_results
from nbody_bench.config import BACKEND_NAMES, ENGINE_NAMES, LAYOUTS, DEFAULT_STEPS
from nbody_bench.errors import AcceleratorError


def particle_counts(n_start, n_end):
    """n_i = (4 * i)^2 for i in (n_start, ..., n_end)"""
    return [(4 * i)**2 for i in range(n_start, n_end + 1)]


def run_scaling_benchmark(backend, n_particles, steps, max_wait_time=180.0, **kwargs):
    """
    Runs `backend` for every particle count in `n_particles`. Larger sizes are
    skipped once a single step takes longer than `max_wait_time` seconds.
    """
    results = []

    for n in n_particles:
        result = run(backend, n, steps, **kwargs)
        print_results(result)
        results.append(result)

        # If the current time a step takes is too long already, do not run
        # any additional benchmarks with even larger problem size.
        time_per_step = result.elapsed_seconds / steps if steps else 0.0
        if time_per_step > max_wait_time:
            print(f"Step time is on average {time_per_step:.2f}, which is longer than the maximum waiting time {max_wait_time:.2f}.\n")
            print("Ending the scaling benchmark now.")
            break

        cleanup_gpu()

    return results


def main(argv=None):
    parser = argparse.ArgumentParser(description="N-Body Scaling Benchmark")
    parser.add_argument("--n-start", type=int, default=4, help="The number of particles are calculated like: `n_i = (4 * i)^2 for i in (n_start, ..., n_end)`.")
    parser.add_argument("--n-end", type=int, default=32, help="The number of particles are calculated like: `n_i = (4 * i)^2 for i in (n_start, ..., n_end)`.")
    parser.add_argument("-s", "--steps", type=int, default=DEFAULT_STEPS, help="Number of steps per run")
    parser.add_argument("-b", "--backend", type=str, choices=list(BACKEND_NAMES) + ["all"], default="sequential", help="Backend to run (sequential, parallel, accelerator or all)")
    parser.add_argument("-l", "--layout", type=str, choices=LAYOUTS, default="uniform", help="Initial particle layout")
    parser.add_argument("-e", "--engine", type=str, choices=ENGINE_NAMES, default="numba", help="Device library for the accelerator backend")
    parser.add_argument("--max-wait-time", type=float, default=180.0, help="Stop once one step takes longer than this many seconds")
    parser.add_argument("--store-results", action="store_true", help="Store the results.")
    parser.add_argument("--store-plot", action="store_true", help="Store the performance plot.")
    args = parser.parse_args(argv)

    print("START SCALING BENCHMARK")
    print("-" * 40 + "\n" + "-" * 40 + "\n")

    n_particles = particle_counts(args.n_start, args.n_end)
    backends = BACKEND_NAMES if args.backend == "all" else [args.backend]

    for backend in backends:
        print(f"Measure {backend.capitalize()}...")
        try:
            results = run_scaling_benchmark(backend, n_particles, args.steps, max_wait_time=args.max_wait_time,
                                            layout=args.layout, engine=args.engine)
        except AcceleratorError as exc:
            print(f"Skipping {backend}: {exc}", file=sys.stderr)
            print("-" * 20)
            continue

        if args.store_results or args.store_plot:
            report_folder = create_report(backend)
        if args.store_results:
            store_results(report_folder, results)
        if args.store_plot:
            plot_results(backend, [r.particle_count for r in results], [r.throughput for r in results], report_folder)

        cleanup_gpu()
        print("-" * 20 + "\n")

    print("END SCALING BENCHMARK")
    print("-" * 40 + "\n" + "-" * 40 + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
