import csv
import gc
import sys
import matplotlib.pyplot as plt

from datetime import datetime
from pathlib import Path

CSV_HEADER = ["Backend", "N", "Steps", "Total_Time", "GInteractions_Per_Sec", "Checksum"]


def print_banner(backend, particle_count, step_count):
    print(f"=== N-BODY BENCHMARK ({backend}) ===")
    print(f"Particles: {particle_count}")
    print(f"Steps:     {step_count}")


def print_progress(step, steps):
    print(".", end="", flush=True)


def print_results(result):
    print()
    print("-" * 30)
    print(f"Hardware:                 {result.hardware}")
    print(f"Total Runtime:            {result.elapsed_seconds:.4f} seconds")
    print(f"Performance Interactions: {result.throughput:.2f} G-interactions/second")
    print(f"Check (Pos X[0]):         {result.checksum:.4f}")
    print("-" * 30, "\n")


def cleanup_gpu():
    """Frees cached device memory between benchmarks so every run starts from the same state."""
    # CuPy is optional; only touch its pools if an engine already imported it
    cp = sys.modules.get("cupy")
    if cp is not None:
        cp.get_default_memory_pool().free_all_blocks()
        cp.get_default_pinned_memory_pool().free_all_blocks()

    gc.collect()


def create_report(method, report_base_dir="scaling_reports"):
    """
    Creates a timestamped folder for the benchmark data using Pathlib.
    """
    timestamp = datetime.now().strftime("%Y%m%d_%H%M")
    report_folder = Path(report_base_dir) / f"{method}_{timestamp}"

    # mkdir -p: parents=True ensures the base directory is created if it doesn't exist
    report_folder.mkdir(parents=True, exist_ok=True)

    return report_folder


def store_results(report_folder, results):
    file_path = Path(report_folder) / "scaling_results.csv"
    with file_path.open(mode='w', newline='') as f:
        writer = csv.writer(f)
        writer.writerow(CSV_HEADER)
        for r in results:
            writer.writerow([r.backend, r.particle_count, r.step_count, r.elapsed_seconds, r.throughput, r.checksum])
    print(f"\n[✔] Benchmark data saved to: {file_path.resolve()}")

    return file_path


def plot_results(method, n_values, throughput_values, report_folder):
    """
    Plots N vs G-interactions per second.
    """
    fig = plt.figure(figsize=(10, 6))

    plt.plot(n_values, throughput_values, marker='o', linestyle='-', color='b', label=f'{method}')

    plt.title('N-Body Benchmark Throughput: Scaling with N', fontsize=14)
    plt.xlabel('Number of Particles (N)', fontsize=12)
    plt.ylabel('G-Interactions per Second', fontsize=12)
    plt.grid(True, which="both", ls="--", alpha=0.5)
    plt.legend()

    img_path = Path(report_folder) / f'nbody_scaling_{method}.png'
    plt.savefig(img_path)
    plt.close(fig)
    print(f"\nPlot saved to {img_path}")

    return img_path
