"""
Force Kernel
============
One particle's update from the complete prior-step state:

    force = sum_j (pos_j - pos_i) / (|pos_j - pos_i|^2 + EPS)^1.5 * K
    vel'  = vel + force
    pos'  = pos + vel'

The sum runs over every j including i itself. The self term is a zero vector
but is kept so that every backend executes exactly the same operations.

The same Python body is compiled twice: with `njit` for the host backends and
as a `numba.cuda` device function for the accelerator. A CUDA C rendition of
the identical operation order is provided for the CuPy engine.
All arithmetic is float32 and the kernels are compiled without fastmath, so
both host backends execute the identical instruction sequence.
"""

import math
import numpy as np
from numba import njit, prange, cuda

# Constants (float32 so that no operation is promoted to float64)
SOFTENING = np.float32(0.01)
SCALE = np.float32(0.0001)


def _advance(source, destination, i):
    n = source.shape[0]
    px = source[i, 0]
    py = source[i, 1]
    fx = np.float32(0.0)
    fy = np.float32(0.0)

    for j in range(n):
        dx = source[j, 0] - px
        dy = source[j, 1] - py
        dist_sq = dx * dx + dy * dy + SOFTENING
        dist = math.sqrt(dist_sq)
        denom = dist_sq * dist
        fx += dx / denom * SCALE
        fy += dy / denom * SCALE

    # Semi-implicit Euler: velocity first, then position with the new velocity
    vx = source[i, 2] + fx
    vy = source[i, 3] + fy
    destination[i, 0] = px + vx
    destination[i, 1] = py + vy
    destination[i, 2] = vx
    destination[i, 3] = vy


# --- CPU KERNELS ---
advance_particle = njit(nogil=True)(_advance)


@njit(nogil=True)
def advance_range(source, destination, start, stop):
    """Apply the force kernel to every index in [start, stop). Releases the GIL."""
    for i in range(start, stop):
        advance_particle(source, destination, i)


@njit(parallel=True)
def advance_range_parallel(source, destination, start, stop):
    """Same sweep as `advance_range`, spread over the numba thread pool (prange)."""
    for i in prange(start, stop):
        advance_particle(source, destination, i)


# --- GPU KERNELS ---
advance_particle_device = cuda.jit(device=True)(_advance)


@cuda.jit
def advance_kernel(source, destination, start, stop):
    """One work-item per particle index; the tail of the last workgroup returns early."""
    i = start + cuda.grid(1)
    if i >= stop:
        return
    advance_particle_device(source, destination, i)


# CUDA C for the CuPy engine. N and the workgroup size are written into the
# source so that the loop bound always matches the allocation it was built for.
_CUDA_SOURCE = r'''
extern "C" __global__ __launch_bounds__({workgroup_size})
void advance_particles(const float* source, float* destination, const int start, const int stop) {{

    const int i = start + blockIdx.x * blockDim.x + threadIdx.x;
    if (i >= stop) {{
        return;
    }}

    const float px = source[i * 4 + 0];
    const float py = source[i * 4 + 1];
    float fx = 0.0f;
    float fy = 0.0f;

    for (int j = 0; j < {particle_count}; j++) {{
        const float dx = source[j * 4 + 0] - px;
        const float dy = source[j * 4 + 1] - py;
        const float dist_sq = dx * dx + dy * dy + {softening:.9g}f;
        const float dist = sqrtf(dist_sq);
        const float denom = dist_sq * dist;
        fx += dx / denom * {scale:.9g}f;
        fy += dy / denom * {scale:.9g}f;
    }}

    const float vx = source[i * 4 + 2] + fx;
    const float vy = source[i * 4 + 3] + fy;
    destination[i * 4 + 0] = px + vx;
    destination[i * 4 + 1] = py + vy;
    destination[i * 4 + 2] = vx;
    destination[i * 4 + 3] = vy;
}}
'''

CUDA_KERNEL_NAME = "advance_particles"


def cuda_source(particle_count, workgroup_size):
    return _CUDA_SOURCE.format(
        particle_count=particle_count,
        workgroup_size=workgroup_size,
        softening=float(SOFTENING),
        scale=float(SCALE),
    )
