import numbers
from dataclasses import dataclass

from nbody_bench.errors import ConfigError

# Reference benchmark size
DEFAULT_PARTICLES = 16384
DEFAULT_STEPS = 50

# Work-items per workgroup on the accelerator
WORKGROUP_SIZE = 64

# Largest single storage buffer the accelerator may allocate (128 MiB)
MAX_BUFFER_BYTES = 128 * 1024 * 1024

# Print a progress mark every PROGRESS_INTERVAL steps
PROGRESS_INTERVAL = 5

BACKEND_NAMES = ("sequential", "parallel", "accelerator")
ENGINE_NAMES = ("numba", "cupy")
LAYOUTS = ("uniform", "lattice")


def _is_count(value):
    # bool is an int subclass but never a valid count
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


def validate_counts(particle_count, step_count):
    if not _is_count(particle_count) or particle_count < 1:
        raise ConfigError(f"particle_count must be a positive integer, got {particle_count!r}")
    if not _is_count(step_count) or step_count < 0:
        raise ConfigError(f"step_count must be a non-negative integer, got {step_count!r}")


@dataclass
class RunConfig:
    backend: str = "sequential"
    particle_count: int = DEFAULT_PARTICLES
    step_count: int = DEFAULT_STEPS
    layout: str = "uniform"
    progress_interval: int = PROGRESS_INTERVAL
    workers: int = None
    engine: str = "numba"

    def __post_init__(self):
        self.validate()

    def validate(self):
        validate_counts(self.particle_count, self.step_count)
        if self.backend not in BACKEND_NAMES:
            raise ConfigError(f"Unknown backend '{self.backend}', expected one of {BACKEND_NAMES}")
        if self.engine not in ENGINE_NAMES:
            raise ConfigError(f"Unknown engine '{self.engine}', expected one of {ENGINE_NAMES}")
        if self.layout not in LAYOUTS:
            raise ConfigError(f"Unknown layout '{self.layout}', expected one of {LAYOUTS}")
        if not isinstance(self.progress_interval, int) or self.progress_interval < 1:
            raise ConfigError(f"progress_interval must be a positive integer, got {self.progress_interval!r}")
        if self.workers is not None and (not isinstance(self.workers, int) or self.workers < 1):
            raise ConfigError(f"workers must be a positive integer, got {self.workers!r}")

    @classmethod
    def from_args(cls, args):
        return cls(
            backend=args.backend,
            particle_count=args.num_particles,
            step_count=args.steps,
            layout=args.layout,
            progress_interval=args.progress_interval,
            workers=args.workers,
            engine=args.engine,
        )
