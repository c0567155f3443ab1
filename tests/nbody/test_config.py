import argparse

import numpy as np
import pytest

from nbody_bench.config import RunConfig, validate_counts, DEFAULT_PARTICLES, DEFAULT_STEPS
from nbody_bench.errors import ConfigError


def test_defaults_are_the_reference_benchmark():
    config = RunConfig()
    assert config.particle_count == DEFAULT_PARTICLES == 16384
    assert config.step_count == DEFAULT_STEPS == 50
    assert config.backend == "sequential"
    assert config.layout == "uniform"


@pytest.mark.parametrize("kwargs", [
    {"backend": "gpu"},
    {"engine": "opencl"},
    {"layout": "random"},
    {"particle_count": 0},
    {"particle_count": False},
    {"step_count": -1},
    {"step_count": 1.0},
    {"progress_interval": 0},
    {"workers": 0},
])
def test_invalid_values_raise(kwargs):
    with pytest.raises(ConfigError):
        RunConfig(**kwargs)


def test_config_error_is_a_value_error():
    assert issubclass(ConfigError, ValueError)


def test_numpy_integers_accepted():
    validate_counts(np.int64(8), np.int32(0))


def test_from_args():
    args = argparse.Namespace(backend="parallel", num_particles=128, steps=0, layout="lattice",
                              progress_interval=2, workers=3, engine="numba")
    config = RunConfig.from_args(args)
    assert config == RunConfig("parallel", 128, 0, "lattice", 2, 3, "numba")
