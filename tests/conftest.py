"""Shared fixtures for the stippling tests."""

import numpy as np
import pytest

from jfa import init_taichi
from density import DensityField


@pytest.fixture(scope="session", autouse=True)
def taichi_runtime():
    """One CPU Taichi runtime for the whole session."""
    init_taichi("cpu")


@pytest.fixture
def uniform_density():
    """16×16 field with every component at 1.0."""
    return DensityField.from_array(np.ones((16, 16, 3)), name="uniform")


@pytest.fixture
def gradient_density():
    """16×16 field ramping from 0.1 to 1.0 along x in every component."""
    ramp = np.linspace(0.1, 1.0, 16)
    samples = np.repeat(np.tile(ramp[:, None], (1, 16))[:, :, None], 3, axis=2)
    return DensityField.from_array(samples, name="gradient")
