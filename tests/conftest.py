"""Pytest configuration and shared fixtures."""

import tempfile
from pathlib import Path

import numpy as np
import pandas as pd
import pytest


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def rng():
    """Seeded random generator."""
    return np.random.default_rng(42)


@pytest.fixture
def two_group_labels():
    """Grouping vector of 40 subjects in two interleaved groups of 20."""
    return np.tile([1, 2], 20)


@pytest.fixture
def three_group_labels():
    """Grouping vector of 36 subjects in three groups of 12 with non-contiguous IDs."""
    return np.repeat([2, 5, 9], 12)


@pytest.fixture
def sample_data(two_group_labels):
    """
    Imaging and behavioral data with one strong brain-behavior association.

    The first three imaging variables are driven by the first behavioral
    variable; everything else is independent noise.
    """
    gen = np.random.default_rng(0)
    n_subjects = two_group_labels.size

    behav = gen.normal(size=(n_subjects, 3))
    brain = gen.normal(size=(n_subjects, 10))
    brain[:, :3] = behav[:, [0]] + 0.5 * gen.normal(size=(n_subjects, 3))

    brain_df = pd.DataFrame(brain, columns=[f"roi{i + 1}" for i in range(10)])
    behav_df = pd.DataFrame(behav, columns=["memory", "attention", "speed"])
    return brain_df, behav_df, two_group_labels


@pytest.fixture
def fast_config():
    """Small number of draws, fixed seed, quiet logging."""
    return {
        "normalization": {"img": 1, "behav": 1},
        "permutation": {"n_permutations": 200},
        "bootstrap": {"n_bootstraps": 200},
        "random_state": 0,
        "verbose": 0,
    }
