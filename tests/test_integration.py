"""Integration tests for the full pipeline."""

import warnings

import numpy as np
import pandas as pd
import pytest

from plscraft import PLSPipeline, PLSResults, run_pls_analysis
from plscraft.config import Config
from plscraft.core.dataset import PLSInput
from plscraft.exceptions import (
    DegenerateColumnWarning,
    DimensionMismatchError,
    InvalidConfigurationError,
    PLSWarning,
    UnsupportedGroupCountError,
)


class TestPLSInput:
    """Tests for input validation."""

    def test_names_from_dataframes(self, sample_data):
        """Test that DataFrame columns become variable names."""
        brain, behav, labels = sample_data
        dataset = PLSInput.create(brain, behav, labels)

        assert dataset.img_names[0] == "roi1"
        assert dataset.behav_names == ["memory", "attention", "speed"]
        assert dataset.group_names == ["1", "2"]
        assert dataset.n_subjects == 40

    def test_default_names(self, rng):
        """Test generated names for plain arrays."""
        dataset = PLSInput.create(rng.normal(size=(6, 2)), rng.normal(size=6), ["a", "b"] * 3)

        assert dataset.img_names == ["img1", "img2"]
        assert dataset.behav_names == ["behav1"]
        assert dataset.group_names == ["a", "b"]
        assert dataset.behav_data.shape == (6, 1)

    def test_subject_mismatch(self, rng):
        """Test that all inputs must describe the same subjects."""
        with pytest.raises(DimensionMismatchError):
            PLSInput.create(rng.normal(size=(6, 2)), rng.normal(size=(5, 1)), [1] * 6)

    def test_non_finite_values(self, rng):
        """Test that missing values are rejected."""
        brain = rng.normal(size=(6, 2))
        brain[2, 1] = np.nan

        with pytest.raises(ValueError, match="brain_data"):
            PLSInput.create(brain, rng.normal(size=(6, 1)), [1] * 6)


class TestPipelineIntegration:
    """Integration tests for PLSPipeline."""

    def test_pipeline_init(self):
        """Test pipeline initialization from every config source."""
        assert PLSPipeline().config.get("behav_type") == "behavior"
        assert PLSPipeline({"alpha": 0.01, "verbose": 0}).config.get("alpha") == 0.01
        assert PLSPipeline(Config(verbose=0)).config.get("verbose") == 0

    def test_pipeline_from_file(self, temp_dir):
        """Test pipeline initialization from a configuration file."""
        path = temp_dir / "config.yaml"
        Config(behav_type="contrast", normalization={"behav": 1}, verbose=0).save_to_file(path)

        assert PLSPipeline(path).config.get("behav_type") == "contrast"

    def test_behavior_analysis(self, sample_data, fast_config):
        """Test that the planted brain-behavior association is found and stable."""
        brain, behav, labels = sample_data
        results = PLSPipeline(fast_config).run(brain, behav, labels)

        assert isinstance(results, PLSResults)
        assert results.n_components == 3
        assert results.U.shape == (3, 3)
        assert results.V.shape == (10, 3)
        assert results.p_values[0] < 0.05
        assert results.significant_components()[0] == 1

        loadings = results.loadings_table("img", component=1)
        assert list(loadings.index[:3]) == ["roi1", "roi2", "roi3"]
        top = loadings["loading"].abs()
        assert top.idxmax() in {"roi1", "roi2", "roi3"}
        assert top.iloc[:3].min() > top.iloc[3:].max()
        assert loadings["stable"].iloc[:3].all()

        behav_table = results.loadings_table("behav", component=1)
        assert behav_table["loading"].abs().idxmax() == "memory"

    def test_reproducible(self, sample_data, fast_config):
        """Test that a fixed seed reproduces the analysis, whatever the workers."""
        brain, behav, labels = sample_data
        first = PLSPipeline(fast_config).run(brain, behav, labels)
        second = PLSPipeline(dict(fast_config, n_jobs=2)).run(brain, behav, labels)

        np.testing.assert_array_equal(first.p_values, second.p_values)
        np.testing.assert_allclose(first.bootstrap.V.mean, second.bootstrap.V.mean)

    def test_grouped_pls(self, sample_data, fast_config):
        """Test the group-stacked analysis."""
        brain, behav, labels = sample_data
        config = dict(fast_config, grouped_pls=True, bootstrap={"n_bootstraps": 50, "grouped": True})
        results = PLSPipeline(config).run(brain, behav, labels, group_names=["young", "old"])

        assert results.R.shape == (6, 10)
        assert results.U.shape == (6, 6)
        assert results.design_row_names[3] == "memory (old)"
        assert results.loadings_table("behav").shape[0] == 6

    def test_contrast_analysis(self, rng, two_group_labels, fast_config):
        """Test a two-group contrast design."""
        brain = rng.normal(size=(40, 6))
        brain[two_group_labels == 2, 0] += 2.0
        behav = rng.normal(size=(40, 1))
        config = dict(fast_config, behav_type="contrast")

        results = run_pls_analysis(brain, behav, two_group_labels, config=config, group_names=["ctrl", "pat"])

        assert results.design_names == ["contrast (pat > ctrl)"]
        assert results.n_components == 1
        assert results.p_values[0] < 0.05
        assert np.argmax(np.abs(results.V[:, 0])) == 0

    def test_contrast_with_default_normalization(self, rng, two_group_labels):
        """Test that a contrast design runs with within-group normalization and reports the zeroed column."""
        brain = rng.normal(size=(40, 6))
        brain[two_group_labels == 2, 0] += 2.0
        config = {
            "behav_type": "contrast",
            "permutation": {"n_permutations": 20},
            "bootstrap": {"n_bootstraps": 20},
            "random_state": 0,
            "verbose": 0,
        }

        with pytest.warns(DegenerateColumnWarning):
            results = run_pls_analysis(brain, rng.normal(size=(40, 1)), two_group_labels, config=config)

        assert results.n_components == 1
        assert "DegenerateColumnWarning" in {w["category"] for w in results.warnings}
        np.testing.assert_allclose(results.Y.data, 0, atol=1e-12)

    def test_interaction_analysis(self, rng, three_group_labels, fast_config):
        """Test the interaction design with three groups."""
        brain = rng.normal(size=(36, 5))
        behav = rng.normal(size=(36, 2))
        config = dict(fast_config, behav_type="contrastBehavInteract",
                      permutation={"n_permutations": 20}, bootstrap={"n_bootstraps": 20})

        results = run_pls_analysis(brain, behav, three_group_labels, config=config)

        assert results.Y0.shape == (36, 8)
        assert results.n_components == 5
        assert np.all((results.p_values > 0) & (results.p_values <= 1))

    def test_unsupported_group_count(self, rng, fast_config):
        """Test that contrast designs fail fast with four groups."""
        labels = np.repeat([1, 2, 3, 4], 5)
        config = dict(fast_config, behav_type="contrast")

        with pytest.raises(UnsupportedGroupCountError):
            run_pls_analysis(rng.normal(size=(20, 3)), rng.normal(size=(20, 1)), labels, config=config)

    def test_invalid_config(self, sample_data):
        """Test that invalid options are rejected before any computation."""
        brain, behav, labels = sample_data

        with pytest.raises(InvalidConfigurationError):
            run_pls_analysis(brain, behav, labels, config={"permutation": {"n_permutations": 0}})

    def test_degenerate_column(self, sample_data, fast_config):
        """Test that a constant imaging variable is reported but does not break the analysis."""
        brain, behav, labels = sample_data
        brain = brain.copy()
        brain["roi10"] = 1.0

        with pytest.warns(DegenerateColumnWarning):
            results = PLSPipeline(fast_config).run(brain, behav, labels)

        categories = {w["category"] for w in results.warnings}
        assert "DegenerateColumnWarning" in categories
        assert len(results.warnings) == len({(w["category"], w["message"]) for w in results.warnings})
        assert np.all(np.isfinite(results.p_values))
        assert np.isnan(results.scores.img_loadings[9, 0])
        assert "Warnings" in results.summary()

    def test_clean_run_has_no_warnings(self, sample_data, fast_config):
        """Test that well-conditioned data records no warnings."""
        brain, behav, labels = sample_data

        with warnings.catch_warnings():
            warnings.simplefilter("error", PLSWarning)
            results = PLSPipeline(fast_config).run(brain, behav, labels)

        assert results.warnings == []


class TestWithinGroupAssociation:
    """End-to-end analysis of an association present in one group only."""

    @pytest.fixture
    def scenario(self):
        """
        40 subjects in two groups of 20, 10 imaging and 3 behavioral variables.

        Imaging variable 1 correlates at r = 0.8 with behavioral variable 1
        inside group 1. In group 2 both vary independently with small spread
        around a shared mean of 1.0.

        Without the shared shift, pooled normalization dilutes the group 1
        association with 20 unrelated subjects and LC1 is not reliably
        significant (p between 0.07 and 0.37 across seeds at 500
        permutations). The shift moves both variables together between the
        groups and adds a between-group component to the same association.
        """
        gen = np.random.default_rng(2024)
        labels = np.repeat([1, 2], 20)
        brain = gen.normal(size=(40, 10))
        behav = gen.normal(size=(40, 3))

        b1 = behav[:20, 0] - behav[:20, 0].mean()
        noise = gen.normal(size=20)
        noise -= noise.mean()
        noise -= (noise @ b1) / (b1 @ b1) * b1
        brain[:20, 0] = 0.8 * b1 / b1.std() + 0.6 * noise / noise.std()
        behav[:20, 0] = b1

        behav[20:, 0] = 1.0 + 0.1 * gen.normal(size=20)
        brain[20:, 0] = 1.0 + 0.1 * gen.normal(size=20)
        return brain, behav, labels

    def test_association_is_found(self, scenario):
        """Test significance, loading structure and bootstrap stability of LC1."""
        brain, behav, labels = scenario
        config = {
            "behav_type": "behavior",
            "grouped_pls": False,
            "normalization": {"img": 1, "behav": 1},
            "permutation": {"n_permutations": 500},
            "bootstrap": {"n_bootstraps": 500},
            "random_state": 11,
            "verbose": 0,
        }
        results = run_pls_analysis(brain, behav, labels, config=config)

        np.testing.assert_allclose(np.corrcoef(brain[:20, 0], behav[:20, 0])[0, 1], 0.8)
        assert results.p_values[0] < 0.05

        loadings = results.loadings_table("img", component=1)
        assert loadings["loading"].abs().idxmax() == "img1"
        assert loadings.loc["img1", "ci_lower"] > 0 or loadings.loc["img1", "ci_upper"] < 0


class TestPLSResults:
    """Tests for the result bundle."""

    @pytest.fixture
    def results(self, sample_data, fast_config):
        brain, behav, labels = sample_data
        config = dict(fast_config, bootstrap={"n_bootstraps": 30, "save_resampling": True})
        return run_pls_analysis(brain, behav, labels, config=config)

    def test_component_table(self, results):
        """Test the per-component table."""
        table = results.component_table()

        assert isinstance(table, pd.DataFrame)
        assert list(table.index) == ["LC1", "LC2", "LC3"]
        np.testing.assert_allclose(table["explained_covariance"].sum(), 1)
        assert table.loc["LC1", "significant"]

    def test_latent_components(self, results):
        """Test the per-component view."""
        lcs = results.latent_components()

        assert [lc.index for lc in lcs] == [1, 2, 3]
        np.testing.assert_array_equal(lcs[0].img_saliences, results.V[:, 0])
        assert lcs[0].significant

    def test_loadings_table_errors(self, results):
        """Test that unknown components and kinds are rejected."""
        with pytest.raises(KeyError):
            results.loadings_table("img", component=4)
        with pytest.raises(KeyError):
            results.loadings_table("brain")

    def test_to_dict(self, results):
        """Test the plain dictionary representation."""
        out = results.to_dict()

        for key in ("X0", "Y0", "X", "Y", "R", "U", "S", "V", "explCovLC", "LC_pvals", "Lx", "Ly",
                    "LC_img_loadings", "LC_behav_loadings", "meanX0", "stdY0", "boot_results"):
            assert key in out
        assert out["S"].shape == (3, 3)
        assert out["meanX0"].shape == (1, 10)
        boot = out["boot_results"]
        assert boot["n_bootstraps"] == 30
        assert boot["V_samples"].shape == (10, 3, 30)
        assert boot["resampling_orders"].shape == (40, 30)
        assert boot["V_ratio"].shape == (10, 3)
        assert boot["img_cross_loadings_mean"].shape == (10, 3)
        assert boot["behav_cross_loadings_samples"].shape == (3, 3, 30)

    def test_summary(self, results):
        """Test summary generation."""
        summary = results.summary()

        assert "PLS Analysis Results" in summary
        assert "LC1" in summary
        assert "40 subjects" in summary
