"""
Main pipeline module for PLSCraft.

This module provides a high-level interface for running a complete
Partial Least Squares Correlation analysis in one call.
"""

import logging
import warnings
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np

from plscraft.config import Config, load_config
from plscraft.core.bootstrap import BootstrapEstimator
from plscraft.core.covariance import cross_covariance
from plscraft.core.dataset import PLSInput
from plscraft.core.decomposition import decompose
from plscraft.core.design_matrix import DesignMatrixBuilder
from plscraft.core.normalization import normalize
from plscraft.core.permutation import PermutationTester
from plscraft.core.scores import project_scores
from plscraft.exceptions import PLSWarning
from plscraft.results import PLSResults

logger = logging.getLogger(__name__)


class PLSPipeline:
    """
    High-level pipeline for PLS correlation analysis.

    This class orchestrates the complete analysis workflow:
    1. Input validation
    2. Design matrix construction
    3. Normalization of imaging and design data
    4. Cross-covariance and SVD
    5. Scores and loadings
    6. Permutation test of latent components
    7. Bootstrap stability of saliences, scores and loadings

    Parameters
    ----------
    config : Config, str, Path, or dict, optional
        Configuration (Config object, path to config file, or dict).

    Attributes
    ----------
    config : Config
        Configuration object.
    design_matrix_builder : DesignMatrixBuilder or None
        Design builder of the last run.
    permutation_tester : PermutationTester or None
        Permutation tester of the last run.
    bootstrap_estimator : BootstrapEstimator or None
        Bootstrap estimator of the last run.
    results : PLSResults or None
        Results of the last run.
    """

    def __init__(
        self,
        config: Optional[Union[Config, str, Path, Dict]] = None,
    ):
        if config is None:
            self.config = Config()
        elif isinstance(config, Config):
            self.config = config
        elif isinstance(config, dict):
            self.config = Config(**config)
        else:
            self.config = load_config(config)

        self._setup_logging()

        self.design_matrix_builder: Optional[DesignMatrixBuilder] = None
        self.permutation_tester: Optional[PermutationTester] = None
        self.bootstrap_estimator: Optional[BootstrapEstimator] = None
        self.results: Optional[PLSResults] = None

    def _setup_logging(self) -> None:
        """Configure logging based on verbosity setting."""
        verbose = self.config.get("verbose", 1)

        if verbose == 0:
            level = logging.WARNING
        elif verbose == 1:
            level = logging.INFO
        else:
            level = logging.DEBUG

        logging.basicConfig(
            level=level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )
        logging.getLogger("plscraft").setLevel(level)

    def run(
        self,
        brain_data: Any,
        behav_data: Any,
        grouping: Sequence[Any],
        group_names: Optional[Sequence[str]] = None,
        behav_names: Optional[Sequence[str]] = None,
        img_names: Optional[Sequence[str]] = None,
    ) -> PLSResults:
        """
        Run the complete analysis.

        Parameters
        ----------
        brain_data : array-like or pd.DataFrame
            N x M imaging data.
        behav_data : array-like or pd.DataFrame
            N x B behavioral data.
        grouping : sequence
            Group label per subject.
        group_names, behav_names, img_names : sequence of str, optional
            Names of groups, behavioral and imaging variables.

        Returns
        -------
        PLSResults
            All results of the analysis.
        """
        logger.info("Starting PLS analysis...")

        # Fail fast on inputs and options before any expensive computation
        dataset = PLSInput.create(
            brain_data, behav_data, grouping,
            group_names=group_names, behav_names=behav_names, img_names=img_names,
        )
        logger.info(f"Input data: {dataset.describe()}")

        cfg = self.config
        grouped_pls = bool(cfg.get("grouped_pls"))
        norm_img = cfg.get("normalization.img")
        norm_behav = cfg.get("normalization.behav")
        n_jobs = cfg.get("n_jobs", 1)
        perm_seed, boot_seed = np.random.SeedSequence(cfg.get("random_state")).spawn(2)

        self.permutation_tester = PermutationTester(
            n_perms=cfg.get("permutation.n_permutations"),
            grouped_perm=bool(cfg.get("permutation.grouped")),
            grouped_pls=grouped_pls,
            n_jobs=n_jobs,
            random_state=perm_seed,
        )
        self.bootstrap_estimator = BootstrapEstimator(
            n_bootstraps=cfg.get("bootstrap.n_bootstraps"),
            grouped_boot=bool(cfg.get("bootstrap.grouped")),
            grouped_pls=grouped_pls,
            procrustes_mode=cfg.get("bootstrap.procrustes_mode"),
            normalization_img=norm_img,
            normalization_behav=norm_behav,
            save_resampling=bool(cfg.get("bootstrap.save_resampling")),
            n_jobs=n_jobs,
            random_state=boot_seed,
        )

        partition = dataset.partition
        self.design_matrix_builder = DesignMatrixBuilder(
            dataset.behav_data, partition,
            group_names=dataset.group_names, behav_names=dataset.behav_names,
        )

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always", PLSWarning)

            Y0 = self.design_matrix_builder.build(cfg.get("behav_type"))

            X = normalize(dataset.brain_data, partition, norm_img, name="imaging data")
            Y = normalize(Y0.to_numpy(), partition, norm_behav, name="design data")

            R = cross_covariance(X.data, Y.data, partition, grouped=grouped_pls)
            decomposition = decompose(R)
            logger.info(
                f"Cross-covariance matrix {R.shape}: {decomposition.n_components} latent components"
            )

            scores = project_scores(X.data, Y.data, decomposition.U, decomposition.V, partition, grouped=grouped_pls)
            permutation = self.permutation_tester.run(X.data, Y.data, decomposition, partition)
            bootstrap = self.bootstrap_estimator.run(dataset.brain_data, Y0.to_numpy(), decomposition, partition)

        recorded = _record_warnings(caught)

        self.results = PLSResults(
            input=dataset,
            config=cfg.to_dict(),
            Y0=Y0,
            X=X,
            Y=Y,
            R=R,
            decomposition=decomposition,
            scores=scores,
            permutation=permutation,
            bootstrap=bootstrap,
            warnings=recorded,
        )

        significant = self.results.significant_components()
        logger.info(
            f"Significant latent components (p < {self.results.alpha}): "
            f"{significant.tolist() if significant.size else 'none'}"
        )
        logger.info("PLS analysis complete")

        return self.results


def run_pls_analysis(
    brain_data: Any,
    behav_data: Any,
    grouping: Sequence[Any],
    config: Optional[Union[Config, str, Path, Dict]] = None,
    group_names: Optional[Sequence[str]] = None,
    behav_names: Optional[Sequence[str]] = None,
    img_names: Optional[Sequence[str]] = None,
) -> PLSResults:
    """
    Utility function to run a full PLS analysis in one call.

    Returns
    -------
    PLSResults
        All results of the analysis.
    """
    pipeline = PLSPipeline(config)
    return pipeline.run(
        brain_data, behav_data, grouping,
        group_names=group_names, behav_names=behav_names, img_names=img_names,
    )


def _record_warnings(caught: List[warnings.WarningMessage]) -> List[Dict[str, str]]:
    """De-duplicate caught warnings, log them and re-emit them to the caller."""
    recorded: List[Dict[str, str]] = []
    seen = set()
    for w in caught:
        key = (w.category.__name__, str(w.message))
        if key in seen:
            continue
        seen.add(key)
        recorded.append({"category": key[0], "message": key[1]})
        logger.warning(f"{key[0]}: {key[1]}")
        warnings.warn(w.message, w.category, stacklevel=3)
    return recorded
