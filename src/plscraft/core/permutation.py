"""
Permutation testing of latent components.

Rows of the design matrix are permuted (optionally within groups), the
decomposition is recomputed and the permuted singular values form a null
distribution for each latent component.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Union

import numpy as np

from plscraft.core.covariance import cross_covariance
from plscraft.core.decomposition import Decomposition, decompose
from plscraft.core.grouping import GroupPartition, as_partition
from plscraft.core.parallel import RandomState, run_draws, spawn_seeds
from plscraft.exceptions import DimensionMismatchError, InvalidConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PermutationResults:
    """
    Outcome of the permutation test.

    Attributes
    ----------
    null_distribution : np.ndarray
        L x n_perms singular values of the permuted decompositions.
    p_values : np.ndarray
        One-sided p-value per latent component.
    n_perms : int
        Number of permutations.
    """

    null_distribution: np.ndarray
    p_values: np.ndarray
    n_perms: int


class PermutationTester:
    """
    Permutation test on the singular values of the cross-covariance matrix.

    Parameters
    ----------
    n_perms : int
        Number of permutations. Default: 1000.
    grouped_perm : bool
        Permute subjects within each group instead of across all subjects.
    grouped_pls : bool
        Recompute the group-stacked covariance on every permutation.
    n_jobs : int
        Number of worker threads.
    random_state : int or SeedSequence, optional
        Seed for reproducible permutations.
    """

    def __init__(
        self,
        n_perms: int = 1000,
        grouped_perm: bool = False,
        grouped_pls: bool = False,
        n_jobs: int = 1,
        random_state: RandomState = None,
    ):
        if isinstance(n_perms, bool) or not isinstance(n_perms, (int, np.integer)) or n_perms < 1:
            raise InvalidConfigurationError(f"Number of permutations must be a positive integer, got {n_perms!r}")

        self.n_perms = int(n_perms)
        self.grouped_perm = grouped_perm
        self.grouped_pls = grouped_pls
        self.n_jobs = n_jobs
        self.random_state = random_state
        self.results: Optional[PermutationResults] = None

    def run(
        self,
        X: np.ndarray,
        Y: np.ndarray,
        observed: Decomposition,
        grouping: Union[GroupPartition, Sequence[Any]],
    ) -> PermutationResults:
        """
        Build the null distribution and component-wise p-values.

        Parameters
        ----------
        X : np.ndarray
            N x M normalized imaging data.
        Y : np.ndarray
            N x D normalized design data (the rows that get permuted).
        observed : Decomposition
            Decomposition of the unpermuted data.
        grouping : GroupPartition or sequence
            Group label per subject.

        Returns
        -------
        PermutationResults
            Null distribution and p-values.
        """
        partition = as_partition(grouping)
        if X.shape[0] != Y.shape[0] or partition.n_subjects != X.shape[0]:
            raise DimensionMismatchError(
                f"Subject counts differ: X has {X.shape[0]}, Y has {Y.shape[0]}, "
                f"grouping has {partition.n_subjects}"
            )
        perm_partition = partition.for_policy(self.grouped_perm)
        n_components = observed.n_components

        logger.info(
            f"Running permutation test with {self.n_perms} permutations "
            f"({'within groups' if self.grouped_perm else 'across all subjects'})"
        )

        def draw(rng: np.random.Generator) -> np.ndarray:
            Yp = permute_rows(Y, perm_partition, rng)
            Rp = cross_covariance(X, Yp, partition, grouped=self.grouped_pls)
            s = decompose(Rp).singular_values
            if s.size != n_components:
                raise DimensionMismatchError(
                    f"Permuted decomposition has {s.size} components, expected {n_components}"
                )
            return s

        draws = run_draws(draw, spawn_seeds(self.random_state, self.n_perms), n_jobs=self.n_jobs)
        null_distribution = np.column_stack(draws)
        p_values = permutation_pvalues(null_distribution, observed.singular_values)

        self.results = PermutationResults(
            null_distribution=null_distribution,
            p_values=p_values,
            n_perms=self.n_perms,
        )
        logger.info(f"Permutation p-values: {np.array2string(p_values, precision=4)}")
        return self.results

    def summary(self) -> str:
        """
        Get a text summary of the permutation test.

        Returns
        -------
        str
            Summary text.
        """
        lines = ["Permutation Test", "=" * 40]
        lines.append(f"Permutations: {self.n_perms} ({'grouped' if self.grouped_perm else 'ungrouped'})")
        if self.results is not None:
            for i, p in enumerate(self.results.p_values, start=1):
                lines.append(f"  LC{i}: p = {p:.4f}")
        return "\n".join(lines)


def permute_rows(
    Y: np.ndarray,
    grouping: Union[GroupPartition, Sequence[Any]],
    rng: np.random.Generator,
) -> np.ndarray:
    """
    Shuffle the rows of Y independently within each group.

    With a pooled partition this is a single permutation of all rows. Group
    sizes and the rows occupied by each group are preserved.
    """
    partition = as_partition(grouping)
    Yp = np.empty_like(Y)
    for idx in partition.values():
        Yp[idx] = Y[idx[rng.permutation(idx.size)]]
    return Yp


def permutation_pvalues(null_distribution: np.ndarray, observed: np.ndarray) -> np.ndarray:
    """
    Upper-tail p-values with the +1 correction.

    ``p_l = (#{perm s_l >= observed s_l} + 1) / (n_perms + 1)``, comparing
    components by position.
    """
    null_distribution = np.atleast_2d(null_distribution)
    n_perms = null_distribution.shape[1]
    exceed = np.sum(null_distribution >= np.asarray(observed)[:, np.newaxis], axis=1)
    return (exceed + 1) / (n_perms + 1)
