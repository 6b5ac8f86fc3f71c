"""
Bootstrap estimation of salience, score and loading stability.

This module handles:
- Resampling subjects with replacement (optionally within groups)
- Procrustes alignment of bootstrap saliences to the observed orientation
- Mean, standard deviation and 95% confidence intervals of every statistic
"""

import logging
import warnings
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Optional, Sequence, Tuple, Union

import numpy as np
from scipy.linalg import svd

from plscraft.core.covariance import cross_covariance
from plscraft.core.decomposition import Decomposition, decompose
from plscraft.core.grouping import GroupPartition, as_partition
from plscraft.core.normalization import NormalizationMode, normalize
from plscraft.core.parallel import RandomState, run_draws, spawn_seeds
from plscraft.core.scores import PLSScores, project_scores
from plscraft.exceptions import (
    DegenerateResampleError,
    DegenerateResampleWarning,
    DimensionMismatchError,
    InvalidConfigurationError,
    InvalidModeError,
)

logger = logging.getLogger(__name__)

# Percentile bounds of the bootstrap confidence interval
CI_BOUNDS = (2.5, 97.5)


class ProcrustesMode(IntEnum):
    """How bootstrap saliences are rotated onto the observed ones."""

    STANDARD = 1
    AVERAGE = 2

    @classmethod
    def parse(cls, mode: Union[int, "ProcrustesMode"]) -> "ProcrustesMode":
        try:
            return cls(int(mode))
        except (TypeError, ValueError) as e:
            valid = [m.value for m in cls]
            raise InvalidModeError(f"Invalid Procrustes mode: {mode!r}. Must be one of {valid}") from e


def procrustes_rotation(original: np.ndarray, bootstrap: np.ndarray) -> np.ndarray:
    """
    Orthogonal rotation that best maps ``bootstrap`` onto ``original``.

    With ``original.T @ bootstrap = W @ diag(s) @ Z.T`` the rotation is
    ``Z @ W.T``, so that ``bootstrap @ rotation`` is the closest rotated
    version of ``bootstrap`` to ``original``.

    Parameters
    ----------
    original : np.ndarray
        K x L observed saliences.
    bootstrap : np.ndarray
        K x L bootstrap saliences.

    Returns
    -------
    np.ndarray
        L x L orthogonal matrix.
    """
    W, _, Zt = svd(original.T @ bootstrap)
    return Zt.T @ W.T


def average_rotation(first: np.ndarray, second: np.ndarray) -> np.ndarray:
    """
    Orthogonal matrix closest to the mean of two rotations.

    The arithmetic mean of two orthogonal matrices is not orthogonal; its
    polar factor (nearest orthogonal matrix in Frobenius norm) is returned.
    """
    P, _, Qt = svd((first + second) / 2.0)
    return P @ Qt


def align_saliences(
    U: np.ndarray,
    V: np.ndarray,
    Ub: np.ndarray,
    Vb: np.ndarray,
    mode: Union[int, ProcrustesMode] = ProcrustesMode.STANDARD,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Rotate bootstrap saliences onto the observed orientation.

    Parameters
    ----------
    U, V : np.ndarray
        Observed design and imaging saliences.
    Ub, Vb : np.ndarray
        Bootstrap design and imaging saliences.
    mode : int or ProcrustesMode
        1 = rotation derived from U only, 2 = average of the U- and V-derived rotations.

    Returns
    -------
    tuple of (np.ndarray, np.ndarray, np.ndarray)
        Rotated Ub, rotated Vb and the rotation matrix.
    """
    mode = ProcrustesMode.parse(mode)
    rotation = procrustes_rotation(U, Ub)
    if mode == ProcrustesMode.AVERAGE:
        rotation = average_rotation(rotation, procrustes_rotation(V, Vb))
    return Ub @ rotation, Vb @ rotation, rotation


def bootstrap_indices(
    grouping: Union[GroupPartition, Sequence[Any]],
    rng: np.random.Generator,
    grouped: bool = False,
) -> np.ndarray:
    """
    Draw subject indices with replacement.

    When ``grouped`` is true every group is resampled from its own members
    only, and the resampled subjects keep the row positions of the group.
    """
    partition = as_partition(grouping)
    if not grouped:
        return rng.integers(0, partition.n_subjects, size=partition.n_subjects)

    order = np.empty(partition.n_subjects, dtype=np.intp)
    for idx in partition.values():
        order[idx] = rng.choice(idx, size=idx.size, replace=True)
    return order


@dataclass(frozen=True)
class BootstrapStatistic:
    """
    Summary of one statistic across bootstrap draws.

    Attributes
    ----------
    mean, std, lower, upper : np.ndarray
        Mean, standard deviation and 2.5 / 97.5 percentiles over draws.
    samples : np.ndarray, optional
        Raw draws (last axis = draw), kept only on request.
    """

    mean: np.ndarray
    std: np.ndarray
    lower: np.ndarray
    upper: np.ndarray
    samples: Optional[np.ndarray] = None

    @classmethod
    def from_samples(cls, samples: np.ndarray, keep_samples: bool = False) -> "BootstrapStatistic":
        n_draws = samples.shape[-1]
        # midpoint (Hazen) percentile rule
        lower, upper = np.percentile(samples, CI_BOUNDS, axis=-1, method="hazen")
        return cls(
            mean=samples.mean(axis=-1),
            std=samples.std(axis=-1, ddof=1 if n_draws > 1 else 0),
            lower=lower,
            upper=upper,
            samples=samples if keep_samples else None,
        )

    def ratio(self, observed: np.ndarray) -> np.ndarray:
        """Observed value divided by its bootstrap standard deviation (NaN where std is 0)."""
        out = np.full(self.std.shape, np.nan)
        np.divide(observed, self.std, out=out, where=self.std > 0)
        return out

    def contains(self, observed: np.ndarray) -> np.ndarray:
        """Whether each observed value lies within the bootstrap confidence interval."""
        return (observed >= self.lower) & (observed <= self.upper)


@dataclass(frozen=True)
class BootstrapResults:
    """
    Bootstrap summary of saliences, scores and loadings.

    Attributes
    ----------
    n_bootstraps : int
        Number of bootstrap draws.
    procrustes_mode : ProcrustesMode
        Alignment mode used.
    U, V : BootstrapStatistic
        Design and imaging saliences.
    Lx, Ly : BootstrapStatistic
        Imaging and design scores.
    img_loadings, behav_loadings : BootstrapStatistic
        Imaging and design loadings.
    behav_cross_loadings, img_cross_loadings : BootstrapStatistic
        Design variables against imaging scores, imaging variables against design scores.
    resampling_orders : np.ndarray, optional
        N x n_bootstraps subject indices of every draw, kept only on request.
    """

    n_bootstraps: int
    procrustes_mode: ProcrustesMode
    U: BootstrapStatistic
    V: BootstrapStatistic
    Lx: BootstrapStatistic
    Ly: BootstrapStatistic
    img_loadings: BootstrapStatistic
    behav_loadings: BootstrapStatistic
    behav_cross_loadings: BootstrapStatistic
    img_cross_loadings: BootstrapStatistic
    resampling_orders: Optional[np.ndarray] = None

    def salience_ratios(self, observed: Decomposition) -> Tuple[np.ndarray, np.ndarray]:
        """Bootstrap ratios of the observed U and V saliences."""
        return self.U.ratio(observed.U), self.V.ratio(observed.V)

    def statistics(self) -> Dict[str, BootstrapStatistic]:
        return {
            "U": self.U,
            "V": self.V,
            "Lx": self.Lx,
            "Ly": self.Ly,
            "img_loadings": self.img_loadings,
            "behav_loadings": self.behav_loadings,
            "behav_cross_loadings": self.behav_cross_loadings,
            "img_cross_loadings": self.img_cross_loadings,
        }


@dataclass(frozen=True)
class _BootstrapDraw:
    order: np.ndarray
    U: np.ndarray
    V: np.ndarray
    scores: PLSScores


class BootstrapEstimator:
    """
    Bootstrap resampling of the full PLS analysis.

    Parameters
    ----------
    n_bootstraps : int
        Number of bootstrap draws. Default: 1000.
    grouped_boot : bool
        Resample subjects within each group.
    grouped_pls : bool
        Use the group-stacked covariance matrix.
    procrustes_mode : int or ProcrustesMode
        1 = rotation from U only (default), 2 = averaged U/V rotation.
    normalization_img : int
        Normalization mode of the imaging data (see ``normalize``).
    normalization_behav : int
        Normalization mode of the design data.
    save_resampling : bool
        Keep every raw draw (memory heavy for many imaging variables).
    n_jobs : int
        Number of worker threads.
    random_state : int or SeedSequence, optional
        Seed for reproducible resampling.
    """

    def __init__(
        self,
        n_bootstraps: int = 1000,
        grouped_boot: bool = False,
        grouped_pls: bool = False,
        procrustes_mode: Union[int, ProcrustesMode] = ProcrustesMode.STANDARD,
        normalization_img: Union[int, NormalizationMode] = NormalizationMode.ZSCORE_WITHIN_GROUPS,
        normalization_behav: Union[int, NormalizationMode] = NormalizationMode.ZSCORE_WITHIN_GROUPS,
        save_resampling: bool = False,
        n_jobs: int = 1,
        random_state: RandomState = None,
    ):
        if isinstance(n_bootstraps, bool) or not isinstance(n_bootstraps, (int, np.integer)) or n_bootstraps < 1:
            raise InvalidConfigurationError(
                f"Number of bootstraps must be a positive integer, got {n_bootstraps!r}"
            )

        self.n_bootstraps = int(n_bootstraps)
        self.grouped_boot = grouped_boot
        self.grouped_pls = grouped_pls
        self.procrustes_mode = ProcrustesMode.parse(procrustes_mode)
        self.normalization_img = NormalizationMode.parse(normalization_img)
        self.normalization_behav = NormalizationMode.parse(normalization_behav)
        self.save_resampling = save_resampling
        self.n_jobs = n_jobs
        self.random_state = random_state
        self.results: Optional[BootstrapResults] = None

    @property
    def _uses_groups(self) -> bool:
        """Whether any per-draw computation works group by group."""
        return (
            self.grouped_pls
            or self.normalization_img.within_groups
            or self.normalization_behav.within_groups
        )

    def run(
        self,
        X0: np.ndarray,
        Y0: np.ndarray,
        observed: Decomposition,
        grouping: Union[GroupPartition, Sequence[Any]],
    ) -> BootstrapResults:
        """
        Run all bootstrap draws and summarize them.

        Parameters
        ----------
        X0 : np.ndarray
            N x M raw imaging data (renormalized on every draw).
        Y0 : np.ndarray
            N x D raw design matrix.
        observed : Decomposition
            Decomposition of the original data, used as alignment target.
        grouping : GroupPartition or sequence
            Group label per subject.

        Returns
        -------
        BootstrapResults
            Summary statistics of saliences, scores and loadings.
        """
        X0 = np.asarray(X0, dtype=np.float64)
        Y0 = np.asarray(Y0, dtype=np.float64)
        partition = as_partition(grouping)
        if X0.shape[0] != Y0.shape[0] or partition.n_subjects != X0.shape[0]:
            raise DimensionMismatchError(
                f"Subject counts differ: X0 has {X0.shape[0]}, Y0 has {Y0.shape[0]}, "
                f"grouping has {partition.n_subjects}"
            )

        for gid, n in partition.sizes.items():
            if n < 2 and self._uses_groups:
                warnings.warn(
                    f"Group {gid} has a single subject; its bootstrap covariance is singular",
                    DegenerateResampleWarning,
                    stacklevel=2,
                )

        logger.info(
            f"Running bootstrap with {self.n_bootstraps} resamples "
            f"({'within groups' if self.grouped_boot else 'across all subjects'}, "
            f"Procrustes mode {self.procrustes_mode.value})"
        )

        def draw(rng: np.random.Generator) -> _BootstrapDraw:
            return self._draw(X0, Y0, observed, partition, rng)

        draws = run_draws(draw, spawn_seeds(self.random_state, self.n_bootstraps), n_jobs=self.n_jobs)

        keep = self.save_resampling

        def summarize(field: str) -> BootstrapStatistic:
            return BootstrapStatistic.from_samples(
                np.stack([getattr(d.scores, field) for d in draws], axis=-1), keep
            )

        self.results = BootstrapResults(
            n_bootstraps=self.n_bootstraps,
            procrustes_mode=self.procrustes_mode,
            U=BootstrapStatistic.from_samples(np.stack([d.U for d in draws], axis=-1), keep),
            V=BootstrapStatistic.from_samples(np.stack([d.V for d in draws], axis=-1), keep),
            Lx=summarize("Lx"),
            Ly=summarize("Ly"),
            img_loadings=summarize("img_loadings"),
            behav_loadings=summarize("behav_loadings"),
            behav_cross_loadings=summarize("behav_cross_loadings"),
            img_cross_loadings=summarize("img_cross_loadings"),
            resampling_orders=np.column_stack([d.order for d in draws]) if keep else None,
        )
        logger.info("Bootstrap resampling complete")
        return self.results

    def _draw(
        self,
        X0: np.ndarray,
        Y0: np.ndarray,
        observed: Decomposition,
        partition: GroupPartition,
        rng: np.random.Generator,
    ) -> _BootstrapDraw:
        order = bootstrap_indices(partition, rng, grouped=self.grouped_boot)
        resampled = partition.subset(order)

        if self.grouped_pls and resampled.n_groups != partition.n_groups:
            missing = sorted(set(partition.group_ids) - set(resampled.group_ids))
            raise DegenerateResampleError(
                f"Bootstrap resample contains no subject of group(s) {missing}; "
                f"the group-stacked covariance is undefined"
            )
        if self._uses_groups:
            for gid in resampled:
                if np.unique(order[resampled[gid]]).size < 2:
                    warnings.warn(
                        f"Bootstrap resample of group {gid} contains fewer than two distinct subjects",
                        DegenerateResampleWarning,
                        stacklevel=2,
                    )

        Xb = normalize(X0[order], resampled, self.normalization_img, name="bootstrap imaging data").data
        Yb = normalize(Y0[order], resampled, self.normalization_behav, name="bootstrap design data").data
        Rb = cross_covariance(Xb, Yb, resampled, grouped=self.grouped_pls)
        boot = decompose(Rb)

        Ub, Vb, _ = align_saliences(observed.U, observed.V, boot.U, boot.V, self.procrustes_mode)
        scores = project_scores(Xb, Yb, Ub, Vb, resampled, grouped=self.grouped_pls)
        return _BootstrapDraw(order=order, U=Ub, V=Vb, scores=scores)

    def summary(self) -> str:
        """
        Get a text summary of the bootstrap settings.

        Returns
        -------
        str
            Summary text.
        """
        lines = ["Bootstrap", "=" * 40]
        lines.append(f"Resamples: {self.n_bootstraps} ({'grouped' if self.grouped_boot else 'ungrouped'})")
        lines.append(f"Procrustes mode: {self.procrustes_mode.value} ({self.procrustes_mode.name.lower()})")
        lines.append(f"Raw samples kept: {self.save_resampling}")
        return "\n".join(lines)
