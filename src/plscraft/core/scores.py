"""
PLS scores and loadings.

Scores are the subjects' expression of the imaging and design saliences.
Loadings (structure coefficients) are Pearson correlations between scores
and the normalized variables.
"""

import logging
import warnings
from dataclasses import dataclass
from typing import Any, Sequence, Union

import numpy as np

from plscraft.core.grouping import GroupPartition, as_partition
from plscraft.exceptions import DegenerateColumnWarning, DimensionMismatchError

logger = logging.getLogger(__name__)

# Centered column norms below this (relative to the column magnitude) count as zero variance
_NORM_TOLERANCE = 1e-10


@dataclass(frozen=True)
class PLSScores:
    """
    Subject scores and loadings for every latent component.

    Attributes
    ----------
    Lx : np.ndarray
        N x L imaging scores, ``X @ V``.
    Ly : np.ndarray
        N x L design scores; each subject is projected on its own group's U block.
    img_loadings : np.ndarray
        M x L, corr(Lx, X).
    behav_loadings : np.ndarray
        (D * n_groups) x L, corr(Ly, Y) computed within each group.
    behav_cross_loadings : np.ndarray
        (D * n_groups) x L, corr(Lx, Y) computed within each group.
    img_cross_loadings : np.ndarray
        M x L, corr(Ly, X).
    """

    Lx: np.ndarray
    Ly: np.ndarray
    img_loadings: np.ndarray
    behav_loadings: np.ndarray
    behav_cross_loadings: np.ndarray
    img_cross_loadings: np.ndarray


def project_scores(
    X: np.ndarray,
    Y: np.ndarray,
    U: np.ndarray,
    V: np.ndarray,
    grouping: Union[GroupPartition, Sequence[Any]],
    grouped: bool = False,
) -> PLSScores:
    """
    Project normalized data onto saliences and compute loadings.

    Parameters
    ----------
    X : np.ndarray
        N x M normalized imaging data.
    Y : np.ndarray
        N x D normalized design data.
    U : np.ndarray
        (D * n_groups) x L design saliences, stacked per group.
    V : np.ndarray
        M x L imaging saliences.
    grouping : GroupPartition or sequence
        Group label per subject.
    grouped : bool
        Whether U was derived from a group-stacked covariance matrix.

    Returns
    -------
    PLSScores
        Scores and all loading variants.
    """
    X = np.asarray(X, dtype=np.float64)
    Y = np.asarray(Y, dtype=np.float64)
    partition = as_partition(grouping).for_policy(grouped)
    n_design = Y.shape[1]

    if U.shape[0] != n_design * partition.n_groups:
        raise DimensionMismatchError(
            f"U has {U.shape[0]} rows, expected {n_design} design variables x {partition.n_groups} group(s)"
        )

    Lx = X @ V
    Ly = np.zeros((X.shape[0], U.shape[1]))
    behav_loadings = np.empty((U.shape[0], U.shape[1]))
    behav_cross_loadings = np.empty_like(behav_loadings)

    for k, gid in enumerate(partition):
        idx = partition[gid]
        rows = slice(k * n_design, (k + 1) * n_design)
        Ly[idx] = Y[idx] @ U[rows]

    for k, gid in enumerate(partition):
        idx = partition[gid]
        rows = slice(k * n_design, (k + 1) * n_design)
        label = "" if partition.n_groups == 1 else f" (group {gid})"
        behav_loadings[rows] = correlate_columns(Y[idx], Ly[idx], name=f"design loadings{label}")
        behav_cross_loadings[rows] = correlate_columns(Y[idx], Lx[idx], name=f"design cross-loadings{label}")

    return PLSScores(
        Lx=Lx,
        Ly=Ly,
        img_loadings=correlate_columns(X, Lx, name="imaging loadings"),
        behav_loadings=behav_loadings,
        behav_cross_loadings=behav_cross_loadings,
        img_cross_loadings=correlate_columns(X, Ly, name="imaging cross-loadings"),
    )


def correlate_columns(data: np.ndarray, scores: np.ndarray, name: str = "loadings") -> np.ndarray:
    """
    Pearson correlation of every data column with every score column.

    Parameters
    ----------
    data : np.ndarray
        N x V variables.
    scores : np.ndarray
        N x L scores.
    name : str
        Name used in warnings.

    Returns
    -------
    np.ndarray
        V x L correlation matrix. Entries involving a zero-variance column are NaN.

    Warns
    -----
    DegenerateColumnWarning
        When a variable or score column has zero variance.
    """
    dc = data - data.mean(axis=0)
    sc = scores - scores.mean(axis=0)
    d_norm = np.sqrt(np.sum(dc ** 2, axis=0))
    s_norm = np.sqrt(np.sum(sc ** 2, axis=0))

    d_bad = d_norm <= _NORM_TOLERANCE * np.sqrt(data.shape[0]) * np.maximum(1.0, np.abs(data).max(axis=0, initial=0.0))
    s_bad = s_norm <= _NORM_TOLERANCE * np.sqrt(scores.shape[0]) * np.maximum(1.0, np.abs(scores).max(axis=0, initial=0.0))
    if np.any(d_bad) or np.any(s_bad):
        parts = []
        if np.any(d_bad):
            parts.append(f"variable column(s) {np.flatnonzero(d_bad).tolist()}")
        if np.any(s_bad):
            parts.append(f"score column(s) {np.flatnonzero(s_bad).tolist()}")
        warnings.warn(
            f"{name}: zero variance in {' and '.join(parts)}; correlations set to NaN",
            DegenerateColumnWarning,
            stacklevel=2,
        )

    denom = np.outer(d_norm, s_norm)
    valid = np.outer(~d_bad, ~s_bad)
    corr = np.full(denom.shape, np.nan)
    np.divide(dc.T @ sc, denom, out=corr, where=valid)
    return corr
