"""
Normalization of data matrices before PLS.

This module handles:
- z-scoring across all subjects or within each group
- root-mean-square scaling (no centering) across all subjects or within groups
- detection of zero-variance columns
"""

import logging
import warnings
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Sequence, Union

import numpy as np

from plscraft.core.grouping import GroupPartition, as_partition
from plscraft.exceptions import DegenerateColumnWarning, InvalidModeError

logger = logging.getLogger(__name__)

# Columns whose scale falls below this (relative to their location) are constant
_SCALE_TOLERANCE = 1e-10


class NormalizationMode(IntEnum):
    """Normalization applied to imaging or design data."""

    NONE = 0
    ZSCORE = 1
    ZSCORE_WITHIN_GROUPS = 2
    RMS = 3
    RMS_WITHIN_GROUPS = 4

    @property
    def within_groups(self) -> bool:
        return self in (NormalizationMode.ZSCORE_WITHIN_GROUPS, NormalizationMode.RMS_WITHIN_GROUPS)

    @property
    def centers(self) -> bool:
        return self in (NormalizationMode.ZSCORE, NormalizationMode.ZSCORE_WITHIN_GROUPS)

    @classmethod
    def parse(cls, mode: Union[int, "NormalizationMode"]) -> "NormalizationMode":
        try:
            return cls(int(mode))
        except (TypeError, ValueError) as e:
            valid = [m.value for m in cls]
            raise InvalidModeError(f"Invalid normalization mode: {mode!r}. Must be one of {valid}") from e


@dataclass(frozen=True)
class NormalizedMatrix:
    """
    A normalized matrix together with the statistics used to produce it.

    Attributes
    ----------
    data : np.ndarray
        Normalized N x V matrix.
    mean : np.ndarray
        Column means, shape (1, V) or (n_groups, V) for within-group modes.
    std : np.ndarray
        Column scales (standard deviation, or root mean square for modes 3/4),
        same shape as ``mean``.
    mode : NormalizationMode
        Mode that was applied.
    """

    data: np.ndarray
    mean: np.ndarray
    std: np.ndarray
    mode: NormalizationMode


def normalize(
    X: np.ndarray,
    grouping: Union[GroupPartition, Sequence[Any]],
    mode: Union[int, NormalizationMode] = NormalizationMode.ZSCORE_WITHIN_GROUPS,
    name: str = "data",
) -> NormalizedMatrix:
    """
    Normalize the columns of a data matrix.

    Parameters
    ----------
    X : np.ndarray
        N x V data matrix.
    grouping : GroupPartition or sequence
        Group label per subject. Only used by within-group modes.
    mode : int or NormalizationMode
        0 = none, 1 = z-score across subjects, 2 = z-score within groups (default),
        3 = RMS scaling across subjects, 4 = RMS scaling within groups.
    name : str
        Name of the matrix, used in warnings.

    Returns
    -------
    NormalizedMatrix
        Normalized data with location and scale statistics.

    Warns
    -----
    DegenerateColumnWarning
        When a column has zero variance (in a group, for within-group modes).
        Such columns are left unscaled, so a constant column z-scores to zeros.
    """
    mode = NormalizationMode.parse(mode)
    X = np.asarray(X, dtype=np.float64)
    if X.ndim == 1:
        X = X[:, np.newaxis]

    if mode == NormalizationMode.NONE:
        return NormalizedMatrix(
            data=X.copy(),
            mean=X.mean(axis=0, keepdims=True),
            std=np.ones((1, X.shape[1])),
            mode=mode,
        )

    partition = as_partition(grouping)
    if mode.within_groups:
        blocks = [(gid, partition[gid]) for gid in partition]
    else:
        blocks = [(None, np.arange(X.shape[0]))]

    Xn = np.empty_like(X)
    means = np.empty((len(blocks), X.shape[1]))
    scales = np.empty((len(blocks), X.shape[1]))

    for i, (gid, idx) in enumerate(blocks):
        block = X[idx]
        means[i] = block.mean(axis=0)
        scales[i] = _column_scale(block, centered=mode.centers)

        degenerate = ~np.isfinite(scales[i]) | (scales[i] <= _SCALE_TOLERANCE * np.maximum(1.0, np.abs(means[i])))
        if np.any(degenerate):
            where = f" in group {gid}" if gid is not None else ""
            warnings.warn(
                f"{name}: column(s) {np.flatnonzero(degenerate).tolist()} have zero variance{where}; "
                f"they are left unscaled",
                DegenerateColumnWarning,
                stacklevel=2,
            )

        divisor = np.where(degenerate, 1.0, scales[i])
        offset = means[i] if mode.centers else 0.0
        Xn[idx] = (block - offset) / divisor

    logger.debug(f"Normalized {name} ({X.shape[0]}x{X.shape[1]}) with mode {mode.value} ({mode.name})")

    return NormalizedMatrix(data=Xn, mean=means, std=scales, mode=mode)


def zscore(x: np.ndarray, name: str = "data") -> np.ndarray:
    """z-score the columns of ``x`` across all rows (sample standard deviation)."""
    x = np.asarray(x, dtype=np.float64)
    return normalize(x, GroupPartition.single(x.shape[0]), NormalizationMode.ZSCORE, name=name).data


def _column_scale(block: np.ndarray, centered: bool) -> np.ndarray:
    """Sample standard deviation, or root mean square when not centering."""
    if not centered:
        return np.sqrt(np.mean(block ** 2, axis=0))
    if block.shape[0] < 2:
        return np.full(block.shape[1], np.nan)
    return block.std(axis=0, ddof=1)
