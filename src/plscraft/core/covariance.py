"""
Cross-covariance between imaging and design data.
"""

import logging
from typing import Any, Sequence, Union

import numpy as np

from plscraft.core.grouping import GroupPartition, as_partition
from plscraft.exceptions import DimensionMismatchError

logger = logging.getLogger(__name__)


def cross_covariance(
    X: np.ndarray,
    Y: np.ndarray,
    grouping: Union[GroupPartition, Sequence[Any]],
    grouped: bool = False,
) -> np.ndarray:
    """
    Compute the (optionally group-stacked) cross-covariance matrix.

    For every group g, ``R_g = Y_g.T @ X_g``. The blocks are stacked row-wise
    in ascending group-ID order, so the rows of R (and of the U saliences
    derived from it) can be split back into per-group blocks.

    Parameters
    ----------
    X : np.ndarray
        N x M normalized imaging data.
    Y : np.ndarray
        N x D normalized design data.
    grouping : GroupPartition or sequence
        Group label per subject.
    grouped : bool
        If False, all subjects are treated as one group.

    Returns
    -------
    np.ndarray
        (D * n_groups) x M cross-covariance matrix.
    """
    X = np.asarray(X, dtype=np.float64)
    Y = np.asarray(Y, dtype=np.float64)
    if X.shape[0] != Y.shape[0]:
        raise DimensionMismatchError(
            f"Imaging data rows ({X.shape[0]}) do not match design data rows ({Y.shape[0]})"
        )

    partition = as_partition(grouping)
    if partition.n_subjects != X.shape[0]:
        raise DimensionMismatchError(
            f"Grouping length ({partition.n_subjects}) does not match number of subjects ({X.shape[0]})"
        )
    partition = partition.for_policy(grouped)

    R = np.vstack([Y[idx].T @ X[idx] for idx in partition.values()])
    logger.debug(f"Cross-covariance matrix {R.shape} from {partition.n_groups} group(s)")
    return R
