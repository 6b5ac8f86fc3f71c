"""
Singular value decomposition of the cross-covariance matrix.

This module handles:
- Economy-size SVD
- Sign convention for latent components
- Covariance explained by each latent component
"""

import logging
import warnings
from dataclasses import dataclass
from typing import Tuple

import numpy as np
from scipy.linalg import svd

from plscraft.exceptions import DegenerateColumnWarning

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Decomposition:
    """
    Result of ``R = U @ diag(s) @ V.T``.

    Attributes
    ----------
    U : np.ndarray
        Design saliences, (D * n_groups) x L.
    singular_values : np.ndarray
        Non-negative singular values in descending order, length L.
    V : np.ndarray
        Imaging saliences, M x L.
    """

    U: np.ndarray
    singular_values: np.ndarray
    V: np.ndarray

    @property
    def S(self) -> np.ndarray:
        """Singular values as an L x L diagonal matrix."""
        return np.diag(self.singular_values)

    @property
    def n_components(self) -> int:
        return int(self.singular_values.size)

    @property
    def explained_covariance(self) -> np.ndarray:
        return explained_covariance(self.singular_values)


def decompose(R: np.ndarray) -> Decomposition:
    """
    Economy-size SVD of R with the sign convention applied.

    Parameters
    ----------
    R : np.ndarray
        Cross-covariance matrix.

    Returns
    -------
    Decomposition
        U, singular values and V with L = min(R.shape) components.
    """
    U, s, Vt = svd(np.asarray(R, dtype=np.float64), full_matrices=False)
    U, V = apply_sign_convention(U, Vt.T)
    return Decomposition(U=U, singular_values=s, V=V)


def apply_sign_convention(U: np.ndarray, V: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Make the largest-magnitude imaging salience of every component positive.

    U and V columns are only defined up to a joint sign flip; flipping both
    keeps ``U @ S @ V.T`` unchanged.

    Returns
    -------
    tuple of (np.ndarray, np.ndarray)
        Sign-corrected copies of U and V.
    """
    max_idx = np.argmax(np.abs(V), axis=0)
    signs = np.sign(V[max_idx, np.arange(V.shape[1])])
    signs[signs == 0] = 1.0
    return U * signs, V * signs


def explained_covariance(singular_values: np.ndarray) -> np.ndarray:
    """Fraction of the total squared covariance carried by each component."""
    s2 = np.asarray(singular_values, dtype=np.float64) ** 2
    total = s2.sum()
    if total == 0:
        warnings.warn(
            "Cross-covariance matrix is zero; explained covariance is undefined",
            DegenerateColumnWarning,
            stacklevel=2,
        )
        return np.full_like(s2, np.nan)
    return s2 / total
