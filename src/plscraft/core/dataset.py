"""
Input dataset for a PLS analysis.

Validates subject counts and variable names before any computation starts.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

import numpy as np
import pandas as pd

from plscraft.core.grouping import GroupPartition
from plscraft.exceptions import DimensionMismatchError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PLSInput:
    """
    Imaging data, behavioral data and grouping of N subjects.

    Parameters
    ----------
    brain_data : array-like or pd.DataFrame
        N x M imaging variables.
    behav_data : array-like or pd.DataFrame
        N x B behavioral variables (1-D input is one variable).
    grouping : sequence
        One group label per subject.
    group_names : sequence of str, optional
        One name per distinct group, in ascending group-ID order.
    behav_names : sequence of str, optional
        Behavioral variable names. Taken from DataFrame columns when omitted.
    img_names : sequence of str, optional
        Imaging variable names. Taken from DataFrame columns when omitted.
    """

    brain_data: np.ndarray
    behav_data: np.ndarray
    grouping: np.ndarray
    group_names: List[str] = field(default_factory=list)
    behav_names: List[str] = field(default_factory=list)
    img_names: List[str] = field(default_factory=list)

    @classmethod
    def create(
        cls,
        brain_data: Any,
        behav_data: Any,
        grouping: Sequence[Any],
        group_names: Optional[Sequence[str]] = None,
        behav_names: Optional[Sequence[str]] = None,
        img_names: Optional[Sequence[str]] = None,
    ) -> "PLSInput":
        """Build and validate an input dataset."""
        if img_names is None and isinstance(brain_data, pd.DataFrame):
            img_names = [str(c) for c in brain_data.columns]
        if behav_names is None and isinstance(behav_data, pd.DataFrame):
            behav_names = [str(c) for c in behav_data.columns]

        brain = _as_matrix(brain_data, "brain_data")
        behav = _as_matrix(behav_data, "behav_data")
        labels = np.asarray(grouping).ravel()

        if not (brain.shape[0] == behav.shape[0] == labels.size):
            raise DimensionMismatchError(
                f"Number of subjects differs: brain_data has {brain.shape[0]}, "
                f"behav_data has {behav.shape[0]}, grouping has {labels.size}"
            )

        partition = GroupPartition(labels)

        return cls(
            brain_data=brain,
            behav_data=behav,
            grouping=labels,
            group_names=_names(group_names, partition.n_groups, "group_names",
                               [str(g) for g in partition.group_ids]),
            behav_names=_names(behav_names, behav.shape[1], "behav_names",
                               [f"behav{i + 1}" for i in range(behav.shape[1])]),
            img_names=_names(img_names, brain.shape[1], "img_names",
                             [f"img{i + 1}" for i in range(brain.shape[1])]),
        )

    @property
    def partition(self) -> GroupPartition:
        return GroupPartition(self.grouping)

    @property
    def n_subjects(self) -> int:
        return int(self.brain_data.shape[0])

    def describe(self) -> str:
        return (
            f"{self.n_subjects} subjects, {self.brain_data.shape[1]} imaging variables, "
            f"{self.behav_data.shape[1]} behavioral variables, {len(self.group_names)} group(s)"
        )


def _as_matrix(data: Any, label: str) -> np.ndarray:
    matrix = np.asarray(data, dtype=np.float64)
    if matrix.ndim == 1:
        matrix = matrix[:, np.newaxis]
    if matrix.ndim != 2:
        raise DimensionMismatchError(f"{label} must be 2D (subjects x variables), got {matrix.ndim}D")
    if not np.all(np.isfinite(matrix)):
        raise ValueError(f"{label} contains NaN or infinite values")
    return matrix


def _names(names: Optional[Sequence[Any]], expected: int, label: str, default: List[str]) -> List[str]:
    if names is None:
        return default
    flat = [str(n) for n in np.asarray(names, dtype=object).ravel()]
    if len(flat) != expected:
        raise DimensionMismatchError(f"Expected {expected} {label}, got {len(flat)}")
    return flat
