"""
Design matrix builder for behavior PLS.

This module handles:
- Behavior, contrast, contrast + behavior and interaction designs
- Orthonormal group contrasts for 2 and 3 groups
- Automatic design variable naming
- Design matrix validation
"""

import logging
from enum import Enum
from typing import Any, List, Optional, Sequence, Union

import numpy as np
import pandas as pd
from scipy.linalg import orth

from plscraft.core.grouping import GroupPartition, as_partition
from plscraft.core.normalization import zscore
from plscraft.exceptions import (
    DimensionMismatchError,
    UndefinedBehaviorTypeError,
    UnsupportedGroupCountError,
)

logger = logging.getLogger(__name__)


class DesignMode(str, Enum):
    """Type of design matrix entering the cross-covariance."""

    BEHAVIOR = "behavior"
    CONTRAST = "contrast"
    CONTRAST_BEHAV = "contrastBehav"
    CONTRAST_BEHAV_INTERACT = "contrastBehavInteract"

    @property
    def uses_contrast(self) -> bool:
        return self != DesignMode.BEHAVIOR

    @classmethod
    def parse(cls, mode: Union[str, "DesignMode"]) -> "DesignMode":
        try:
            return cls(mode)
        except ValueError as e:
            valid = [m.value for m in cls]
            raise UndefinedBehaviorTypeError(f"Undefined behavior type: {mode!r}. Must be one of {valid}") from e


class DesignMatrixBuilder:
    """
    Build the design matrix Y0 from behavioral data and group labels.

    Parameters
    ----------
    behav_data : array-like
        N x B matrix of behavioral variables.
    grouping : GroupPartition or sequence
        Group label per subject.
    group_names : sequence of str, optional
        One name per distinct group, in ascending group-ID order.
    behav_names : sequence of str, optional
        One name per behavioral variable.

    Attributes
    ----------
    design_matrix : pd.DataFrame or None
        Built design matrix; columns are the design variable names.
    contrasts : pd.DataFrame or None
        Orthonormal contrast columns, when a contrast design was built.
    """

    def __init__(
        self,
        behav_data: Any,
        grouping: Union[GroupPartition, Sequence[Any]],
        group_names: Optional[Sequence[str]] = None,
        behav_names: Optional[Sequence[str]] = None,
    ):
        behav = np.asarray(behav_data, dtype=np.float64)
        if behav.ndim == 1:
            behav = behav[:, np.newaxis]
        self.behav_data = behav
        self.partition = as_partition(grouping)

        if self.partition.n_subjects != behav.shape[0]:
            raise DimensionMismatchError(
                f"Number of subjects in grouping ({self.partition.n_subjects}) does not match "
                f"behavioral data rows ({behav.shape[0]})"
            )

        self.behav_names = _as_name_list(behav_names, behav.shape[1], "behav", "behav_names")
        self.group_names = _as_name_list(
            group_names, self.partition.n_groups, None, "group_names",
            default=[str(g) for g in self.partition.group_ids],
        )

        self.design_matrix: Optional[pd.DataFrame] = None
        self.contrasts: Optional[pd.DataFrame] = None

    def build(self, mode: Union[str, DesignMode] = DesignMode.BEHAVIOR) -> pd.DataFrame:
        """
        Build the design matrix for a given mode.

        Parameters
        ----------
        mode : str or DesignMode
            'behavior', 'contrast', 'contrastBehav' or 'contrastBehavInteract'.

        Returns
        -------
        pd.DataFrame
            N x D design matrix, columns named after the design variables.
        """
        mode = DesignMode.parse(mode)

        if mode == DesignMode.BEHAVIOR:
            design_matrix = pd.DataFrame(self.behav_data.copy(), columns=self.behav_names)
        else:
            contrasts = self.build_contrasts()
            if mode == DesignMode.CONTRAST:
                design_matrix = contrasts.copy()
            elif mode == DesignMode.CONTRAST_BEHAV:
                behav = pd.DataFrame(self.behav_data.copy(), columns=self.behav_names)
                design_matrix = pd.concat([contrasts, behav], axis=1)
            else:
                design_matrix = pd.concat([contrasts, self._interaction_block(contrasts)], axis=1)

        self.design_matrix = design_matrix
        logger.info(f"Built '{mode.value}' design matrix with shape {design_matrix.shape}")
        logger.info(f"Design variables: {list(design_matrix.columns)}")

        return design_matrix

    def build_contrasts(self) -> pd.DataFrame:
        """
        Build orthonormal group contrasts.

        Two groups give one column (group 2 > group 1). Three groups give two
        columns (group 3 > groups 1 and 2 pooled, then group 2 > group 1).

        Returns
        -------
        pd.DataFrame
            N x 1 or N x 2 contrast matrix of unit-norm columns.
        """
        n_groups = self.partition.n_groups
        n_subjects = self.partition.n_subjects
        members = [self.partition[gid] for gid in self.partition]
        names = self.group_names

        if n_groups == 2:
            c = np.zeros((n_subjects, 1))
            c[members[0], 0] = -1.0 / members[0].size
            c[members[1], 0] = 1.0 / members[1].size
            columns = [f"contrast ({names[1]} > {names[0]})"]
        elif n_groups == 3:
            n12 = members[0].size + members[1].size
            c = np.zeros((n_subjects, 2))
            c[members[0], 0] = -1.0 / n12
            c[members[1], 0] = -1.0 / n12
            c[members[2], 0] = 1.0 / members[2].size
            c[members[0], 1] = -1.0 / members[0].size
            c[members[1], 1] = 1.0 / members[1].size
            columns = [
                f"contrast ({names[2]}>{names[0]}/{names[1]})",
                f"contrast ({names[1]}>{names[0]})",
            ]
        else:
            raise UnsupportedGroupCountError(
                f"Contrasts are only implemented for 2 or 3 groups, found {n_groups}: {self.partition.group_ids}"
            )

        for j in range(c.shape[1]):
            c[:, j] = _orthonormalize(c[:, j])

        self.contrasts = pd.DataFrame(c, columns=columns)
        logger.debug(f"Built {c.shape[1]} contrast column(s): {columns}")
        return self.contrasts

    def _interaction_block(self, contrasts: pd.DataFrame) -> pd.DataFrame:
        """Each behavioral variable followed by its interaction with every contrast."""
        block = {}
        for j, behav_name in enumerate(self.behav_names):
            values = self.behav_data[:, j]
            standardized = zscore(values, name=behav_name)[:, 0]
            block[behav_name] = values
            for contrast_name in contrasts.columns:
                block[f"{behav_name}*{contrast_name}"] = standardized * contrasts[contrast_name].to_numpy()
        return pd.DataFrame(block)

    @property
    def design_names(self) -> List[str]:
        if self.design_matrix is None:
            raise ValueError("Design matrix not built yet")
        return [str(c) for c in self.design_matrix.columns]

    def summary(self) -> str:
        """
        Get a text summary of the design matrix.

        Returns
        -------
        str
            Summary text.
        """
        lines = []

        if self.design_matrix is not None:
            lines.append("Design Matrix:")
            lines.append(f"  Shape: {self.design_matrix.shape}")
            lines.append(f"  Columns: {list(self.design_matrix.columns)}")
            lines.append("")

        lines.append("Groups:")
        for name, (gid, n) in zip(self.group_names, self.partition.sizes.items()):
            lines.append(f"  {name} (id {gid}): {n} subjects")

        return "\n".join(lines)


def build_design_matrix(
    mode: Union[str, DesignMode],
    behav_data: Any,
    grouping: Union[GroupPartition, Sequence[Any]],
    group_names: Optional[Sequence[str]] = None,
    behav_names: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """
    Utility function to build a design matrix in one call.

    Returns
    -------
    pd.DataFrame
        Design matrix Y0; its columns are the design variable names.
    """
    builder = DesignMatrixBuilder(behav_data, grouping, group_names=group_names, behav_names=behav_names)
    return builder.build(mode)


def _orthonormalize(c: np.ndarray) -> np.ndarray:
    """Unit-norm basis of ``c`` with the sign of its first (non-zero) entry preserved."""
    basis = orth(c[:, np.newaxis])[:, 0]
    ref = np.flatnonzero(c)[0]
    if np.sign(basis[ref]) != np.sign(c[ref]):
        basis = -basis
    return basis


def _as_name_list(
    names: Optional[Sequence[Any]],
    expected: int,
    prefix: Optional[str],
    label: str,
    default: Optional[List[str]] = None,
) -> List[str]:
    """Flatten a name vector of any orientation and check its length."""
    if names is None:
        if default is not None:
            return list(default)
        return [f"{prefix}{i + 1}" for i in range(expected)]

    flat = [str(n) for n in np.asarray(names, dtype=object).ravel()]
    if len(flat) != expected:
        raise DimensionMismatchError(f"Expected {expected} {label}, got {len(flat)}")
    return flat
