"""
Group partition shared by every group-aware step of the analysis.

Normalization, covariance stacking, score projection, permutation and
bootstrap all iterate over groups. They all go through GroupPartition so the
group order (ascending group ID) is identical everywhere.
"""

import logging
from collections.abc import Mapping
from typing import Any, Dict, Iterator, List, Sequence, Union

import numpy as np

from plscraft.exceptions import DimensionMismatchError

logger = logging.getLogger(__name__)

# Label used for the single group of a pooled partition
POOLED_GROUP = "all"


class GroupPartition(Mapping):
    """
    Ordered mapping from group ID to the row indices of its subjects.

    Parameters
    ----------
    grouping : sequence
        One group label per subject. Labels may be any sortable values and
        need not be contiguous or start at 1.

    Attributes
    ----------
    labels : np.ndarray
        Group label of every subject (1-D).
    group_ids : list
        Distinct group labels in ascending order.
    """

    def __init__(self, grouping: Sequence[Any]):
        labels = np.asarray(grouping).ravel()
        if labels.size == 0:
            raise DimensionMismatchError("Grouping vector is empty")

        self.labels = labels
        self.group_ids: List[Any] = [g.item() if hasattr(g, "item") else g for g in np.unique(labels)]
        self._indices: Dict[Any, np.ndarray] = {
            gid: np.flatnonzero(labels == gid) for gid in self.group_ids
        }

    @classmethod
    def single(cls, n_subjects: int) -> "GroupPartition":
        """Partition with all subjects in one group."""
        return cls(np.full(n_subjects, POOLED_GROUP, dtype=object))

    def __getitem__(self, group_id: Any) -> np.ndarray:
        return self._indices[group_id]

    def __iter__(self) -> Iterator[Any]:
        return iter(self.group_ids)

    def __len__(self) -> int:
        return len(self.group_ids)

    def __repr__(self) -> str:
        sizes = ", ".join(f"{gid}: {n}" for gid, n in self.sizes.items())
        return f"GroupPartition({{{sizes}}})"

    @property
    def n_groups(self) -> int:
        return len(self.group_ids)

    @property
    def n_subjects(self) -> int:
        return int(self.labels.size)

    @property
    def sizes(self) -> Dict[Any, int]:
        return {gid: int(idx.size) for gid, idx in self._indices.items()}

    def pooled(self) -> "GroupPartition":
        """Return a partition that treats all subjects as one group."""
        return GroupPartition.single(self.n_subjects)

    def for_policy(self, grouped: bool) -> "GroupPartition":
        """Return self when ``grouped`` is true, the pooled partition otherwise."""
        return self if grouped else self.pooled()

    def subset(self, indices: Sequence[int]) -> "GroupPartition":
        """Partition of the rows selected by ``indices`` (e.g. a bootstrap resample)."""
        return GroupPartition(self.labels[np.asarray(indices)])


def as_partition(grouping: Union[GroupPartition, Sequence[Any]]) -> GroupPartition:
    """Accept either a label vector or an existing partition."""
    if isinstance(grouping, GroupPartition):
        return grouping
    return GroupPartition(grouping)
