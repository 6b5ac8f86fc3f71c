"""
Result bundle of a PLS analysis.

Holds every intermediate and final quantity of one analysis and provides
tabular views for the reporting layer.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from plscraft.core.bootstrap import BootstrapResults, BootstrapStatistic
from plscraft.core.dataset import PLSInput
from plscraft.core.decomposition import Decomposition
from plscraft.core.normalization import NormalizedMatrix
from plscraft.core.permutation import PermutationResults
from plscraft.core.scores import PLSScores

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LatentComponent:
    """One latent component (LC) of the decomposition."""

    index: int
    singular_value: float
    explained_covariance: float
    p_value: float
    significant: bool
    img_saliences: np.ndarray
    design_saliences: np.ndarray
    img_scores: np.ndarray
    design_scores: np.ndarray
    img_loadings: np.ndarray
    design_loadings: np.ndarray


@dataclass(frozen=True)
class PLSResults:
    """
    All results of a PLS analysis.

    Attributes
    ----------
    input : PLSInput
        The analysed dataset.
    config : dict
        Options the analysis ran with.
    Y0 : pd.DataFrame
        Raw design matrix; columns are the design variable names.
    X, Y : NormalizedMatrix
        Normalized imaging and design data with their mean/std.
    R : np.ndarray
        Cross-covariance matrix.
    decomposition : Decomposition
        U, singular values and V.
    scores : PLSScores
        Subject scores and loadings.
    permutation : PermutationResults
        Null distribution and p-values.
    bootstrap : BootstrapResults
        Bootstrap summary statistics.
    warnings : list of dict
        Warnings recorded during the analysis (category and message).
    """

    input: PLSInput
    config: Dict[str, Any]
    Y0: pd.DataFrame
    X: NormalizedMatrix
    Y: NormalizedMatrix
    R: np.ndarray
    decomposition: Decomposition
    scores: PLSScores
    permutation: PermutationResults
    bootstrap: BootstrapResults
    warnings: List[Dict[str, str]] = field(default_factory=list)

    @property
    def X0(self) -> np.ndarray:
        return self.input.brain_data

    @property
    def design_names(self) -> List[str]:
        return [str(c) for c in self.Y0.columns]

    @property
    def U(self) -> np.ndarray:
        return self.decomposition.U

    @property
    def S(self) -> np.ndarray:
        return self.decomposition.S

    @property
    def V(self) -> np.ndarray:
        return self.decomposition.V

    @property
    def explained_covariance(self) -> np.ndarray:
        return self.decomposition.explained_covariance

    @property
    def p_values(self) -> np.ndarray:
        return self.permutation.p_values

    @property
    def alpha(self) -> float:
        return float(self.config.get("alpha", 0.05))

    @property
    def n_components(self) -> int:
        return self.decomposition.n_components

    @property
    def design_row_names(self) -> List[str]:
        """Names of the rows of U and of the design loadings (one block per group when grouped)."""
        n_blocks = self.U.shape[0] // len(self.design_names)
        if n_blocks == 1:
            return self.design_names
        return [f"{name} ({group})" for group in self.input.group_names for name in self.design_names]

    def significant_components(self, alpha: Optional[float] = None) -> np.ndarray:
        """1-based indices of the latent components with p < alpha."""
        alpha = self.alpha if alpha is None else alpha
        return np.flatnonzero(self.p_values < alpha) + 1

    def latent_components(self, alpha: Optional[float] = None) -> List[LatentComponent]:
        alpha = self.alpha if alpha is None else alpha
        explained = self.explained_covariance
        return [
            LatentComponent(
                index=i + 1,
                singular_value=float(self.decomposition.singular_values[i]),
                explained_covariance=float(explained[i]),
                p_value=float(self.p_values[i]),
                significant=bool(self.p_values[i] < alpha),
                img_saliences=self.V[:, i],
                design_saliences=self.U[:, i],
                img_scores=self.scores.Lx[:, i],
                design_scores=self.scores.Ly[:, i],
                img_loadings=self.scores.img_loadings[:, i],
                design_loadings=self.scores.behav_loadings[:, i],
            )
            for i in range(self.n_components)
        ]

    def component_table(self, alpha: Optional[float] = None) -> pd.DataFrame:
        """
        One row per latent component.

        Returns
        -------
        pd.DataFrame
            Singular value, explained covariance, p-value and significance flag.
        """
        alpha = self.alpha if alpha is None else alpha
        return pd.DataFrame(
            {
                "singular_value": self.decomposition.singular_values,
                "explained_covariance": self.explained_covariance,
                "p_value": self.p_values,
                "significant": self.p_values < alpha,
            },
            index=pd.Index([f"LC{i + 1}" for i in range(self.n_components)], name="component"),
        )

    def loadings_table(self, kind: str = "img", component: int = 1) -> pd.DataFrame:
        """
        Loadings of one latent component with their bootstrap statistics.

        Parameters
        ----------
        kind : str
            "img" for imaging loadings, "behav" for design loadings.
        component : int
            1-based latent component index.

        Returns
        -------
        pd.DataFrame
            Observed loading, bootstrap mean/std/CI, bootstrap ratio and
            whether the CI excludes zero.
        """
        if not 1 <= component <= self.n_components:
            raise KeyError(f"Component {component} not found. Available: 1..{self.n_components}")

        if kind == "img":
            observed, stat, names = self.scores.img_loadings, self.bootstrap.img_loadings, self.input.img_names
        elif kind == "behav":
            observed, stat, names = self.scores.behav_loadings, self.bootstrap.behav_loadings, self.design_row_names
        else:
            raise KeyError(f"Unknown loadings kind '{kind}'. Use 'img' or 'behav'")

        return _statistic_table(observed, stat, names, component - 1)

    def to_dict(self) -> Dict[str, Any]:
        """
        Plain representation with numpy arrays and lists, for any serializer.
        """
        out: Dict[str, Any] = {
            "config": dict(self.config),
            "X0": self.X0,
            "Y0": self.Y0.to_numpy(),
            "design_names": self.design_names,
            "grouping": self.input.grouping,
            "group_names": list(self.input.group_names),
            "behav_names": list(self.input.behav_names),
            "img_names": list(self.input.img_names),
            "X": self.X.data,
            "meanX0": self.X.mean,
            "stdX0": self.X.std,
            "Y": self.Y.data,
            "meanY0": self.Y.mean,
            "stdY0": self.Y.std,
            "R": self.R,
            "U": self.U,
            "S": self.S,
            "V": self.V,
            "explCovLC": self.explained_covariance,
            "LC_pvals": self.p_values,
            "Sp_vect": self.permutation.null_distribution,
            "Lx": self.scores.Lx,
            "Ly": self.scores.Ly,
            "LC_img_loadings": self.scores.img_loadings,
            "LC_behav_loadings": self.scores.behav_loadings,
            "LC_behav_img_loadings": self.scores.behav_cross_loadings,
            "LC_img_behav_loadings": self.scores.img_cross_loadings,
            "warnings": [dict(w) for w in self.warnings],
        }

        boot: Dict[str, Any] = {"n_bootstraps": self.bootstrap.n_bootstraps,
                                "procrustes_mode": int(self.bootstrap.procrustes_mode)}
        for name, stat in self.bootstrap.statistics().items():
            boot[f"{name}_mean"] = stat.mean
            boot[f"{name}_std"] = stat.std
            boot[f"{name}_lB"] = stat.lower
            boot[f"{name}_uB"] = stat.upper
            if stat.samples is not None:
                boot[f"{name}_samples"] = stat.samples
        boot["U_ratio"], boot["V_ratio"] = self.bootstrap.salience_ratios(self.decomposition)
        if self.bootstrap.resampling_orders is not None:
            boot["resampling_orders"] = self.bootstrap.resampling_orders
        out["boot_results"] = boot

        return out

    def summary(self) -> str:
        """
        Get a text summary of the analysis.

        Returns
        -------
        str
            Summary text.
        """
        lines = ["PLS Analysis Results", "=" * 40]
        lines.append(f"Data: {self.input.describe()}")
        lines.append(f"Design ({self.config.get('behav_type')}): {', '.join(self.design_names)}")
        lines.append(f"Permutations: {self.permutation.n_perms}, bootstraps: {self.bootstrap.n_bootstraps}")
        lines.append("")
        lines.append("Latent components:")
        for lc in self.latent_components():
            marker = " *" if lc.significant else ""
            lines.append(
                f"  LC{lc.index}: s = {lc.singular_value:.4f}, "
                f"explained = {lc.explained_covariance * 100:.1f}%, p = {lc.p_value:.4f}{marker}"
            )
        lines.append(f"  (* p < {self.alpha})")

        if self.warnings:
            lines.append("")
            lines.append(f"Warnings ({len(self.warnings)}):")
            for w in self.warnings:
                lines.append(f"  [{w['category']}] {w['message']}")

        return "\n".join(lines)


def _statistic_table(
    observed: np.ndarray,
    stat: BootstrapStatistic,
    names: List[str],
    col: int,
) -> pd.DataFrame:
    lower = stat.lower[:, col]
    upper = stat.upper[:, col]
    return pd.DataFrame(
        {
            "loading": observed[:, col],
            "boot_mean": stat.mean[:, col],
            "boot_std": stat.std[:, col],
            "ci_lower": lower,
            "ci_upper": upper,
            "bootstrap_ratio": stat.ratio(observed)[:, col],
            "stable": (lower > 0) | (upper < 0),
        },
        index=pd.Index(names, name="variable"),
    )
