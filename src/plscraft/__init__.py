"""
PLSCraft: Partial Least Squares Correlation for imaging and behavior.

A pip-installable Python tool that relates a set of imaging variables to
behavioral variables and/or group contrasts, with permutation testing of
latent components and bootstrap estimation of their stability.
"""

__version__ = "0.1.0"
__author__ = "PLSCraft Contributors"

from plscraft.config import Config, load_config
from plscraft.core.bootstrap import BootstrapEstimator, ProcrustesMode
from plscraft.core.dataset import PLSInput
from plscraft.core.design_matrix import DesignMatrixBuilder, DesignMode
from plscraft.core.grouping import GroupPartition
from plscraft.core.normalization import NormalizationMode, normalize
from plscraft.core.permutation import PermutationTester
from plscraft.pipeline import PLSPipeline, run_pls_analysis
from plscraft.results import PLSResults

__all__ = [
    "Config",
    "load_config",
    "BootstrapEstimator",
    "ProcrustesMode",
    "PLSInput",
    "DesignMatrixBuilder",
    "DesignMode",
    "GroupPartition",
    "NormalizationMode",
    "normalize",
    "PermutationTester",
    "PLSPipeline",
    "run_pls_analysis",
    "PLSResults",
    "__version__",
]
