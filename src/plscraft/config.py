"""
Configuration handling for PLSCraft.

This module handles:
- Configuration file parsing (YAML/JSON)
- Configuration validation
- Default values
"""

import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from plscraft.exceptions import InvalidConfigurationError

logger = logging.getLogger(__name__)


# Default configuration values
DEFAULT_CONFIG = {
    # Design matrix type: "behavior", "contrast", "contrastBehav", "contrastBehavInteract"
    "behav_type": "behavior",

    # Normalization modes
    # 0 = none, 1 = z-score across subjects, 2 = z-score within groups,
    # 3 = RMS scaling across subjects, 4 = RMS scaling within groups
    "normalization": {
        "img": 2,
        "behav": 2,
    },

    # Stack group-wise covariance matrices (conventional behavior PLS)
    "grouped_pls": False,

    # Permutation testing of latent components
    "permutation": {
        "n_permutations": 1000,
        "grouped": False,  # Permute within groups
    },

    # Bootstrap stability of saliences and loadings
    "bootstrap": {
        "n_bootstraps": 1000,
        "grouped": False,  # Resample within groups
        "procrustes_mode": 1,  # 1 = rotate from U only, 2 = average of U and V rotations
        "save_resampling": False,  # Keep every draw (memory heavy)
    },

    # Significance level for latent components
    "alpha": 0.05,

    # Computational settings
    "n_jobs": 1,
    "random_state": None,
    "verbose": 1,
}

VALID_BEHAV_TYPES = ["behavior", "contrast", "contrastBehav", "contrastBehavInteract"]
VALID_NORMALIZATIONS = [0, 1, 2, 3, 4]
VALID_PROCRUSTES_MODES = [1, 2]


class Config:
    """
    Configuration manager for PLSCraft.

    Parameters
    ----------
    config_file : str or Path, optional
        Path to configuration file (YAML or JSON).
    **kwargs
        Additional configuration options to override defaults.

    Attributes
    ----------
    data : dict
        Configuration dictionary.
    """

    def __init__(
        self,
        config_file: Optional[Union[str, Path]] = None,
        **kwargs,
    ):
        # Start with defaults
        self.data = copy.deepcopy(DEFAULT_CONFIG)

        # Load from file if provided
        if config_file is not None:
            self.load_from_file(config_file)

        # Override with kwargs
        self._update_nested(self.data, kwargs)

        self.validate()

    def _update_nested(self, base: Dict, updates: Dict) -> None:
        """Update nested dictionary with another dictionary."""
        for key, value in updates.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._update_nested(base[key], value)
            else:
                base[key] = value

    def load_from_file(self, filepath: Union[str, Path]) -> None:
        """
        Load configuration from a YAML or JSON file.

        Parameters
        ----------
        filepath : str or Path
            Path to configuration file.
        """
        filepath = Path(filepath)

        if not filepath.exists():
            raise FileNotFoundError(f"Configuration file not found: {filepath}")

        logger.info(f"Loading configuration from: {filepath}")

        with open(filepath, "r") as f:
            if filepath.suffix == ".json":
                file_config = json.load(f)
            else:
                file_config = yaml.safe_load(f)

        if file_config is not None:
            self._update_nested(self.data, file_config)

    def save_to_file(self, filepath: Union[str, Path]) -> None:
        """
        Save configuration to a YAML or JSON file.

        Parameters
        ----------
        filepath : str or Path
            Path to output file.
        """
        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)

        with open(filepath, "w") as f:
            if filepath.suffix in [".yaml", ".yml"]:
                yaml.safe_dump(self.data, f, default_flow_style=False, sort_keys=False)
            else:
                json.dump(self.data, f, indent=2)

        logger.info(f"Configuration saved to: {filepath}")

    def validate(self) -> None:
        """
        Validate the configuration.

        Raises
        ------
        InvalidConfigurationError
            If configuration is invalid.
        """
        errors = []

        behav_type = self.data["behav_type"]
        if behav_type not in VALID_BEHAV_TYPES:
            errors.append(f"Invalid behav_type: {behav_type}. Must be one of {VALID_BEHAV_TYPES}")

        for key in ("img", "behav"):
            mode = self.data["normalization"].get(key)
            if _is_bool(mode) or mode not in VALID_NORMALIZATIONS:
                errors.append(f"Invalid normalization.{key}: {mode}. Must be one of {VALID_NORMALIZATIONS}")

        n_perm = self.data["permutation"].get("n_permutations")
        if not _is_positive_int(n_perm):
            errors.append(f"permutation.n_permutations must be a positive integer, got {n_perm}")

        n_boot = self.data["bootstrap"].get("n_bootstraps")
        if not _is_positive_int(n_boot):
            errors.append(f"bootstrap.n_bootstraps must be a positive integer, got {n_boot}")

        procrustes = self.data["bootstrap"].get("procrustes_mode")
        if _is_bool(procrustes) or procrustes not in VALID_PROCRUSTES_MODES:
            errors.append(
                f"Invalid bootstrap.procrustes_mode: {procrustes}. Must be one of {VALID_PROCRUSTES_MODES}"
            )

        alpha = self.data["alpha"]
        if not isinstance(alpha, (int, float)) or not 0 < alpha < 1:
            errors.append(f"alpha must be between 0 and 1, got {alpha}")

        n_jobs = self.data["n_jobs"]
        if _is_bool(n_jobs) or not isinstance(n_jobs, int) or n_jobs == 0:
            errors.append(f"n_jobs must be a non-zero integer, got {n_jobs}")

        # Contrast columns are constant within each group
        if behav_type in VALID_BEHAV_TYPES and behav_type.startswith("contrast"):
            if self.data["normalization"].get("behav") in (2, 4):
                logger.warning(
                    f"normalization.behav {self.data['normalization']['behav']} works within groups "
                    f"and zeroes the contrast columns of behav_type '{behav_type}'"
                )

        if errors:
            raise InvalidConfigurationError(
                "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
            )

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value by key (supports dot notation).

        Parameters
        ----------
        key : str
            Configuration key (e.g., "bootstrap.n_bootstraps").
        default : any
            Default value if key not found.

        Returns
        -------
        any
            Configuration value.
        """
        value = self.data
        for k in key.split("."):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set(self, key: str, value: Any) -> None:
        """
        Set a configuration value by key (supports dot notation).

        Parameters
        ----------
        key : str
            Configuration key (e.g., "permutation.grouped").
        value : any
            Value to set.
        """
        keys = key.split(".")
        data = self.data

        for k in keys[:-1]:
            if k not in data:
                data[k] = {}
            data = data[k]

        data[keys[-1]] = value

    def __getitem__(self, key: str) -> Any:
        """Allow dictionary-style access."""
        return self.data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        """Allow dictionary-style assignment."""
        self.data[key] = value

    def __contains__(self, key: str) -> bool:
        return key in self.data

    def to_dict(self) -> Dict:
        """Return configuration as dictionary."""
        return copy.deepcopy(self.data)

    def summary(self) -> str:
        """
        Get a text summary of the configuration.

        Returns
        -------
        str
            Configuration summary.
        """
        lines = ["Configuration Summary", "=" * 40]

        lines.append(f"\nDesign: {self.data['behav_type']}")
        lines.append(
            f"Normalization: imaging={self.data['normalization']['img']}, "
            f"behavior={self.data['normalization']['behav']}"
        )
        lines.append(f"Grouped PLS: {self.data['grouped_pls']}")

        perm = self.data["permutation"]
        lines.append(f"\nPermutations: {perm['n_permutations']} (grouped: {perm['grouped']})")

        boot = self.data["bootstrap"]
        lines.append(f"Bootstraps: {boot['n_bootstraps']} (grouped: {boot['grouped']})")
        lines.append(f"  Procrustes mode: {boot['procrustes_mode']}")
        lines.append(f"  Save resampling: {boot['save_resampling']}")

        lines.append(f"\nAlpha: {self.data['alpha']}")
        lines.append(f"Random state: {self.data['random_state']}")

        return "\n".join(lines)


def load_config(
    config_file: Optional[Union[str, Path]] = None,
    **kwargs,
) -> Config:
    """
    Load configuration from file and/or keyword arguments.

    Parameters
    ----------
    config_file : str or Path, optional
        Path to configuration file.
    **kwargs
        Additional configuration options.

    Returns
    -------
    Config
        Configuration object.
    """
    return Config(config_file=config_file, **kwargs)


def create_default_config(output_path: Union[str, Path]) -> Path:
    """
    Create a documented default configuration file.

    Parameters
    ----------
    output_path : str or Path
        Path for the output configuration file.

    Returns
    -------
    Path
        Path to created configuration file.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    template = """# ===============================================================================
# PLSCraft Configuration File
# ===============================================================================
# Options for a Partial Least Squares Correlation analysis linking imaging
# variables to behavioral / design variables.
# ===============================================================================

# --- DESIGN ---
# behavior              : behavioral variables only
# contrast              : group contrast only (2 or 3 groups)
# contrastBehav         : group contrast followed by behavioral variables
# contrastBehavInteract : group contrast, behavioral variables and their interactions
behav_type: behavior

# --- NORMALIZATION ---
# 0 = none
# 1 = z-score across all subjects
# 2 = z-score within each group
# 3 = RMS scaling across all subjects (no centering)
# 4 = RMS scaling within each group (no centering)
# Within-group behav normalization (2 or 4) zeroes contrast columns; use 0, 1 or 3 for contrast designs.
normalization:
  img: 2
  behav: 2

# Concatenate group-wise covariance matrices
grouped_pls: false

# --- PERMUTATION TEST ---
permutation:
  n_permutations: 1000
  grouped: false  # permute within groups

# --- BOOTSTRAP ---
bootstrap:
  n_bootstraps: 1000
  grouped: false  # resample within groups
  procrustes_mode: 1  # 1 = rotation from U, 2 = average of U and V rotations
  save_resampling: false  # keep every draw (memory heavy)

# Significance level for latent components
alpha: 0.05

# --- COMPUTATION ---
n_jobs: 1  # worker threads for permutation/bootstrap draws (-1 = all cores)
random_state: null  # integer seed for reproducible draws
verbose: 1  # 0 = warnings, 1 = info, 2 = debug
"""

    with open(output_path, "w") as f:
        f.write(template)

    logger.info(f"Configuration file created: {output_path}")
    return output_path


def _is_bool(value: Any) -> bool:
    return isinstance(value, bool)


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1
