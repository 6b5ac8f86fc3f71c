"""Tests for the configuration module."""

import json
import tempfile
from pathlib import Path

import pytest
import yaml

from plscraft.config import DEFAULT_CONFIG, Config, create_default_config, load_config
from plscraft.exceptions import InvalidConfigurationError


class TestConfig:
    """Tests for Config class."""

    def test_default_config(self):
        """Test default configuration values."""
        config = Config()

        assert config.get("behav_type") == "behavior"
        assert config.get("normalization.img") == 2
        assert config.get("normalization.behav") == 2
        assert config.get("grouped_pls") is False
        assert config.get("permutation.n_permutations") == 1000
        assert config.get("bootstrap.n_bootstraps") == 1000
        assert config.get("bootstrap.procrustes_mode") == 1
        assert config.get("random_state") is None

    def test_defaults_not_shared(self):
        """Test that instances do not share the default dictionary."""
        config = Config()
        config.set("bootstrap.grouped", True)

        assert DEFAULT_CONFIG["bootstrap"]["grouped"] is False
        assert Config().get("bootstrap.grouped") is False

    def test_config_override(self):
        """Test configuration override with kwargs."""
        config = Config(behav_type="contrastBehav", normalization={"behav": 1}, bootstrap={"n_bootstraps": 50})

        assert config.get("behav_type") == "contrastBehav"
        assert config.get("normalization.behav") == 1
        assert config.get("normalization.img") == 2
        assert config.get("bootstrap.n_bootstraps") == 50
        assert config.get("bootstrap.procrustes_mode") == 1

    def test_config_from_yaml(self):
        """Test loading configuration from YAML file."""
        yaml_content = """
behav_type: contrast
normalization:
  behav: 0
permutation:
  n_permutations: 500
  grouped: true
"""
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            f.write(yaml_content)
            f.flush()

            config = Config(config_file=f.name)

        assert config.get("behav_type") == "contrast"
        assert config.get("normalization.behav") == 0
        assert config.get("permutation.n_permutations") == 500
        assert config.get("permutation.grouped") is True

        Path(f.name).unlink()

    def test_config_from_json(self):
        """Test loading configuration from JSON file."""
        json_content = {"grouped_pls": True, "bootstrap": {"procrustes_mode": 2}}

        with tempfile.NamedTemporaryFile(mode="w", suffix=".json", delete=False) as f:
            json.dump(json_content, f)
            f.flush()

            config = Config(config_file=f.name)

        assert config.get("grouped_pls") is True
        assert config.get("bootstrap.procrustes_mode") == 2

        Path(f.name).unlink()

    def test_config_save_yaml(self, temp_dir):
        """Test saving configuration to YAML."""
        config = Config(alpha=0.01)
        path = temp_dir / "config.yaml"
        config.save_to_file(path)

        with open(path) as f:
            loaded = yaml.safe_load(f)

        assert loaded["alpha"] == 0.01
        assert Config(config_file=path).to_dict() == config.to_dict()

    def test_config_save_json(self, temp_dir):
        """Test saving configuration to JSON."""
        config = Config(random_state=7)
        path = temp_dir / "config.json"
        config.save_to_file(path)

        with open(path) as f:
            loaded = json.load(f)

        assert loaded["random_state"] == 7

    def test_missing_file(self):
        """Test that a missing configuration file is reported."""
        with pytest.raises(FileNotFoundError):
            Config(config_file="does/not/exist.yaml")

    def test_dict_access(self):
        """Test dictionary-style access."""
        config = Config()
        config["alpha"] = 0.1

        assert config["alpha"] == 0.1
        assert "bootstrap" in config
        assert config.get("bootstrap.unknown", "fallback") == "fallback"

    def test_summary(self):
        """Test summary generation."""
        summary = Config().summary()

        assert "Configuration Summary" in summary
        assert "Permutations: 1000" in summary


class TestConfigValidation:
    """Tests for configuration validation."""

    @pytest.mark.parametrize(
        "overrides",
        [
            {"behav_type": "behaviour"},
            {"normalization": {"img": 5}},
            {"normalization": {"behav": True}},
            {"permutation": {"n_permutations": 0}},
            {"bootstrap": {"n_bootstraps": -10}},
            {"bootstrap": {"n_bootstraps": 2.5}},
            {"bootstrap": {"procrustes_mode": 3}},
            {"alpha": 1.5},
            {"n_jobs": 0},
        ],
    )
    def test_invalid_values(self, overrides):
        """Test that out-of-domain options are rejected."""
        with pytest.raises(InvalidConfigurationError):
            Config(**overrides)

    def test_contrast_with_grouped_pls(self):
        """Test that contrast designs can be group-stacked."""
        config = Config(behav_type="contrast", grouped_pls=True, normalization={"behav": 1})

        assert config.get("grouped_pls") is True

    @pytest.mark.parametrize("mode", [2, 4])
    def test_contrast_with_within_group_normalization(self, mode, caplog):
        """Test that within-group normalization of a contrast design is accepted with a log warning."""
        with caplog.at_level("WARNING", logger="plscraft.config"):
            config = Config(behav_type="contrastBehavInteract", normalization={"behav": mode})

        assert config.get("normalization.behav") == mode
        assert "zeroes the contrast columns" in caplog.text

    def test_contrast_with_default_config(self):
        """Test that only the design type is needed to select a contrast design."""
        assert Config(behav_type="contrast").get("normalization.behav") == 2

    def test_all_errors_reported(self):
        """Test that every invalid option is listed in one error."""
        with pytest.raises(InvalidConfigurationError) as excinfo:
            Config(behav_type="unknown", alpha=0, n_jobs=0)

        message = str(excinfo.value)
        assert "behav_type" in message
        assert "alpha" in message
        assert "n_jobs" in message

    def test_error_is_value_error(self):
        """Test that configuration errors are also ValueErrors."""
        with pytest.raises(ValueError):
            Config(alpha=-1)


class TestConfigHelpers:
    """Tests for configuration helper functions."""

    def test_load_config(self):
        """Test load_config with keyword arguments only."""
        config = load_config(n_jobs=-1)

        assert config.get("n_jobs") == -1

    def test_create_default_config(self, temp_dir):
        """Test that the documented template loads back to the defaults."""
        path = create_default_config(temp_dir / "sub" / "plscraft.yaml")

        assert path.exists()
        assert Config(config_file=path).to_dict() == DEFAULT_CONFIG
