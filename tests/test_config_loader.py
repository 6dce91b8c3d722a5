"""
Tests for configuration models and loader.

This module tests the HostConfig model and the ConfigLoader class including
file loading, environment variable processing and configuration saving.

测试配置模型和配置加载器。
"""

import json
from pathlib import Path
from typing import Any, Dict

import pytest
import yaml

from kotori_plugins.infrastructure.config.loader import ConfigLoader
from kotori_plugins.infrastructure.config.models import HostConfig, NetworkConfig, StorageConfig


class TestHostConfig:
    """Test cases for HostConfig."""

    def test_defaults(self) -> None:
        """Default configuration matches the documented values."""
        config = HostConfig()

        assert config.command_prefix == "/"
        assert config.storage.max_value_bytes == 1024 * 1024
        assert config.network.enforce_allow_list is True
        assert "api.github.com" in config.network.allowed_domains
        assert config.plugins.user_plugin_directory == "~/kotori-plugins"
        assert config.data_dir == Path(config.data_path).expanduser()

    def test_log_level_normalized(self) -> None:
        """Log level is upper-cased."""
        config = HostConfig.from_dict({"logging": {"level": "debug"}})

        assert config.logging.level == "DEBUG"

    @pytest.mark.parametrize("prefix", ["", " /", "/ "])
    def test_invalid_prefix(self, prefix: str) -> None:
        """Empty or padded prefixes are rejected."""
        with pytest.raises(ValueError, match="prefix"):
            HostConfig(command_prefix=prefix)

    def test_non_positive_limits(self) -> None:
        """Storage and network limits must be positive."""
        with pytest.raises(ValueError, match="Storage value ceiling"):
            HostConfig(storage=StorageConfig(max_value_bytes=0))
        with pytest.raises(ValueError, match="Network timeout"):
            HostConfig(network=NetworkConfig(timeout=-1))

    def test_dict_round_trip(self) -> None:
        """to_dict output is accepted by from_dict."""
        config = HostConfig(command_prefix="!", data_path="/srv/kotori")

        restored = HostConfig.from_dict(config.to_dict())

        assert restored == config

    def test_unused_keys_not_serialized(self) -> None:
        """Serialized configuration only carries settings the host reads."""
        data = HostConfig().to_dict()

        assert "default_categories" not in data
        assert "format" not in data["logging"]
        assert set(data["logging"]) == {
            "level", "log_directory", "max_file_size", "backup_count",
            "console_enabled", "file_enabled"}


class TestConfigLoader:
    """Test cases for ConfigLoader class."""

    @pytest.fixture
    def config_loader(self) -> ConfigLoader:
        """Create a ConfigLoader instance."""
        return ConfigLoader()

    @pytest.fixture(autouse=True)
    def clean_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Remove KOTORI_* variables from the environment."""
        for name in ("DATA_PATH", "COMMAND_PREFIX", "PLUGIN_PATH", "SCAN_SOURCES",
                     "NETWORK_ALLOW_LIST", "ALLOWED_DOMAINS", "LOG_LEVEL", "LOG_DIR"):
            monkeypatch.delenv(f"KOTORI_{name}", raising=False)

    @pytest.fixture
    def sample_config_dict(self) -> Dict[str, Any]:
        """Sample configuration dictionary."""
        return {
            "data_path": "/var/lib/kotori",
            "command_prefix": "!",
            "plugins": {
                "project_plugin_directory": "extensions",
                "scan_sources": False,
            },
            "network": {
                "allowed_domains": ["api.example.com"],
                "timeout": 5.0,
            },
            "logging": {
                "level": "WARNING",
            },
        }

    def test_load_without_file(self, config_loader: ConfigLoader) -> None:
        """Loading without a file gives defaults."""
        config = config_loader.load_config()

        assert config == HostConfig()

    def test_load_yaml(self, config_loader: ConfigLoader, tmp_path: Path,
                       sample_config_dict: Dict[str, Any]) -> None:
        """Load configuration from YAML."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.safe_dump(sample_config_dict))

        config = config_loader.load_config(str(config_file))

        assert config.data_path == "/var/lib/kotori"
        assert config.command_prefix == "!"
        assert config.plugins.project_plugin_directory == "extensions"
        assert config.plugins.scan_sources is False
        assert config.network.allowed_domains == ["api.example.com"]
        assert config.network.enforce_allow_list is True
        assert config.logging.level == "WARNING"
        assert config.config_file_path == str(config_file)

    def test_load_json(self, config_loader: ConfigLoader, tmp_path: Path,
                       sample_config_dict: Dict[str, Any]) -> None:
        """Load configuration from JSON."""
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps(sample_config_dict))

        config = config_loader.load_config(str(config_file))

        assert config.network.timeout == 5.0

    def test_missing_file(self, config_loader: ConfigLoader, tmp_path: Path) -> None:
        """Missing configuration file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            config_loader.load_config(str(tmp_path / "missing.yaml"))

    def test_unsupported_format(self, config_loader: ConfigLoader, tmp_path: Path) -> None:
        """Unknown file extensions are rejected."""
        config_file = tmp_path / "config.toml"
        config_file.write_text("name = 'x'")

        with pytest.raises(ValueError, match="Unsupported configuration file format"):
            config_loader.load_config(str(config_file))

    def test_invalid_yaml(self, config_loader: ConfigLoader, tmp_path: Path) -> None:
        """Malformed YAML is reported as ValueError."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("plugins: [unclosed")

        with pytest.raises(ValueError, match="Invalid YAML"):
            config_loader.load_config(str(config_file))

    def test_environment_overrides(self, config_loader: ConfigLoader, tmp_path: Path,
                                   sample_config_dict: Dict[str, Any],
                                   monkeypatch: pytest.MonkeyPatch) -> None:
        """Environment variables override file values."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.safe_dump(sample_config_dict))
        monkeypatch.setenv("KOTORI_DATA_PATH", str(tmp_path / "data"))
        monkeypatch.setenv("KOTORI_PLUGIN_PATH", "/opt/kotori-plugins")
        monkeypatch.setenv("KOTORI_NETWORK_ALLOW_LIST", "false")
        monkeypatch.setenv("KOTORI_ALLOWED_DOMAINS", "api.one.com, api.two.com,")
        monkeypatch.setenv("KOTORI_LOG_LEVEL", "debug")

        config = config_loader.load_config(str(config_file))

        assert config.data_path == str(tmp_path / "data")
        assert config.plugins.user_plugin_directory == "/opt/kotori-plugins"
        assert config.plugins.project_plugin_directory == "extensions"
        assert config.network.enforce_allow_list is False
        assert config.network.allowed_domains == ["api.one.com", "api.two.com"]
        assert config.network.timeout == 5.0
        assert config.logging.level == "DEBUG"

    @pytest.mark.parametrize("value,expected", [
        ("true", True), ("1", True), ("yes", True), ("on", True),
        ("false", False), ("0", False), ("off", False),
    ])
    def test_boolean_parsing(self, config_loader: ConfigLoader, monkeypatch: pytest.MonkeyPatch,
                             value: str, expected: bool) -> None:
        """Boolean environment values."""
        monkeypatch.setenv("KOTORI_SCAN_SOURCES", value)

        assert config_loader.load_config().plugins.scan_sources is expected

    @pytest.mark.parametrize("suffix", ["yaml", "yml"])
    def test_save_and_reload(self, config_loader: ConfigLoader, tmp_path: Path, suffix: str) -> None:
        """Saved configuration can be loaded again."""
        config = HostConfig(command_prefix="!", data_path=str(tmp_path / "data"))
        output = tmp_path / f"config.{suffix}"

        config_loader.save_config(config, str(output))
        reloaded = config_loader.load_config(str(output))

        assert reloaded.command_prefix == "!"
        assert reloaded.data_path == str(tmp_path / "data")
        assert "config_file_path" not in output.read_text()

    @pytest.mark.parametrize("name", ["config.json", "config.ini", "config"])
    def test_save_requires_yaml(self, config_loader: ConfigLoader, tmp_path: Path, name: str) -> None:
        """Saving is only supported for YAML files."""
        with pytest.raises(ValueError, match="only be saved as YAML"):
            config_loader.save_config(HostConfig(), str(tmp_path / name))

        assert not (tmp_path / name).exists()

    def test_non_mapping_file_rejected(self, config_loader: ConfigLoader, tmp_path: Path) -> None:
        """A configuration file must hold a mapping."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("- data_path\n- command_prefix\n")

        with pytest.raises(ValueError, match="must be a mapping"):
            config_loader.load_config(str(config_file))

    def test_empty_file_gives_defaults(self, config_loader: ConfigLoader, tmp_path: Path) -> None:
        """An empty YAML file loads as defaults."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("")

        config = config_loader.load_config(str(config_file))

        assert config.command_prefix == HostConfig().command_prefix
        assert config.config_file_path == str(config_file)

    def test_invalid_environment_value(self, config_loader: ConfigLoader,
                                       monkeypatch: pytest.MonkeyPatch) -> None:
        """Environment values pass the same validation as file values."""
        monkeypatch.setenv("KOTORI_COMMAND_PREFIX", " ")

        with pytest.raises(ValueError, match="prefix"):
            config_loader.load_config()
