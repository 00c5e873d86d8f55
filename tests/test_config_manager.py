"""Tests for configuration loading and precedence"""

import pytest
import yaml

from condakit.domain.config import AppConfig, AuditConfig, InstallerConfig, RetryPolicy
from condakit.domain.errors import ConfigurationError, PolicyValidationError
from condakit.domain.models.command import SelectionMode
from condakit.infrastructure.config.config_manager import CONFIG_FILE_NAME, ConfigManager


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    """Keep config discovery away from any real .condakit.yml"""
    monkeypatch.chdir(tmp_path)
    return tmp_path


def write_config(path, data):
    path.write_text(yaml.dump(data), encoding="utf-8")
    return path


class TestDefaults:
    def test_default_config_is_valid(self):
        manager = ConfigManager(env={})
        assert isinstance(manager.config, AppConfig)
        assert manager.with_retry_overrides() == RetryPolicy()
        assert isinstance(manager.get_installer_config(), InstallerConfig)
        assert isinstance(manager.get_audit_config(), AuditConfig)


class TestConfigFile:
    def test_explicit_path(self, tmp_path):
        path = write_config(tmp_path / "custom.yml", {"retry": {"max_attempts": 5, "jitter": 0.0}})
        manager = ConfigManager(config_path=path, env={})
        assert manager.with_retry_overrides().max_attempts == 5
        assert manager.with_retry_overrides().jitter == 0.0
        assert manager.with_retry_overrides().initial_delay == 10.0

    def test_string_path(self, tmp_path):
        path = write_config(tmp_path / "custom.yml", {"installer": {"tool": "auto"}})
        manager = ConfigManager(config_path=str(path), env={})
        assert manager.config.installer.tool == "auto"

    def test_discovered_in_parent_directory(self, isolated_cwd, monkeypatch):
        write_config(isolated_cwd / CONFIG_FILE_NAME, {"retry": {"max_delay": 300}})
        child = isolated_cwd / "project" / "sub"
        child.mkdir(parents=True)
        monkeypatch.chdir(child)
        manager = ConfigManager(env={})
        assert manager.with_retry_overrides().max_delay == 300

    def test_invalid_value(self, tmp_path):
        path = write_config(tmp_path / "bad.yml", {"retry": {"backoff_multiplier": 0.5}})
        manager = ConfigManager(config_path=path, env={})
        with pytest.raises(PolicyValidationError, match="backoff_multiplier"):
            manager.with_retry_overrides()

    def test_unknown_retry_key_rejected(self, tmp_path):
        path = write_config(tmp_path / "bad.yml", {"retry": {"attempts": 3}})
        manager = ConfigManager(config_path=path, env={})
        with pytest.raises(PolicyValidationError, match="attempts"):
            manager.with_retry_overrides()

    def test_retry_section_must_be_mapping(self, tmp_path):
        path = tmp_path / "bad.yml"
        path.write_text("retry: 5\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="'retry' must be a mapping"):
            ConfigManager(config_path=path, env={})

    def test_unknown_section_rejected(self, tmp_path):
        path = write_config(tmp_path / "bad.yml", {"bogus": {"x": 1}})
        with pytest.raises(ConfigurationError, match="bogus"):
            ConfigManager(config_path=path, env={})

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "broken.yml"
        path.write_text("retry: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="Failed to load config"):
            ConfigManager(config_path=path, env={})

    def test_non_mapping_top_level(self, tmp_path):
        path = tmp_path / "list.yml"
        path.write_text("- 1\n- 2\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="mapping"):
            ConfigManager(config_path=path, env={})


class TestEnvironmentOverrides:
    def test_retry_variables(self):
        env = {
            "CONDA_RETRY_DELAY": "3",
            "CONDA_RETRY_MAX": "6",
            "CONDA_RETRY_BACKOFF": "2",
            "CONDA_RETRY_MAX_DELAY": "30",
            "CONDA_RETRY_JITTER": "0.1",
            "CONDA_RETRY_QUIET": "0",
        }
        retry = ConfigManager(env=env).with_retry_overrides()
        assert retry == RetryPolicy(
            initial_delay=3, max_attempts=6, backoff_multiplier=2, max_delay=30, jitter=0.1, quiet=False
        )

    def test_env_beats_file(self, tmp_path):
        path = write_config(tmp_path / "c.yml", {"retry": {"max_attempts": 5}})
        manager = ConfigManager(config_path=path, env={"CONDA_RETRY_MAX": "7"})
        assert manager.with_retry_overrides().max_attempts == 7

    def test_empty_variable_ignored(self):
        assert ConfigManager(env={"CONDA_RETRY_MAX": ""}).with_retry_overrides().max_attempts == 0

    def test_invalid_variable(self):
        manager = ConfigManager(env={"CONDA_RETRY_JITTER": "2"})
        with pytest.raises(PolicyValidationError, match="jitter"):
            manager.with_retry_overrides()

    def test_non_numeric_variable(self):
        manager = ConfigManager(env={"CONDA_RETRY_DELAY": "ten"})
        with pytest.raises(PolicyValidationError, match="initial_delay"):
            manager.with_retry_overrides()

    def test_infinite_variable_rejected(self):
        manager = ConfigManager(env={"CONDA_RETRY_DELAY": "inf", "CONDA_RETRY_MAX_DELAY": "inf"})
        with pytest.raises(PolicyValidationError, match="initial_delay"):
            manager.with_retry_overrides()

    def test_python_for_audit(self):
        manager = ConfigManager(env={"PYTHON": "/opt/py/bin/python"})
        assert manager.get_audit_config().python == "/opt/py/bin/python"


class TestCliOverrides:
    def test_overrides_beat_env(self):
        manager = ConfigManager(env={"CONDA_RETRY_MAX": "7"})
        policy = manager.with_retry_overrides(max_attempts=9, jitter=None)
        assert policy.max_attempts == 9
        assert policy.jitter == 0.2

    def test_env_cap_with_lower_cli_delay(self):
        manager = ConfigManager(env={"CONDA_RETRY_MAX_DELAY": "5"})
        policy = manager.with_retry_overrides(initial_delay=1)
        assert policy.max_delay == 5
        assert policy.initial_delay == 1

    def test_file_cap_with_lower_cli_delay(self, tmp_path):
        path = write_config(tmp_path / "c.yml", {"retry": {"max_delay": 5}})
        policy = ConfigManager(config_path=path, env={}).with_retry_overrides(initial_delay="1")
        assert (policy.initial_delay, policy.max_delay) == (1.0, 5.0)

    def test_cli_cap_rescues_file_delay(self, tmp_path):
        path = write_config(tmp_path / "c.yml", {"retry": {"initial_delay": 300}})
        policy = ConfigManager(config_path=path, env={}).with_retry_overrides(max_delay=600)
        assert policy.max_delay == 600

    def test_invalid_override(self):
        manager = ConfigManager(env={})
        with pytest.raises(PolicyValidationError, match="max_delay"):
            manager.with_retry_overrides(initial_delay=500)


class TestInstallerRequest:
    def test_default_is_fixed_conda(self):
        request = ConfigManager(env={}).installer_request()
        assert request.mode == SelectionMode.FIXED_DEFAULT
        assert request.candidates == ("conda",)

    def test_auto_from_env(self):
        request = ConfigManager(env={"CONDA_INSTALLER": "auto"}).installer_request()
        assert request.mode == SelectionMode.AUTO
        assert request.candidates == ("mamba", "conda")

    def test_cli_override_is_explicit(self):
        request = ConfigManager(env={"CONDA_INSTALLER": "auto"}).installer_request("mamba")
        assert request.mode == SelectionMode.EXPLICIT
        assert request.candidates == ("mamba",)

    def test_custom_candidates(self, tmp_path):
        path = write_config(
            tmp_path / "c.yml", {"installer": {"tool": "AUTO", "candidates": ["micromamba", "mamba", "conda"]}}
        )
        request = ConfigManager(config_path=path, env={}).installer_request()
        assert request.candidates == ("micromamba", "mamba", "conda")

    def test_empty_candidates_rejected(self, tmp_path):
        path = write_config(tmp_path / "c.yml", {"installer": {"candidates": []}})
        with pytest.raises(ConfigurationError, match="candidates"):
            ConfigManager(config_path=path, env={})


class TestActiveEnvName:
    def test_default_env_variable(self):
        assert ConfigManager(env={"CONDA_DEFAULT_ENV": "ml"}).active_env_name() == "ml"

    def test_prefix_basename(self):
        assert ConfigManager(env={"CONDA_PREFIX": "/opt/conda/envs/gpu/"}).active_env_name() == "gpu"

    def test_unknown(self):
        assert ConfigManager(env={}).active_env_name() == "(base or unknown)"
