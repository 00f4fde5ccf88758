"""Tests for configuration loading and validation."""

import os

import pytest
import yaml
from pydantic import ValidationError

from src.config import (
    AddressValidationConfig,
    ShipBatchConfig,
    load_config,
    resolve_env_vars,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """No config files or ShipBatch variables in reach."""
    for key in list(os.environ):
        if key.startswith("SHIPBATCH_"):
            monkeypatch.delenv(key)
    for key in ("ADDRESS_VALIDATION_PROVIDER", "USPS_USER_ID", "GOOGLE_ADDRESS_API_KEY"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    return tmp_path


class TestModels:
    """Tests for config model defaults and validation."""

    def test_defaults(self):
        cfg = ShipBatchConfig()
        assert cfg.address_validation.provider == "mock"
        assert cfg.address_validation.max_concurrency == 5
        assert cfg.database.url is None
        assert cfg.api.port == 8000

    def test_provider_is_case_insensitive(self):
        assert AddressValidationConfig(provider=" USPS ").provider == "usps"
        assert AddressValidationConfig(provider="").provider == "mock"

    def test_rejects_unknown_provider(self):
        with pytest.raises(ValidationError):
            AddressValidationConfig(provider="smartystreets")

    def test_rejects_zero_concurrency(self):
        with pytest.raises(ValidationError):
            AddressValidationConfig(max_concurrency=0)


class TestResolveEnvVars:
    """Tests for ${VAR} resolution."""

    def test_resolves_present_and_missing(self, monkeypatch):
        monkeypatch.setenv("USPS_ID", "abc")
        assert resolve_env_vars("id=${USPS_ID};x=${NOT_SET_ANYWHERE}") == "id=abc;x="


class TestLoadConfig:
    """Tests for file discovery and env overrides."""

    def test_no_file_gives_defaults(self):
        assert load_config() == ShipBatchConfig()

    def test_explicit_path(self, clean_env, monkeypatch):
        monkeypatch.setenv("USPS_ID", "from-env")
        path = clean_env / "custom.yaml"
        path.write_text(yaml.safe_dump({
            "address_validation": {"provider": "usps", "usps_user_id": "${USPS_ID}"},
            "database": {"url": "sqlite:///x.db"},
        }))

        cfg = load_config(str(path))
        assert cfg.address_validation.provider == "usps"
        assert cfg.address_validation.usps_user_id == "from-env"
        assert cfg.database.url == "sqlite:///x.db"

    def test_missing_explicit_path(self):
        with pytest.raises(FileNotFoundError):
            load_config("/nonexistent/shipbatch.yaml")

    def test_working_directory_file(self, clean_env):
        (clean_env / "shipbatch.yml").write_text("api:\n  port: 9000\n")
        assert load_config().api.port == 9000

    def test_home_file(self, clean_env):
        (clean_env / ".shipbatch").mkdir()
        (clean_env / ".shipbatch" / "config.yaml").write_text("api:\n  host: 0.0.0.0\n")
        assert load_config().api.host == "0.0.0.0"

    def test_config_path_variable_wins(self, clean_env, monkeypatch):
        (clean_env / "shipbatch.yaml").write_text("api:\n  port: 9000\n")
        other = clean_env / "other.yaml"
        other.write_text("api:\n  port: 9200\n")
        monkeypatch.setenv("SHIPBATCH_CONFIG_PATH", str(other))
        assert load_config().api.port == 9200

    def test_section_overrides(self, clean_env, monkeypatch):
        (clean_env / "shipbatch.yaml").write_text("address_validation:\n  provider: google\n")
        monkeypatch.setenv("SHIPBATCH_ADDRESS_VALIDATION_PROVIDER", "usps")
        monkeypatch.setenv("SHIPBATCH_ADDRESS_VALIDATION_MAX_CONCURRENCY", "3")
        monkeypatch.setenv("SHIPBATCH_API_PORT", "8100")

        cfg = load_config()
        assert cfg.address_validation.provider == "usps"
        assert cfg.address_validation.max_concurrency == 3
        assert cfg.api.port == 8100

    def test_legacy_variables_fill_unset_values(self, clean_env, monkeypatch):
        (clean_env / "shipbatch.yaml").write_text("address_validation:\n  usps_user_id: yaml-id\n")
        monkeypatch.setenv("ADDRESS_VALIDATION_PROVIDER", "USPS")
        monkeypatch.setenv("USPS_USER_ID", "legacy-id")
        monkeypatch.setenv("GOOGLE_ADDRESS_API_KEY", "gkey")

        cfg = load_config()
        assert cfg.address_validation.provider == "usps"
        assert cfg.address_validation.usps_user_id == "yaml-id"
        assert cfg.address_validation.google_api_key == "gkey"

    def test_user_config_dir_comes_from_paths_helper(self, clean_env, monkeypatch):
        config_dir = clean_env / "elsewhere"
        config_dir.mkdir()
        (config_dir / "config.yaml").write_text("api:\n  port: 9300\n")
        monkeypatch.setattr("src.config.get_config_dir", lambda: config_dir)
        assert load_config().api.port == 9300
