"""YAML configuration loader with env var resolution and Pydantic validation.

Loads config from (priority order):
1. --config <path> CLI flag
2. ./shipbatch.yaml or ./shipbatch.yml (working directory)
3. ~/.shipbatch/config.yaml (user home)

Environment variables override YAML: SHIPBATCH_<SECTION>_<KEY>.
${VAR} references in YAML values resolve from environment at load time.
The variable names used by earlier deployments (ADDRESS_VALIDATION_PROVIDER,
USPS_USER_ID, GOOGLE_ADDRESS_API_KEY) fill any address validation value
that is still unset.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.utils.paths import get_config_dir

logger = logging.getLogger(__name__)

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")

_LEGACY_ENV = {
    "provider": "ADDRESS_VALIDATION_PROVIDER",
    "usps_user_id": "USPS_USER_ID",
    "google_api_key": "GOOGLE_ADDRESS_API_KEY",
}


def resolve_env_vars(value: str) -> str:
    """Resolve ${VAR} references in a string from environment variables.

    Args:
        value: String potentially containing ${VAR} references.

    Returns:
        String with all ${VAR} references replaced by their env values.
        Missing env vars resolve to empty string.
    """
    def _replace(match: re.Match) -> str:
        return os.environ.get(match.group(1), "")

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _resolve_env_vars_recursive(data: Any) -> Any:
    """Recursively resolve ${VAR} references in a nested data structure."""
    if isinstance(data, str):
        return resolve_env_vars(data)
    elif isinstance(data, dict):
        return {k: _resolve_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars_recursive(item) for item in data]
    return data


class AddressValidationConfig(BaseModel):
    """Address validation provider selection and credentials."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    provider: Literal["usps", "google", "mock"] = "mock"
    usps_user_id: str = ""
    google_api_key: str = ""
    timeout_seconds: float = Field(default=5.0, gt=0)
    max_concurrency: int = Field(default=5, ge=1)

    @field_validator("provider", mode="before")
    @classmethod
    def normalize_provider(cls, value: Any) -> Any:
        """Accept provider names in any case."""
        if isinstance(value, str):
            return value.strip().lower() or "mock"
        return value


class DatabaseConfig(BaseModel):
    """Database connection configuration."""

    url: str | None = None


class ApiConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "127.0.0.1"
    port: int = 8000
    allowed_origins: list[str] = ["http://localhost:5173"]


class ShipBatchConfig(BaseModel):
    """Top-level ShipBatch configuration."""

    address_validation: AddressValidationConfig = AddressValidationConfig()
    database: DatabaseConfig = DatabaseConfig()
    api: ApiConfig = ApiConfig()


def _find_config_file() -> Path | None:
    """Search for config file in standard locations.

    SHIPBATCH_CONFIG_PATH, when set, is checked before the standard
    locations.

    Returns:
        Path to config file if found, None otherwise.
    """
    env_path = os.environ.get("SHIPBATCH_CONFIG_PATH", "").strip()
    if env_path and Path(env_path).exists():
        return Path(env_path)
    candidates = [
        Path.cwd() / "shipbatch.yaml",
        Path.cwd() / "shipbatch.yml",
        get_config_dir() / "config.yaml",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply SHIPBATCH_<SECTION>_<KEY> env var overrides to config data.

    Matches section names by longest prefix so multi-word section names
    like ``address_validation`` are handled correctly. For example,
    ``SHIPBATCH_ADDRESS_VALIDATION_PROVIDER`` maps to section
    ``address_validation``, field ``provider``.

    Args:
        data: Parsed YAML config dict.

    Returns:
        Config dict with env var overrides applied.
    """
    prefix = "SHIPBATCH_"
    # Known sections sorted longest-first so greedy prefix match works.
    known_sections = sorted(
        ShipBatchConfig.model_fields.keys(), key=len, reverse=True
    )
    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue
        suffix = key[len(prefix):].lower()
        matched_section = None
        matched_field = None
        for section in known_sections:
            section_prefix = section + "_"
            if suffix.startswith(section_prefix):
                matched_section = section
                matched_field = suffix[len(section_prefix):]
                break
        if matched_section is None or not matched_field:
            continue
        if matched_section not in data or data[matched_section] is None:
            data[matched_section] = {}
        if isinstance(data[matched_section], dict):
            # Coerce to int, bool, or keep as string
            try:
                data[matched_section][matched_field] = int(value)
            except ValueError:
                if value.lower() in ("true", "false"):
                    data[matched_section][matched_field] = value.lower() == "true"
                else:
                    data[matched_section][matched_field] = value
    return data


def _apply_legacy_env(data: dict[str, Any]) -> dict[str, Any]:
    """Fill unset address validation values from the legacy env names."""
    section = data.get("address_validation")
    if not isinstance(section, dict):
        section = {}
    for field_name, env_name in _LEGACY_ENV.items():
        if section.get(field_name):
            continue
        value = os.environ.get(env_name, "").strip()
        if value:
            section[field_name] = value
    if section:
        data["address_validation"] = section
    return data


def load_config(config_path: str | None = None) -> ShipBatchConfig:
    """Load ShipBatch configuration from YAML file with env var resolution.

    Args:
        config_path: Explicit path to config file. If None, searches
            standard locations (cwd, then ~/.shipbatch/).

    Returns:
        Parsed and validated ShipBatchConfig. Defaults apply when no
        file is found.

    Raises:
        FileNotFoundError: If an explicit config_path does not exist.
    """
    if config_path:
        path: Path | None = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        path = _find_config_file()

    raw_data: dict[str, Any] = {}
    if path is not None:
        logger.info("Loading config from %s", path)
        with open(path) as f:
            raw_data = yaml.safe_load(f) or {}

    # Resolve ${VAR} references
    data = _resolve_env_vars_recursive(raw_data)

    # Apply SHIPBATCH_ env var overrides, then legacy names
    data = _apply_env_overrides(data)
    data = _apply_legacy_env(data)

    # Validate with Pydantic
    return ShipBatchConfig(**data)
