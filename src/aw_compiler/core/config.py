"""Compiler configuration loader.

Loads compiler settings from ~/.aw-compiler/config.yaml with defaults.
CLI flags are layered on top with CompilerConfig.model_copy(update=...).
"""

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

# Default config path
DEFAULT_CONFIG_PATH = Path.home() / ".aw-compiler" / "config.yaml"

# Pinned tool versions used when the workflow does not override them
DEFAULT_FIREWALL_VERSION = "v0.13.0"
DEFAULT_ENGINE_VERSIONS: dict[str, str] = {
    "copilot": "0.0.374",
    "claude": "2.0.76",
    "codex": "0.77.0",
    "gemini": "0.22.5",
}

_REPO_SLUG_CHARS = set("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789-_.")


class CompilerConfig(BaseModel):
    """Configuration for a compile invocation.

    Attributes:
        strict: Promote warnings that guard security-relevant settings to errors.
        trial_mode: Check out trial_logical_repo in place of the default checkout.
        trial_logical_repo: Repository slug used in trial mode.
        action_mode: Explicit action mode override ("dev", "release", "script").
        engine_versions: Default CLI versions per engine id.
        firewall_version: Version of the firewall wrapper to install.
        cli_version: Compiler version recorded in aw_info.
        skip_validation: Skip semantic validation (for debugging only).

    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    strict: bool = False
    trial_mode: bool = False
    trial_logical_repo: str = ""
    action_mode: str | None = None
    engine_versions: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_ENGINE_VERSIONS)
    )
    firewall_version: str = DEFAULT_FIREWALL_VERSION
    cli_version: str = "dev"
    skip_validation: bool = False

    @field_validator("trial_logical_repo", mode="after")
    @classmethod
    def validate_trial_repo(cls, v: str) -> str:
        """Trial repository must be an owner/repo slug when set."""
        if not v:
            return v
        parts = v.split("/")
        if len(parts) != 2 or not all(parts) or not all(set(p) <= _REPO_SLUG_CHARS for p in parts):
            raise ValueError(f"trial repository must be in 'owner/repo' format, got '{v}'")
        return v

    @field_validator("engine_versions", mode="after")
    @classmethod
    def fill_engine_versions(cls, v: dict[str, str]) -> dict[str, str]:
        """Unspecified engines keep their pinned default versions."""
        merged = dict(DEFAULT_ENGINE_VERSIONS)
        merged.update(v)
        return merged

    def engine_version(self, engine_id: str) -> str:
        """Return the default version for an engine id ("" when unknown)."""
        return self.engine_versions.get(engine_id, "")


def load_config(config_path: Path | None = None) -> CompilerConfig:
    """Load compiler configuration from YAML file.

    Args:
        config_path: Path to config file. Defaults to ~/.aw-compiler/config.yaml

    Returns:
        CompilerConfig with loaded or default values.

    """
    path = config_path or DEFAULT_CONFIG_PATH

    if not path.exists():
        logger.debug("Compiler config not found at %s, using defaults", path)
        return CompilerConfig()

    try:
        content = path.read_text(encoding="utf-8")
        data = yaml.safe_load(content) or {}
        if not isinstance(data, dict):
            logger.warning("Compiler config at %s is not a mapping, using defaults", path)
            return CompilerConfig()
        normalized = {str(k).replace("-", "_"): v for k, v in data.items()}
        return CompilerConfig(**normalized)
    except (yaml.YAMLError, OSError, UnicodeDecodeError, ValidationError) as e:
        logger.warning("Failed to load compiler config from %s: %s", path, e)
        return CompilerConfig()


def is_debug_enabled() -> bool:
    """Return True when the DEBUG environment variable requests verbose logging."""
    value = os.environ.get("DEBUG", "").strip().lower()
    return value not in ("", "0", "false", "no", "off")


# Cached config instance
_config: CompilerConfig | None = None


def get_config() -> CompilerConfig:
    """Get cached compiler configuration.

    Loads config on first call, returns cached instance afterwards.

    Returns:
        CompilerConfig instance.

    """
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Reset cached config (useful for testing)."""
    global _config
    _config = None
