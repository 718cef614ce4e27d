"""YAML configuration loading with environment overrides.

A config file has a ``settings`` section (engine tuning, ``CrawlSettings``),
an optional ``options`` section (what to audit, ``AuditOptions``) and an
optional ``environments`` section whose entries are deep-merged over the
rest when selected.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional, Union
import logging

import yaml
from pydantic import BaseModel, Field, ValidationError

from ..models.crawl import AuditOptions, CrawlSettings


logger = logging.getLogger(__name__)


ENVIRONMENT_VARIABLE = "SITE_AUDITOR_ENV"
DEFAULT_ENVIRONMENT = "production"


class ConfigLoadError(Exception):
    """Exception raised when configuration loading fails."""
    pass


class AuditConfig(BaseModel):
    """Validated contents of a config file."""
    options: Optional[AuditOptions] = Field(
        default=None,
        description="Audit options; only present when the file names a site_url"
    )
    settings: CrawlSettings = Field(default_factory=CrawlSettings)
    option_defaults: Dict[str, Any] = Field(
        default_factory=dict,
        description="Raw options section, merged under command line flags"
    )

    def audit_options(self, site_url: str, **overrides: Any) -> AuditOptions:
        """Build AuditOptions for ``site_url`` from the file's options plus overrides."""
        values = {**self.option_defaults, **{k: v for k, v in overrides.items() if v is not None}}
        values["site_url"] = site_url
        try:
            return AuditOptions(**values)
        except ValidationError as e:
            raise ConfigLoadError(f"Invalid audit options: {e}")


def default_config_path() -> Path:
    # site_auditor/audit/config/ -> project root
    return Path(__file__).parents[3] / "config" / "audit.yaml"


def load_audit_config(
    config_path: Optional[Union[str, Path]] = None,
    environment: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None
) -> AuditConfig:
    """Load an AuditConfig from a YAML file.

    Args:
        config_path: Path to the YAML file; ``config/audit.yaml`` when None
        environment: Environment whose overrides apply; falls back to the
            ``SITE_AUDITOR_ENV`` variable, then ``production``
        overrides: Extra values deep-merged last, e.g. from CLI flags

    Returns:
        Validated AuditConfig

    Raises:
        ConfigLoadError: If the file is missing, unreadable, not a mapping or invalid

    Example:
        >>> config = load_audit_config("config/audit.yaml", environment="development")
        >>> config.settings.max_concurrency
        2
    """
    path = Path(config_path) if config_path is not None else default_config_path()
    if not path.exists():
        raise ConfigLoadError(f"Config file not found: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"Failed to parse YAML config: {e}")
    except OSError as e:
        raise ConfigLoadError(f"Failed to read config file: {e}")

    return build_audit_config(config_data, environment, overrides)


def build_audit_config(
    config_data: Dict[str, Any],
    environment: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None
) -> AuditConfig:
    """Validate an already parsed config mapping (see ``load_audit_config``)."""
    if not isinstance(config_data, dict):
        raise ConfigLoadError("Config file must contain a YAML dictionary")

    if environment is None:
        environment = os.getenv(ENVIRONMENT_VARIABLE, DEFAULT_ENVIRONMENT)

    environments = config_data.get("environments") or {}
    if not isinstance(environments, dict):
        raise ConfigLoadError("'environments' must be a mapping")
    config_data = {k: v for k, v in config_data.items() if k != "environments"}

    if environment in environments:
        config_data = _deep_merge(config_data, environments[environment] or {})
        logger.info(f"Applied environment overrides for: {environment}")

    if overrides:
        config_data = _deep_merge(config_data, overrides)
        logger.debug("Applied additional configuration overrides")

    unknown = set(config_data) - {"options", "settings"}
    if unknown:
        raise ConfigLoadError(f"Unknown config sections: {', '.join(sorted(unknown))}")

    raw_options = config_data.get("options") or {}
    if not isinstance(raw_options, dict):
        raise ConfigLoadError("'options' must be a mapping")
    # Options without a site are defaults for the CLI, not a runnable audit
    options = raw_options if "site_url" in raw_options else None

    try:
        return AuditConfig(
            options=options,
            settings=config_data.get("settings") or {},
            option_defaults={k: v for k, v in raw_options.items() if k != "site_url"},
        )
    except ValidationError as e:
        raise ConfigLoadError(f"Invalid audit configuration: {e}")


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries, with override taking precedence."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def create_default_audit_config() -> Dict[str, Any]:
    """Default configuration as a YAML-serializable dictionary."""
    settings = CrawlSettings().model_dump(mode="json")
    return {
        "settings": settings,
        "environments": {
            "development": {
                "settings": {"max_concurrency": 2, "desired_concurrency": 2, "min_concurrency": 1,
                             "headless": False},
            },
            "test": {
                "settings": {"fetcher": "static", "max_concurrency": 2, "desired_concurrency": 2,
                             "min_concurrency": 1, "max_requests_per_minute": 600},
            },
        },
    }


def save_default_config(output_path: Union[str, Path]) -> None:
    """Write the default configuration to a YAML file.

    Raises:
        ConfigLoadError: If the file cannot be written
    """
    try:
        with open(output_path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(create_default_audit_config(), f, default_flow_style=False, sort_keys=False)
        logger.info(f"Saved default audit configuration to: {output_path}")
    except OSError as e:
        raise ConfigLoadError(f"Failed to save config file: {e}")
