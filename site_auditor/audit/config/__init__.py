"""YAML-based configuration loading with environment overrides."""

from .loader import (
    AuditConfig,
    ConfigLoadError,
    build_audit_config,
    create_default_audit_config,
    load_audit_config,
    save_default_config,
)

__all__ = [
    "AuditConfig",
    "ConfigLoadError",
    "build_audit_config",
    "create_default_audit_config",
    "load_audit_config",
    "save_default_config",
]
