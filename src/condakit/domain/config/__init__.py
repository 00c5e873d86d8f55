"""Configuration models with Pydantic validation."""

from condakit.domain.config.app import AppConfig
from condakit.domain.config.audit import AuditConfig
from condakit.domain.config.installer import InstallerConfig
from condakit.domain.config.retry import RetryPolicy, resolve_policy

__all__ = [
    "AppConfig",
    "AuditConfig",
    "InstallerConfig",
    "RetryPolicy",
    "resolve_policy",
]
