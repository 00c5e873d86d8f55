"""Main application configuration model."""

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field

from condakit.domain.config.audit import AuditConfig
from condakit.domain.config.installer import InstallerConfig


class AppConfig(BaseModel):
    """Main application configuration.

    Root model aggregating all configuration sections. The installer and
    audit sections are validated at load time; the retry section is
    validated as a whole by resolve_policy after CLI overrides are merged.

    Attributes:
        retry: Raw retry policy values; resolved into a RetryPolicy only
            once command-line overrides are known
        installer: Installer selection
        audit: Environment audit settings
    """

    retry: Dict[str, Any] = Field(default_factory=dict)
    installer: InstallerConfig = Field(default_factory=InstallerConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)

    model_config = ConfigDict(
        validate_assignment=True,
        extra="forbid",
        json_schema_extra={
            "example": {
                "retry": {
                    "initial_delay": 10,
                    "max_attempts": 5,
                    "backoff_multiplier": 1.5,
                    "max_delay": 120,
                    "jitter": 0.2,
                    "quiet": True,
                },
                "installer": {
                    "tool": "auto",
                    "candidates": ["mamba", "conda"],
                },
                "audit": {
                    "python": None,
                    "output_dir": None,
                },
            }
        },
    )
