"""Installer selection configuration model."""

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class InstallerConfig(BaseModel):
    """Configuration for choosing the package installer.

    Attributes:
        tool: Installer to use. None = fixed default, "auto" = first present
            candidate, anything else = exactly that executable
        default: Installer used when no tool is configured
        candidates: Preference order probed in "auto" mode
    """

    tool: Optional[str] = None
    default: str = "conda"
    candidates: List[str] = Field(default_factory=lambda: ["mamba", "conda"])

    @field_validator("candidates")
    @classmethod
    def _candidates_not_empty(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("at least one installer candidate is required")
        return value
