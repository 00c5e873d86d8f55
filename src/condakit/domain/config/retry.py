"""Retry policy model."""

from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from condakit.domain.errors import PolicyValidationError


class RetryPolicy(BaseModel):
    """Timing and limits for retrying a command.

    Attributes:
        initial_delay: Delay in seconds before the second attempt
        max_attempts: Attempt budget (0 = retry until success)
        backoff_multiplier: Growth factor applied to the delay after each failure
        max_delay: Upper bound for the (un-jittered) delay
        jitter: Fraction of +/- random perturbation applied to each sleep (0.0-1.0)
        quiet: Forward a quiet flag to the wrapped installer
    """

    model_config = ConfigDict(frozen=True, extra="forbid", allow_inf_nan=False)

    initial_delay: float = Field(10.0, gt=0.0)
    max_attempts: int = Field(0, ge=0)
    backoff_multiplier: float = Field(1.5, ge=1.0)
    max_delay: float = Field(120.0, gt=0.0)
    jitter: float = Field(0.2, ge=0.0, le=1.0)
    quiet: bool = True

    @model_validator(mode="after")
    def _check_delay_cap(self) -> "RetryPolicy":
        if self.max_delay < self.initial_delay:
            raise ValueError(
                f"max_delay ({self.max_delay}) must be >= initial_delay ({self.initial_delay})"
            )
        return self

    @property
    def unbounded(self) -> bool:
        """True when the policy never gives up on its own"""
        return self.max_attempts == 0


def format_validation_error(error: ValidationError, header: str) -> str:
    """Flatten a pydantic ValidationError into one readable message."""
    lines = []
    for item in error.errors():
        field = ".".join(str(x) for x in item["loc"]) or "policy"
        lines.append(f"  - {field}: {item['msg']}")
    return f"{header}:\n" + "\n".join(lines)


def resolve_policy(raw_config: Mapping[str, Any]) -> RetryPolicy:
    """Build a RetryPolicy from raw configuration values.

    Values may be strings (environment variables, CLI flags). ``None`` and
    empty strings are treated as unset and fall back to the defaults.

    Args:
        raw_config: Mapping of RetryPolicy field names to raw values

    Returns:
        Validated RetryPolicy

    Raises:
        PolicyValidationError: If a value fails to parse or is out of range
    """
    values = {}
    for key, value in raw_config.items():
        if value is None:
            continue
        if isinstance(value, str):
            value = value.strip()
            if not value:
                continue
        values[key] = value

    try:
        return RetryPolicy(**values)
    except ValidationError as e:
        raise PolicyValidationError(
            format_validation_error(e, "Invalid retry policy")
        ) from e
