"""Tests for retry policy validation"""

import pytest
from pydantic import ValidationError

from condakit.domain.config import RetryPolicy, resolve_policy
from condakit.domain.errors import ConfigurationError, PolicyValidationError


class TestRetryPolicyValidation:
    """Tests for RetryPolicy validation."""

    def test_defaults(self):
        """Test documented defaults"""
        policy = RetryPolicy()
        assert policy.initial_delay == 10.0
        assert policy.max_attempts == 0
        assert policy.backoff_multiplier == 1.5
        assert policy.max_delay == 120.0
        assert policy.jitter == 0.2
        assert policy.quiet is True
        assert policy.unbounded is True

    def test_backoff_multiplier_too_low(self):
        with pytest.raises(ValidationError, match="backoff_multiplier"):
            RetryPolicy(backoff_multiplier=0.5)

    def test_jitter_above_one(self):
        with pytest.raises(ValidationError, match="jitter"):
            RetryPolicy(jitter=1.5)

    def test_jitter_negative(self):
        with pytest.raises(ValidationError, match="jitter"):
            RetryPolicy(jitter=-0.1)

    def test_initial_delay_zero(self):
        with pytest.raises(ValidationError, match="initial_delay"):
            RetryPolicy(initial_delay=0)

    def test_negative_max_attempts(self):
        with pytest.raises(ValidationError, match="max_attempts"):
            RetryPolicy(max_attempts=-1)

    def test_cap_below_initial_delay(self):
        with pytest.raises(ValidationError, match="max_delay"):
            RetryPolicy(initial_delay=30, max_delay=10)

    def test_cap_equal_to_initial_delay_is_valid(self):
        policy = RetryPolicy(initial_delay=5, max_delay=5)
        assert policy.max_delay == 5

    @pytest.mark.parametrize("field", ["initial_delay", "max_delay", "backoff_multiplier"])
    def test_infinite_values_rejected(self, field):
        with pytest.raises(ValidationError, match=field):
            RetryPolicy(**{field: float("inf")})

    def test_nan_jitter_rejected(self):
        with pytest.raises(ValidationError, match="jitter"):
            RetryPolicy(jitter=float("nan"))

    def test_policy_is_immutable(self):
        policy = RetryPolicy()
        with pytest.raises(ValidationError):
            policy.max_attempts = 3


class TestResolvePolicy:
    """Tests for building a policy from raw values"""

    def test_parses_strings(self):
        policy = resolve_policy(
            {
                "initial_delay": "2.5",
                "max_attempts": "4",
                "backoff_multiplier": "2",
                "max_delay": "60",
                "jitter": "0",
                "quiet": "0",
            }
        )
        assert policy.initial_delay == 2.5
        assert policy.max_attempts == 4
        assert policy.backoff_multiplier == 2.0
        assert policy.max_delay == 60.0
        assert policy.jitter == 0.0
        assert policy.quiet is False

    def test_quiet_one_is_true(self):
        assert resolve_policy({"quiet": "1"}).quiet is True

    def test_empty_and_none_fall_back_to_defaults(self):
        policy = resolve_policy({"initial_delay": "", "max_attempts": None, "jitter": "  "})
        assert policy == RetryPolicy()

    def test_infinite_strings_rejected(self):
        with pytest.raises(PolicyValidationError, match="finite"):
            resolve_policy({"initial_delay": "inf", "max_delay": "inf"})

    def test_non_numeric_value(self):
        with pytest.raises(PolicyValidationError, match="initial_delay"):
            resolve_policy({"initial_delay": "soon"})

    def test_error_lists_every_field(self):
        with pytest.raises(PolicyValidationError) as exc_info:
            resolve_policy({"backoff_multiplier": "0.5", "jitter": "3"})
        message = str(exc_info.value)
        assert "backoff_multiplier" in message
        assert "jitter" in message

    def test_cap_below_initial(self):
        with pytest.raises(PolicyValidationError, match="max_delay"):
            resolve_policy({"initial_delay": "10", "max_delay": "5"})

    def test_is_a_configuration_error(self):
        with pytest.raises(ConfigurationError):
            resolve_policy({"max_attempts": "many"})

    def test_unknown_field_rejected(self):
        with pytest.raises(PolicyValidationError, match="retries"):
            resolve_policy({"retries": "3"})
