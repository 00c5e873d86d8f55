"""Error taxonomy for condakit.

Only transient failures (a child exiting non-zero) are retried. Everything
defined here is raised before the first attempt and stops the run.
"""

# Exit status reserved by shells for "command not found"
EXIT_NOT_FOUND = 127


class CondakitError(Exception):
    """Base class for condakit errors."""

    pass


class UsageError(CondakitError):
    """Command invoked without the operands it requires."""

    pass


class ConfigurationError(CondakitError):
    """Configuration validation error."""

    pass


class PolicyValidationError(ConfigurationError):
    """Retry policy values failed to parse or are out of range."""

    pass


class ToolNotFoundError(CondakitError):
    """No executable could be resolved for the requested tool."""

    exit_code = EXIT_NOT_FOUND

    def __init__(self, message: str, candidates: tuple = ()):
        super().__init__(message)
        self.candidates = tuple(candidates)


class AuditError(CondakitError):
    """Environment audit cannot start (e.g. no interpreter to inspect)."""

    pass
