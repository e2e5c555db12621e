"""Exception hierarchy for dualauth.

All exceptions inherit from :class:`DualauthError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`dualauth.exit_codes`.
The CLI entry point in :func:`dualauth.app.main` catches ``DualauthError``
and exits with the appropriate code.

Only usage faults escape the session managers. Incomplete configuration,
provider init failures and refresh failures are recoverable conditions that
degrade to "unauthenticated" and are logged instead of raised.

Subclass hierarchy::

    DualauthError (exit 1)
    +-- InvalidUsageError     (exit 2)
    |   +-- NotInitializedError (exit 2)
    +-- AuthError             (exit 3)
    +-- ProviderError         (exit 6)
    +-- ConfigError           (exit 1)
"""

from dualauth.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_PROVIDER_ERROR,
)


class DualauthError(Exception):
    """Base exception for all dualauth errors.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(DualauthError):
    """Raised for invalid CLI arguments or API calls made in the wrong order."""

    exit_code = EXIT_INVALID_USAGE


class NotInitializedError(InvalidUsageError):
    """Raised when an operation runs before initialisation produced a configuration.

    This is a programmer error (a call-order bug), not a runtime condition,
    so it is never caught inside the library.
    """

    def __init__(self, message: str = "Init has to be called first", exit_code: int | None = None):
        super().__init__(message, exit_code)


class AuthError(DualauthError):
    """Raised when no credential is available or a role check fails."""

    exit_code = EXIT_AUTH_FAILURE


class ProviderError(DualauthError):
    """Raised by provider clients when the identity provider cannot be used.

    Covers network failures, rejected refresh grants and malformed tokens.
    The delegated session manager catches it and degrades to
    unauthenticated.
    """

    exit_code = EXIT_PROVIDER_ERROR


class ConfigError(DualauthError):
    """Raised for configuration problems (invalid JSON, failed validation)."""

    exit_code = EXIT_GENERIC_FAILURE
