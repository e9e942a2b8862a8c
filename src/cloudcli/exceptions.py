"""Exception hierarchy for cloudcli.

All exceptions inherit from :class:`CloudError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`cloudcli.exit_codes`.
The top-level error handler in :func:`cloudcli.app.main` catches
``CloudError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    CloudError (exit 1)
    +-- ConfigError           (exit 1)
    |   +-- InvalidURLError   (exit 1)
    +-- BindError             (exit 1)
    +-- AuthError             (exit 3)
    |   +-- ExchangeHTTPError (exit 3, or 5 for 5xx)
    |   +-- NoCurrentSessionError (exit 3)
    +-- NetworkError          (exit 6)
    +-- DecodeError           (exit 1)
    +-- EncodeError           (exit 1)
    +-- StoreIOError          (exit 1)
    +-- SignInTimeoutError    (exit 8)
    +-- SignInCancelledError  (exit 130)
"""

from __future__ import annotations

from cloudcli.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CANCELLED,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_SERVER_ERROR,
    EXIT_TIMEOUT,
)


class CloudError(Exception):
    """Base exception for all cloudcli errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`cloudcli.exit_codes`. The entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(CloudError):
    """Raised for configuration problems (bad environment overrides, unreadable directories)."""

    exit_code = EXIT_GENERIC_FAILURE


class InvalidURLError(ConfigError):
    """Raised when a configured base URL is not an absolute http(s) URL."""


class BindError(CloudError):
    """Raised when the callback listener cannot acquire its loopback port."""

    exit_code = EXIT_GENERIC_FAILURE


class AuthError(CloudError):
    """Raised when authentication fails or no usable session exists."""

    exit_code = EXIT_AUTH_FAILURE


class ExchangeHTTPError(AuthError):
    """Raised when the token endpoint answers with anything other than ``200``.

    Args:
        status_code: The HTTP status returned by the token endpoint.
        message: Human-readable error description.
    """

    def __init__(self, status_code: int, message: str):
        super().__init__(
            message,
            exit_code=EXIT_SERVER_ERROR if status_code >= 500 else None,
        )
        self.status_code = status_code


class NoCurrentSessionError(AuthError):
    """Raised when the session store has no active session."""


class NetworkError(CloudError):
    """Raised on network-level failures (timeout, DNS resolution, connection refused)."""

    exit_code = EXIT_CONNECTION_ERROR


class DecodeError(CloudError):
    """Raised when a token response or the session file cannot be decoded."""


class EncodeError(CloudError):
    """Raised when the session file cannot be serialised."""


class StoreIOError(CloudError):
    """Raised when the session file cannot be read or written (permissions, disk full)."""


class SignInTimeoutError(CloudError):
    """Raised when no browser callback arrives before the sign-in deadline."""

    exit_code = EXIT_TIMEOUT


class SignInCancelledError(CloudError):
    """Raised when the caller cancels a sign-in before a callback arrives."""

    exit_code = EXIT_CANCELLED
