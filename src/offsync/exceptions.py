"""Exception hierarchy for offsync.

All exceptions inherit from :class:`OffsyncError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`offsync.exit_codes`.
The top-level error handler in :func:`offsync.app.main` catches
``OffsyncError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    OffsyncError (exit 1)
    +-- InvalidUsageError   (exit 2)
    +-- ApplicationError    (exit 4)
    |   +-- AuthError       (exit 3)
    +-- ConnectivityError   (exit 6)
    +-- InstallError        (exit 7)
    +-- QueueError          (exit 8)
    +-- ConfigError         (exit 1)

Only :class:`ConnectivityError` triggers cache fallback or queueing.
Application errors are the server's own answer and are never retried.
"""

from __future__ import annotations

from offsync.exit_codes import (
    EXIT_APPLICATION_ERROR,
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INSTALL_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_QUEUE_ERROR,
)


class OffsyncError(Exception):
    """Base exception for all offsync errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`offsync.exit_codes`. The entry point catches
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


class InvalidUsageError(OffsyncError):
    """Raised for invalid CLI arguments or malformed request input."""

    exit_code = EXIT_INVALID_USAGE


class ApplicationError(OffsyncError):
    """Raised when the backend was reachable and answered with 4xx / 5xx.

    Args:
        message: The server's ``error`` message, or a generic description.
        status_code: The HTTP status returned by the backend.
    """

    exit_code = EXIT_APPLICATION_ERROR

    def __init__(self, message: str, status_code: int = 0, exit_code: int | None = None):
        super().__init__(message, exit_code)
        self.status_code = status_code


class AuthError(ApplicationError):
    """Raised when the backend rejects the session token (401 / 403)."""

    exit_code = EXIT_AUTH_FAILURE


class ConnectivityError(OffsyncError):
    """Raised when the network could not be reached at all.

    Distinct from an HTTP error status: no response arrived. Strategies turn
    this into a cache fallback and the worker turns it into a queued
    mutation.
    """

    exit_code = EXIT_CONNECTION_ERROR


class InstallError(OffsyncError):
    """Raised when seeding the static bucket fails for any manifest asset."""

    exit_code = EXIT_INSTALL_FAILURE


class QueueError(OffsyncError):
    """Raised when a queued mutation cannot be read back from storage."""

    exit_code = EXIT_QUEUE_ERROR


class ConfigError(OffsyncError):
    """Raised for configuration problems (invalid JSON, failed validation)."""

    exit_code = EXIT_GENERIC_FAILURE
