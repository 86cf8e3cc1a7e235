"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~offsync.exceptions.OffsyncError` subclass.
External tooling (CI scripts, shell wrappers) can inspect the exit code to
determine the failure class without parsing stderr.

Example::

    $ offsync lifecycle install
    $ echo $?
    7   # EXIT_INSTALL_FAILURE -- a manifest asset could not be fetched
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_AUTH_FAILURE = 3
"""The backend rejected the session (HTTP 401 / 403)."""

EXIT_APPLICATION_ERROR = 4
"""The backend answered with an HTTP 4xx / 5xx error."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_INSTALL_FAILURE = 7
"""Seeding the static bucket failed; the previous version stays active."""

EXIT_QUEUE_ERROR = 8
"""The mutation queue could not be read or replayed."""
