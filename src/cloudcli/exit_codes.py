"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~cloudcli.exceptions.CloudError` subclass.
Shell wrappers can inspect the exit code to determine the failure class
without parsing stderr.

Example::

    $ cloudcli whoami
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- nobody is signed in
"""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_AUTH_FAILURE = 3
"""Authentication failed or no session is active."""

EXIT_SERVER_ERROR = 5
"""The cloud API returned an HTTP 5xx server error."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_TIMEOUT = 8
"""The browser callback did not arrive before the sign-in deadline."""

EXIT_CANCELLED = 130
"""The user interrupted the command (Ctrl-C)."""
