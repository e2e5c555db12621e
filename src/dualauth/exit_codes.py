"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~dualauth.exceptions.DualauthError` subclass.
Shell scripts can inspect the exit code of ``dualauth token`` or
``dualauth has-role`` without parsing stderr.

Example::

    $ dualauth has-role editor
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- the role is not granted
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments, or an operation ran before initialisation."""

EXIT_AUTH_FAILURE = 3
"""No credential is available, or the requested role is not granted."""

EXIT_PROVIDER_ERROR = 6
"""The identity provider was unreachable or rejected a token request."""
