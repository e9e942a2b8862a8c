"""Built-in CLI commands for cloudcli.

* :mod:`~cloudcli.commands.cloud` -- sign in, show the active session, and
  list stored sessions.

Each command is a plain callback function registered directly on the root
app in :mod:`cloudcli.app`.
"""
