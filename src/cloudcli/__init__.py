"""cloudcli -- Sign a headless command line into a cloud identity service.

The CLI never sees a password. Instead it prints an *account linking* URL
for the user to open in their own browser, listens on an ephemeral loopback
port for the redirect that carries a single-use authorization code, and
exchanges that code for a session token which is then stored on disk.

Typical workflow::

    cloudcli signin      # print the linking URL and wait for the callback
    cloudcli whoami      # show the active session
    cloudcli sessions    # list every stored session

Modules:
    app: Typer application factory and CLI entry point.
    models: Pydantic models shared across the package.
    config: XDG-aware directories and environment overrides.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
    auth: The sign-in flow and the session store.
"""

__version__ = "0.1.0"
