"""Cloud account commands -- sign in and inspect stored sessions.

Provides the ``signin`` (alias ``login``), ``whoami`` and ``sessions``
commands. Instructions and status go to stderr; ``whoami`` and
``sessions`` print their data to stdout so that it can be piped.

Typical workflow::

    cloudcli signin        # open the printed URL, approve, done
    cloudcli whoami        # userId and createdAt of the active session
    cloudcli sessions      # every stored session, tokens masked
"""

from __future__ import annotations

import signal
import sys
import threading
from contextlib import contextmanager
from typing import Any, Iterator

import typer

from cloudcli.exceptions import CloudError, NoCurrentSessionError
from cloudcli.output import error, info, print_record, print_table, success, suggest


@contextmanager
def _cancel_on_interrupt(cancel: threading.Event) -> Iterator[None]:
    """Turn Ctrl-C into *cancel* being set for the duration of the block.

    Signal handlers can only be installed from the main thread; elsewhere
    the block runs with the existing handler.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        cancel.set()

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def signin_command(
    open_browser: bool = typer.Option(
        False, "--open", help="Also open the linking URL in the default browser."
    ),
) -> None:
    """Sign into the cloud through your browser.

    Prints an account linking URL, waits up to five minutes for the browser
    to come back with an authorization code, exchanges it for a session
    token, and makes that session the current one.

    Raises:
        typer.Exit: With the failing error's exit code (130 on Ctrl-C,
            8 on timeout, 3/5 on a rejected code exchange).

    Example::

        cloudcli signin
    """
    from cloudcli.auth import SignIn
    from cloudcli.config import load_settings

    cancel = threading.Event()
    try:
        settings = load_settings()
        with _cancel_on_interrupt(cancel):
            session = SignIn(settings, open_browser=open_browser).run(
                sys.stderr, cancel=cancel
            )
    except CloudError as exc:
        error(f"sign into cloud: {exc}")
        raise typer.Exit(code=exc.exit_code) from None

    success(f"Signed in as {session.user_id}")


def whoami_command() -> None:
    """Show the active session.

    Example::

        cloudcli whoami --json
    """
    from cloudcli.auth import SessionStore

    try:
        session = SessionStore().current()
    except NoCurrentSessionError as exc:
        error(str(exc))
        suggest("Sign in: cloudcli signin")
        raise typer.Exit(code=exc.exit_code) from None
    except CloudError as exc:
        error(f"read sessions: {exc}")
        raise typer.Exit(code=exc.exit_code) from None

    print_record(
        {
            "userId": session.user_id,
            "createdAt": session.created_at.isoformat(),
        }
    )


def sessions_command() -> None:
    """List stored sessions. Tokens are masked."""
    from cloudcli.auth import SessionStore

    try:
        record = SessionStore().load()
    except CloudError as exc:
        error(f"read sessions: {exc}")
        raise typer.Exit(code=exc.exit_code) from None

    if not record.sessions:
        info("No stored sessions.")
        suggest("Sign in: cloudcli signin")
        return

    rows = [
        [
            "*" if s.user_id == record.current else "",
            s.user_id,
            s.created_at.isoformat(),
            s.masked_token,
        ]
        for s in record.sessions
    ]
    print_table(["current", "userId", "createdAt", "token"], rows, title="Sessions")
