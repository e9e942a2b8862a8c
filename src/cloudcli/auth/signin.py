"""Browser-mediated sign-in orchestration.

:class:`SignIn` ties the pieces together under one cancellable,
time-bounded operation:

1. start a :class:`~cloudcli.auth.callback.CallbackListener` on a loopback
   port,
2. print the account linking URL (with ``redirect=http://localhost:<port>``)
   so the user always has a next step, even if something fails later,
3. wait for whichever comes first: the caller's cancel event, the sign-in
   deadline, or the authorization code,
4. exchange the code via :class:`~cloudcli.auth.token_client.TokenExchangeClient`,
   still watching the cancel event,
5. commit the new session to the :class:`~cloudcli.auth.session_store.SessionStore`.

The store is only written after step 4 succeeds. Whatever the outcome, the
listener is told to stop and both of its threads are joined before
:meth:`SignIn.run` returns.
"""

from __future__ import annotations

import enum
import logging
import queue
import threading
import time
import webbrowser
from typing import Any, Optional, TextIO

from cloudcli.auth.callback import CallbackListener
from cloudcli.auth.session_store import SessionStore
from cloudcli.auth.token_client import TokenExchangeClient
from cloudcli.auth.urls import build_linking_url
from cloudcli.exceptions import SignInCancelledError, SignInTimeoutError
from cloudcli.models import CloudSettings, ServerTimeouts, Session

logger = logging.getLogger(__name__)

SIGN_IN_MESSAGE = "Visit this URL on this device to log in:"

_POLL_INTERVAL = 0.1


class SignInState(str, enum.Enum):
    """Lifecycle of a single :class:`SignIn`."""

    IDLE = "idle"
    LISTENING = "listening"
    EXCHANGING = "exchanging"
    AUTHENTICATED = "authenticated"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
    FAILED = "failed"


class SignIn:
    """One browser sign-in attempt.

    Collaborators can be injected for tests; by default they are built from
    *settings*.

    Args:
        settings: Endpoints, optional fixed port, and the callback deadline.
        store: Where the new session is committed.
        token_client: Client used for the code exchange. When omitted, one
            is created for the exchange and closed afterwards.
        listener: Callback listener to use instead of a fresh one.
        timeouts: Socket deadlines for a listener created here.
        open_browser: Also try to open the linking URL in a browser.

    Example::

        session = SignIn(load_settings()).run(sys.stderr)
    """

    def __init__(
        self,
        settings: CloudSettings,
        store: Optional[SessionStore] = None,
        token_client: Optional[TokenExchangeClient] = None,
        listener: Optional[CallbackListener] = None,
        timeouts: Optional[ServerTimeouts] = None,
        open_browser: bool = False,
    ) -> None:
        self._settings = settings
        self._store = store if store is not None else SessionStore()
        self._token_client = token_client
        self._listener = listener or CallbackListener(
            port=settings.signin_port or 0,
            timeouts=timeouts,
        )
        self._open_browser = open_browser
        self.state = SignInState.IDLE

    def run(self, output: TextIO, cancel: Optional[threading.Event] = None) -> Session:
        """Perform the sign-in and return the new session.

        Args:
            output: Stream that receives the instructions and linking URL.
            cancel: Optional event; setting it aborts the wait.

        Raises:
            BindError: If the callback port cannot be bound.
            InvalidURLError: If a configured base URL is malformed.
            SignInCancelledError: If *cancel* is set before the session is committed.
            SignInTimeoutError: If no callback arrives before the deadline.
            NetworkError, ExchangeHTTPError, DecodeError: If the code
                exchange fails.
            StoreIOError, EncodeError, DecodeError: If the session cannot be
                persisted.
        """
        if self.state is not SignInState.IDLE:
            raise RuntimeError("a SignIn instance can only run once")

        stop = threading.Event()
        listener = self._listener
        try:
            listener.start(stop)
            self.state = SignInState.LISTENING

            link = build_linking_url(self._settings.web_base_url, listener.redirect_url)
            output.write(f"{SIGN_IN_MESSAGE}\n\n     {link}\n\n")
            output.flush()
            if self._open_browser:
                _launch_browser(link)

            code = self._wait_for_code(listener, cancel)

            self.state = SignInState.EXCHANGING
            session = self._exchange(code, cancel)
            self._store.commit(session)
        except SignInTimeoutError:
            self.state = SignInState.TIMED_OUT
            raise
        except SignInCancelledError:
            self.state = SignInState.CANCELLED
            raise
        except BaseException:
            self.state = SignInState.FAILED
            raise
        finally:
            stop.set()
            if not listener.join(listener.timeouts.shutdown_grace + 1.0):
                logger.warning("Callback listener did not shut down cleanly")

        self.state = SignInState.AUTHENTICATED
        logger.info("Successful sign in as %s", session.user_id)
        return session

    def _wait_for_code(
        self,
        listener: CallbackListener,
        cancel: Optional[threading.Event],
    ) -> str:
        """Block until a code arrives, *cancel* is set, or the deadline passes."""
        timeout = self._settings.signin_timeout
        deadline = time.monotonic() + timeout
        while True:
            if cancel is not None and cancel.is_set():
                raise SignInCancelledError("sign in: cancelled")
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise SignInTimeoutError(
                    f"sign in: no browser callback within {timeout:g} seconds"
                )
            try:
                return listener.codes.get(timeout=min(_POLL_INTERVAL, remaining))
            except queue.Empty:
                continue

    def _exchange(self, code: str, cancel: Optional[threading.Event]) -> Session:
        """Run the code exchange on a worker thread so that *cancel* can abandon it.

        An abandoned request finishes (or times out) in the background and
        its result is discarded.
        """
        if cancel is None:
            return self._request_session(code)

        outcome: dict[str, Any] = {}

        def _run() -> None:
            try:
                outcome["session"] = self._request_session(code)
            except BaseException as exc:  # noqa: BLE001
                outcome["error"] = exc

        worker = threading.Thread(target=_run, name="cloudcli-token-exchange", daemon=True)
        worker.start()
        while worker.is_alive():
            if cancel.is_set():
                raise SignInCancelledError("sign in: cancelled")
            worker.join(_POLL_INTERVAL)

        if cancel.is_set():
            raise SignInCancelledError("sign in: cancelled")
        if "error" in outcome:
            raise outcome["error"]
        return outcome["session"]

    def _request_session(self, code: str) -> Session:
        if self._token_client is not None:
            return self._token_client.exchange(code)
        with TokenExchangeClient(self._settings.api_base_url) as client:
            return client.exchange(code)


def _launch_browser(url: str) -> None:
    """Open *url* in a daemon thread so a slow browser launch never blocks the wait."""

    def _open() -> None:
        try:
            opened = webbrowser.open(url)
        except webbrowser.Error as exc:
            logger.debug("Could not open a browser: %s", exc)
            return
        if not opened:
            logger.debug("No browser available to open %s", url)

    threading.Thread(target=_open, name="cloudcli-browser", daemon=True).start()
