"""Loopback HTTP listener that receives the browser's authorization callback.

After the user approves the CLI in their browser, the identity service
redirects to ``http://localhost:<port>/?code=<authorization-code>``.
:class:`CallbackListener` serves that one request: it answers with a static
confirmation page and hands the code to whoever is waiting on
:attr:`CallbackListener.codes`.

Only the first code is accepted. The queue holds a single slot and is
filled with a non-blocking put under a lock, so duplicate or late callbacks
never block a handler thread; they get a ``409`` page instead.

Two background threads run per listener:

1. the serve loop (:meth:`socketserver.BaseServer.serve_forever`), which
   spawns one daemon thread per connection, and
2. a shutdown watcher that waits for the caller's stop event, stops the
   serve loop, gives in-flight connections a grace period, and then
   forcibly closes whatever is still open.

Socket deadlines bound how long a slow or stalled client can hold a
connection (see :class:`~cloudcli.models.ServerTimeouts`).
"""

from __future__ import annotations

import logging
import queue
import socket
import threading
import time
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Optional
from urllib.parse import parse_qs, urlsplit

from cloudcli.exceptions import BindError
from cloudcli.models import ServerTimeouts

logger = logging.getLogger(__name__)

CODE_PARAM = "code"
LOOPBACK_HOST = "127.0.0.1"

_PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{title}</title>
  <style>
    body {{ margin: 0; font-family: sans-serif; }}
    .center {{
      height: 100vh;
      display: flex;
      flex-direction: column;
      align-items: center;
      justify-content: center;
    }}
  </style>
</head>
<body>
  <div class="center">
    <h2>{heading}</h2>
    <p>{detail}</p>
  </div>
</body>
</html>
"""

CALLBACK_PAGE = _PAGE_TEMPLATE.format(
    title="Account connection",
    heading="You can safely close this window",
    detail="The cloudcli command line is finishing sign-in.",
)

ALREADY_COMPLETED_PAGE = _PAGE_TEMPLATE.format(
    title="Account connection",
    heading="Sign-in already completed",
    detail="This sign-in has already received its authorization code.",
)

MISSING_CODE_PAGE = _PAGE_TEMPLATE.format(
    title="Account connection",
    heading="No authorization code received",
    detail="Restart the sign-in from the command line and try again.",
)

NOT_FOUND_PAGE = _PAGE_TEMPLATE.format(
    title="Not found",
    heading="Not found",
    detail="",
)


class _CallbackHandler(BaseHTTPRequestHandler):
    """Serves ``GET /?code=...`` and nothing else.

    Every phase of a connection runs against an absolute deadline: the
    request line and headers must arrive within ``read_header`` of accept,
    the whole request within ``read``, the response must be written within
    ``write``, and a kept-alive connection may sit idle for ``idle``. A
    per-connection timer shuts the socket down when the current deadline
    passes, so a client trickling bytes cannot hold a handler thread.
    """

    server: _CallbackServer
    protocol_version = "HTTP/1.1"
    server_version = "cloudcli"

    def setup(self) -> None:
        super().setup()
        self._timer: Optional[threading.Timer] = None
        self._expired = False
        self._read_deadline = 0.0
        self.server.listener._track(self.connection)

    def finish(self) -> None:
        self._disarm()
        try:
            super().finish()
        finally:
            self.server.listener._untrack(self.connection)

    def handle(self) -> None:
        timeouts = self.server.listener.timeouts
        self.close_connection = True
        self._read_deadline = time.monotonic() + timeouts.read
        self._arm(min(timeouts.read_header, timeouts.read))
        self.handle_one_request()
        while not self.close_connection and not self._expired:
            self._read_deadline = time.monotonic() + timeouts.idle + timeouts.read
            self._arm(timeouts.idle)
            self.handle_one_request()

    def parse_request(self) -> bool:
        if self._expired:
            self.close_connection = True
            return False
        ok = super().parse_request()
        # Headers cut short by the deadline must not be acted on.
        if self._expired:
            self.close_connection = True
            return False
        if ok:
            self._arm(self._read_deadline - time.monotonic())
        return ok

    def do_GET(self) -> None:
        url = urlsplit(self.path)
        if url.path != "/":
            self._respond(HTTPStatus.NOT_FOUND, NOT_FOUND_PAGE)
            return

        code = parse_qs(url.query).get(CODE_PARAM, [""])[0]
        if not code:
            self._respond(HTTPStatus.BAD_REQUEST, MISSING_CODE_PAGE)
            return

        if self.server.listener._deliver(code):
            self._respond(HTTPStatus.OK, CALLBACK_PAGE, close=True)
        else:
            self._respond(HTTPStatus.CONFLICT, ALREADY_COMPLETED_PAGE, close=True)

    def _respond(self, status: HTTPStatus, page: str, close: bool = False) -> None:
        body = page.encode("utf-8")
        self._arm(self.server.listener.timeouts.write)
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Cache-Control", "no-store")
        if close:
            self.send_header("Connection", "close")
            self.close_connection = True
        self.end_headers()
        self.wfile.write(body)

    def _arm(self, seconds: float) -> None:
        """Start the deadline for the next phase, replacing the current one."""
        self._disarm()
        seconds = max(seconds, 0.001)
        self.connection.settimeout(seconds)
        timer = threading.Timer(seconds, self._expire)
        timer.daemon = True
        timer.start()
        self._timer = timer

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _expire(self) -> None:
        self._expired = True
        logger.debug("Callback connection from %s passed its deadline", self.client_address[0])
        try:
            self.connection.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Already closed by the handler.
            pass

    def log_request(self, code: Any = "-", size: Any = "-") -> None:
        # The query string carries the authorization code; keep it out of logs.
        logger.debug(
            "Callback %s %s -> %s",
            self.command,
            urlsplit(self.path).path,
            code,
        )

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("Callback server: " + format, *args)


class _CallbackServer(ThreadingHTTPServer):
    """Threaded HTTP server that knows which listener owns it."""

    daemon_threads = True
    block_on_close = False

    def __init__(self, address: tuple[str, int], listener: CallbackListener) -> None:
        self.listener = listener
        super().__init__(address, _CallbackHandler)

    def handle_error(self, request: Any, client_address: Any) -> None:
        # Dropped or timed-out browser connections are routine here.
        logger.debug("Callback connection from %s failed", client_address, exc_info=True)


class CallbackListener:
    """Ephemeral loopback server that accepts exactly one authorization code.

    Args:
        port: Port to bind. ``0`` asks the OS for a free port.
        host: Interface to bind; always a loopback address in practice.
        timeouts: Socket deadlines and shutdown grace period.

    Example::

        stop = threading.Event()
        listener = CallbackListener()
        port = listener.start(stop)
        try:
            code = listener.codes.get(timeout=300)
        finally:
            stop.set()
            listener.join()
    """

    def __init__(
        self,
        port: int = 0,
        host: str = LOOPBACK_HOST,
        timeouts: Optional[ServerTimeouts] = None,
    ) -> None:
        self._host = host
        self._requested_port = port
        self.timeouts = timeouts or ServerTimeouts()
        self._codes: queue.Queue[str] = queue.Queue(maxsize=1)
        self._accepted = False
        self._lock = threading.Lock()
        self._connections: set[socket.socket] = set()
        self._server: Optional[_CallbackServer] = None
        self._threads: list[threading.Thread] = []
        self.port: Optional[int] = None

    @property
    def codes(self) -> queue.Queue[str]:
        """Single-slot queue that receives the first accepted code."""
        return self._codes

    @property
    def redirect_url(self) -> str:
        """The URL the identity service should redirect the browser to."""
        if self.port is None:
            raise RuntimeError("listener has not been started")
        return f"http://localhost:{self.port}"

    def start(self, stop: threading.Event) -> int:
        """Bind the port and start serving in the background.

        Args:
            stop: When set, the listener shuts down gracefully.

        Returns:
            The bound port (the OS-assigned one when ``port`` was ``0``).

        Raises:
            BindError: If the port cannot be bound.
        """
        if self._server is not None:
            raise RuntimeError("listener already started")

        try:
            server = _CallbackServer((self._host, self._requested_port), self)
        except OSError as exc:
            raise BindError(
                f"listen on {self._host}:{self._requested_port}: {exc}"
            ) from exc

        self._server = server
        self.port = server.server_address[1]

        self._threads = [
            threading.Thread(
                target=server.serve_forever,
                kwargs={"poll_interval": 0.1},
                name="cloudcli-callback-serve",
                daemon=True,
            ),
            threading.Thread(
                target=self._shutdown_when_set,
                args=(stop,),
                name="cloudcli-callback-shutdown",
                daemon=True,
            ),
        ]
        for thread in self._threads:
            thread.start()

        logger.debug("Callback listener bound to %s:%d", self._host, self.port)
        return self.port

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the background threads to exit.

        Returns:
            ``True`` if every thread finished within *timeout*.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        for thread in self._threads:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            thread.join(remaining)
        return not any(thread.is_alive() for thread in self._threads)

    # ------------------------------------------------------------------ #
    # Internals shared with the request handler
    # ------------------------------------------------------------------ #

    def _deliver(self, code: str) -> bool:
        """Offer *code* to the waiter. Returns ``False`` if one was already accepted."""
        with self._lock:
            if self._accepted:
                return False
            self._accepted = True
            self._codes.put_nowait(code)
        logger.debug("Authorization code received")
        return True

    def _track(self, conn: socket.socket) -> None:
        with self._lock:
            self._connections.add(conn)

    def _untrack(self, conn: socket.socket) -> None:
        with self._lock:
            self._connections.discard(conn)

    def _shutdown_when_set(self, stop: threading.Event) -> None:
        stop.wait()
        server = self._server
        assert server is not None

        server.shutdown()

        deadline = time.monotonic() + self.timeouts.shutdown_grace
        while time.monotonic() < deadline:
            with self._lock:
                if not self._connections:
                    break
            time.sleep(0.05)

        with self._lock:
            leftover = list(self._connections)
        for conn in leftover:
            logger.debug("Closing stalled callback connection")
            try:
                conn.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass

        server.server_close()
        logger.debug("Callback listener on port %s closed", self.port)
