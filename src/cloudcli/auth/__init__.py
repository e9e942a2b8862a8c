"""Browser-mediated sign-in and local session persistence.

The main entry points are:

- :class:`SignIn` -- runs one sign-in: loopback listener, linking URL,
  code exchange, commit.
- :class:`SessionStore` -- the on-disk multi-session credential file.
- :class:`CallbackListener` -- the ephemeral loopback HTTP server.
- :class:`TokenExchangeClient` -- trades an authorization code for a session.
- :func:`build_linking_url` -- the URL the user opens in their browser.

Typical usage::

    from cloudcli.auth import SignIn
    from cloudcli.config import load_settings

    session = SignIn(load_settings()).run(sys.stderr)
"""

from cloudcli.auth.callback import CallbackListener
from cloudcli.auth.session_store import SessionStore, default_store_path
from cloudcli.auth.signin import SignIn, SignInState
from cloudcli.auth.token_client import TokenExchangeClient
from cloudcli.auth.urls import build_linking_url

__all__ = [
    "CallbackListener",
    "SessionStore",
    "SignIn",
    "SignInState",
    "TokenExchangeClient",
    "build_linking_url",
    "default_store_path",
]
