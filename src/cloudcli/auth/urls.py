"""URL composition for the cloud web dashboard and API.

Pure helpers with no I/O: they validate a configured base URL, join path
segments onto it, and build the account linking URL that starts the
browser side of a sign-in.
"""

from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from cloudcli.exceptions import InvalidURLError

DASH_PATH = "dash"
ACCOUNT_LINKING_PATH = "link"
REDIRECT_PARAM = "redirect"


def join_url(base: str, *segments: str) -> str:
    """Append path *segments* to *base*, normalising the slashes between them.

    The query string and fragment of *base* are preserved.

    Raises:
        InvalidURLError: If *base* is not an absolute http(s) URL with a host.
    """
    try:
        parts = urlsplit(base)
    except ValueError as exc:
        raise InvalidURLError(f"parse base URL {base!r}: {exc}") from exc
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise InvalidURLError(f"base URL {base!r} must be an absolute http(s) URL")

    path = parts.path.rstrip("/")
    for segment in segments:
        segment = segment.strip("/")
        if segment:
            path = f"{path}/{segment}"
    return urlunsplit((parts.scheme, parts.netloc, path or "/", parts.query, parts.fragment))


def api_url(api_base: str, endpoint: str) -> str:
    """Return the full URL of an API *endpoint*."""
    return join_url(api_base, endpoint)


def account_linking_url(web_base: str) -> str:
    """Return the dashboard page that links a browser session to the CLI."""
    return join_url(web_base, DASH_PATH, ACCOUNT_LINKING_PATH)


def with_query(url: str, **params: str) -> str:
    """Return *url* with *params* set, keeping any other query parameters."""
    parts = urlsplit(url)
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    query.update(params)
    return urlunsplit(
        (parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment)
    )


def build_linking_url(web_base: str, redirect: str) -> str:
    """Build the URL the user opens to authorise this CLI.

    Args:
        web_base: Base URL of the web dashboard.
        redirect: Where the identity service should send the browser
            afterwards, typically ``http://localhost:<port>``.

    Returns:
        The account linking URL with a ``redirect`` query parameter.

    Raises:
        InvalidURLError: If *web_base* is malformed.
    """
    return with_query(account_linking_url(web_base), **{REDIRECT_PARAM: redirect})
