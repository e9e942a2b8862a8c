"""Exchange an authorization code for a session token.

The cloud API accepts ``POST <api_base>/tokenRequest?code=<code>`` with an
empty body and answers ``200 OK`` with::

    {"userId": "u1", "token": "t1"}

Any other status is a failure. There is no retry: an authorization code is
single-use, so a failed exchange means the user has to sign in again.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from cloudcli.auth.urls import api_url, with_query
from cloudcli.exceptions import DecodeError, ExchangeHTTPError, NetworkError
from cloudcli.models import Session

logger = logging.getLogger(__name__)

TOKEN_REQUEST_ENDPOINT = "/tokenRequest"
TOKEN_REQUEST_CODE_PARAM = "code"


class _TokenResponse(BaseModel):
    """The fields of a token response that are trusted."""

    model_config = ConfigDict(extra="ignore")

    user_id: str = Field(alias="userId", min_length=1)
    token: str = Field(min_length=1)


class TokenExchangeClient:
    """Client for the token request endpoint.

    Args:
        api_base_url: Base URL of the cloud API.
        client: Optional pre-configured :class:`httpx.Client`. When omitted
            a client is created and closed by :meth:`close`.
        timeout: Request timeout in seconds for a client created here.

    Example::

        with TokenExchangeClient("https://api.example.com") as tokens:
            session = tokens.exchange(code)
    """

    def __init__(
        self,
        api_base_url: str,
        client: Optional[httpx.Client] = None,
        timeout: float = 30.0,
    ) -> None:
        self._api_base_url = api_base_url
        self._owns_client = client is None
        self._client = client if client is not None else httpx.Client(timeout=timeout)

    def __enter__(self) -> TokenExchangeClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            self._client.close()

    def exchange(self, code: str) -> Session:
        """Trade *code* for a :class:`~cloudcli.models.Session`.

        ``created_at`` is stamped with the local UTC time; a server-supplied
        ``createdAt`` is ignored.

        Raises:
            InvalidURLError: If the configured API base URL is malformed.
            NetworkError: On transport failures (DNS, refused, timeout).
            ExchangeHTTPError: If the endpoint does not answer ``200``.
            DecodeError: If the body is not the expected JSON object.
        """
        url = with_query(
            api_url(self._api_base_url, TOKEN_REQUEST_ENDPOINT),
            **{TOKEN_REQUEST_CODE_PARAM: code},
        )

        try:
            response = self._client.post(url, headers={"Accept": "application/json"})
        except httpx.HTTPError as exc:
            raise NetworkError(f"request token: {exc}") from exc

        if response.status_code != httpx.codes.OK:
            raise ExchangeHTTPError(
                response.status_code,
                f"request token: {response.status_code} {response.reason_phrase}".rstrip(),
            )

        try:
            payload = _TokenResponse.model_validate_json(response.content)
        except ValidationError as exc:
            raise DecodeError(f"decode token response: {exc}") from exc

        logger.debug("Token exchange succeeded for user %s", payload.user_id)
        return Session(
            user_id=payload.user_id,
            token=payload.token,
            created_at=datetime.now(timezone.utc),
        )
