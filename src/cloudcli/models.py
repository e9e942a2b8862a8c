"""Canonical Pydantic models shared across all cloudcli modules.

This is the single source of truth for data shapes in the project. The
models fall into two groups:

**Persisted models** -- serialised as YAML in the user's config directory:
    :class:`Session` and :class:`SessionFile`.

**Runtime configuration models** -- resolved once at startup and passed
explicitly into the sign-in flow:
    :class:`CloudSettings` and :class:`ServerTimeouts`.

All models use Pydantic v2. Persisted models keep the camelCase keys of the
on-disk format (``userId``, ``createdAt``) as aliases while exposing
snake_case attributes to Python code.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cloudcli.exceptions import NoCurrentSessionError


DEFAULT_API_BASE_URL = "https://api.cloud.cloudcli.dev"
DEFAULT_WEB_BASE_URL = "https://cloud.cloudcli.dev"
DEFAULT_SIGNIN_TIMEOUT = 5 * 60.0


# --- Sessions ---


class Session(BaseModel):
    """One authenticated identity obtained from the cloud identity service.

    Sessions are immutable: a newer sign-in produces a new instance rather
    than mutating an existing one.

    Example::

        Session(user_id="u1", token="t1", created_at=datetime.now(timezone.utc))
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    user_id: str = Field(alias="userId", description="Stable identifier from the identity service")
    token: str = Field(repr=False, description="Opaque bearer credential")
    created_at: datetime = Field(alias="createdAt", description="When the session was issued")

    @property
    def masked_token(self) -> str:
        """The token with all but its last four characters hidden."""
        if len(self.token) <= 4:
            return "*" * len(self.token)
        return "*" * 8 + self.token[-4:]


class SessionFile(BaseModel):
    """The on-disk multi-session credential record.

    ``sessions`` is kept in chronological order of sign-in and holds at most
    one entry per user. ``current`` names the active user and is ``""`` when
    nobody is signed in.
    """

    current: str = Field(default="", description="userId of the active session")
    sessions: list[Session] = Field(
        default_factory=list,
        description="Stored sessions, oldest first",
    )

    @field_validator("current", mode="before")
    @classmethod
    def _none_current(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("sessions", mode="before")
    @classmethod
    def _none_sessions(cls, value: Any) -> Any:
        return [] if value is None else value

    def current_session(self) -> Session:
        """Return the session whose ``user_id`` equals :attr:`current`.

        Raises:
            NoCurrentSessionError: If ``current`` is empty or matches no
                stored session.
        """
        for session in self.sessions:
            if session.user_id == self.current:
                return session
        raise NoCurrentSessionError("no current session")

    def add(self, session: Session) -> SessionFile:
        """Return a new record with *session* committed as the current one.

        An earlier session for the same user is dropped so that every
        identity has a single credential; the new session goes last.
        """
        kept = [s for s in self.sessions if s.user_id != session.user_id]
        return SessionFile(current=session.user_id, sessions=[*kept, session])


# --- Runtime configuration ---


class ServerTimeouts(BaseModel):
    """Socket deadlines applied by the loopback callback listener (seconds)."""

    model_config = ConfigDict(frozen=True)

    read_header: float = Field(default=1.0, gt=0, description="Time allowed to read request headers")
    read: float = Field(default=5.0, gt=0, description="Time allowed to read a whole request")
    write: float = Field(default=10.0, gt=0, description="Time allowed to write the response")
    idle: float = Field(default=15.0, gt=0, description="Keep-alive wait for the next request")
    shutdown_grace: float = Field(
        default=5.0,
        ge=0,
        description="How long in-flight connections may finish after shutdown starts",
    )


class CloudSettings(BaseModel):
    """Endpoint and listener settings for one sign-in.

    Built by :func:`cloudcli.config.load_settings` from the process
    environment, or directly in tests.
    """

    model_config = ConfigDict(frozen=True)

    api_base_url: str = Field(default=DEFAULT_API_BASE_URL, description="Cloud API base URL")
    web_base_url: str = Field(default=DEFAULT_WEB_BASE_URL, description="Web dashboard base URL")
    signin_port: Optional[int] = Field(
        default=None,
        ge=0,
        le=65535,
        description="Fixed callback port (None = let the OS choose)",
    )
    signin_timeout: float = Field(
        default=DEFAULT_SIGNIN_TIMEOUT,
        gt=0,
        description="Seconds to wait for the browser callback",
    )
