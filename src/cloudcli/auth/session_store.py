"""Persistent multi-session credential store.

Stores every signed-in identity in ``<config_dir>/cloud/auth.yaml`` (see
:func:`~cloudcli.config.get_config_dir`). The file is human-readable YAML::

    current: u2
    sessions:
    - userId: u1
      token: t1
      createdAt: '2026-01-01T00:00:00Z'
    - userId: u2
      token: t2
      createdAt: '2026-02-01T00:00:00Z'

Tokens are bearer secrets, so the directory is created ``0o700`` and the
file is written ``0o600`` through an atomic temp-file-then-rename.

There is no file locking. Two sign-ins running at the same time on one
machine can each load the same snapshot, and the later save wins; callers
that might run concurrently must serialise themselves.

See Also:
    :class:`~cloudcli.models.SessionFile` -- the in-memory record.
    :class:`~cloudcli.auth.signin.SignIn` -- the only writer in normal use.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from cloudcli.config import _atomic_write, get_config_dir
from cloudcli.exceptions import DecodeError, EncodeError, StoreIOError
from cloudcli.models import Session, SessionFile

logger = logging.getLogger(__name__)

STORE_DIR_MODE = 0o700
STORE_FILE_MODE = 0o600


def default_store_path() -> Path:
    """Return the default location of the session file."""
    return get_config_dir() / "cloud" / "auth.yaml"


class SessionStore:
    """Read/write the session file.

    Args:
        path: Location of the session file. Defaults to
            :func:`default_store_path`.

    Example::

        store = SessionStore()
        record = store.load()
        store.save(record.add(session))
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = path if path is not None else default_store_path()

    @property
    def path(self) -> Path:
        """The filesystem path to the session file."""
        return self._path

    def load(self) -> SessionFile:
        """Load the session file from disk.

        Returns:
            The deserialised :class:`~cloudcli.models.SessionFile`. A file
            that does not exist yet, or is empty, yields an empty record.

        Raises:
            StoreIOError: If the file exists but cannot be read.
            DecodeError: If the file is not valid YAML or does not match
                the expected shape.
        """
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return SessionFile()
        except OSError as exc:
            raise StoreIOError(f"read session file {self._path}: {exc}") from exc

        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise DecodeError(f"decode session file {self._path}: {exc}") from exc

        if data is None:
            return SessionFile()
        if not isinstance(data, dict):
            raise DecodeError(
                f"decode session file {self._path}: expected a mapping, "
                f"got {type(data).__name__}"
            )
        try:
            return SessionFile.model_validate(data)
        except ValidationError as exc:
            raise DecodeError(f"decode session file {self._path}: {exc}") from exc

    def save(self, record: SessionFile) -> None:
        """Persist *record*, replacing the file atomically.

        Missing parent directories are created with ``0o700``; the file is
        written with ``0o600``.

        Raises:
            EncodeError: If the record cannot be serialised.
            StoreIOError: If the directory or file cannot be written.
        """
        try:
            text = yaml.safe_dump(
                record.model_dump(mode="json", by_alias=True),
                sort_keys=False,
                default_flow_style=False,
            )
        except (yaml.YAMLError, ValueError) as exc:
            raise EncodeError(f"encode session file: {exc}") from exc

        try:
            self._make_dirs()
            _atomic_write(self._path, text, mode=STORE_FILE_MODE)
        except OSError as exc:
            raise StoreIOError(f"write session file {self._path}: {exc}") from exc
        logger.debug("Wrote %d session(s) to %s", len(record.sessions), self._path)

    def current(self) -> Session:
        """Return the active session.

        Raises:
            NoCurrentSessionError: If nobody is signed in.
            StoreIOError: If the file cannot be read.
            DecodeError: If the file is malformed.
        """
        return self.load().current_session()

    def commit(self, session: Session) -> SessionFile:
        """Load the record, make *session* current, and save it back.

        Returns:
            The record as written.
        """
        record = self.load().add(session)
        self.save(record)
        return record

    def _make_dirs(self) -> None:
        """Create the missing ancestors of the session file as owner-only directories."""
        missing: list[Path] = []
        parent = self._path.parent
        while not parent.exists():
            missing.append(parent)
            parent = parent.parent
        for directory in reversed(missing):
            directory.mkdir(mode=STORE_DIR_MODE)
            # mkdir's mode is filtered through the umask
            directory.chmod(STORE_DIR_MODE)
