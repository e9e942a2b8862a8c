"""Tests for the session store and the SessionFile record."""

from __future__ import annotations

import os
import stat
from datetime import datetime, timedelta, timezone

import pytest
import yaml
from pydantic import ValidationError

from cloudcli.auth.session_store import SessionStore, default_store_path
from cloudcli.exceptions import DecodeError, NoCurrentSessionError, StoreIOError
from cloudcli.models import Session, SessionFile

from conftest import T0


class TestSession:
    def test_aliases_on_dump(self, u1_session: Session) -> None:
        data = u1_session.model_dump(mode="json", by_alias=True)
        assert data == {"userId": "u1", "token": "t1", "createdAt": "2026-01-01T00:00:00Z"}

    def test_populate_by_alias(self) -> None:
        session = Session.model_validate(
            {"userId": "u9", "token": "secret", "createdAt": "2026-03-04T05:06:07Z"}
        )
        assert session.user_id == "u9"
        assert session.created_at == datetime(2026, 3, 4, 5, 6, 7, tzinfo=timezone.utc)

    def test_token_not_in_repr(self) -> None:
        session = Session(user_id="u1", token="super-secret", created_at=T0)
        assert "super-secret" not in repr(session)

    def test_masked_token(self) -> None:
        assert Session(user_id="u", token="abcdefghij", created_at=T0).masked_token == "********ghij"
        assert Session(user_id="u", token="abc", created_at=T0).masked_token == "***"

    def test_frozen(self, u1_session: Session) -> None:
        with pytest.raises(ValidationError):
            u1_session.token = "other"  # type: ignore[misc]


class TestSessionFile:
    def test_empty_defaults(self) -> None:
        record = SessionFile()
        assert record.current == ""
        assert record.sessions == []

    def test_current_session(self, u1_session: Session) -> None:
        record = SessionFile(current="u1", sessions=[u1_session])
        assert record.current_session() == u1_session

    def test_current_session_empty(self) -> None:
        with pytest.raises(NoCurrentSessionError):
            SessionFile().current_session()

    def test_current_session_dangling(self, u1_session: Session) -> None:
        """A current pointer that names no stored session is reported, not trusted."""
        record = SessionFile(current="ghost", sessions=[u1_session])
        with pytest.raises(NoCurrentSessionError):
            record.current_session()

    def test_add_appends_and_sets_current(self, u1_session: Session) -> None:
        u2 = Session(user_id="u2", token="t2", created_at=T0 + timedelta(days=1))
        record = SessionFile(current="u1", sessions=[u1_session]).add(u2)

        assert record.current == "u2"
        assert [s.user_id for s in record.sessions] == ["u1", "u2"]

    def test_add_replaces_same_user(self, u1_session: Session) -> None:
        u2 = Session(user_id="u2", token="t2", created_at=T0 + timedelta(days=1))
        u1_again = Session(user_id="u1", token="t1-new", created_at=T0 + timedelta(days=2))

        record = SessionFile(current="u2", sessions=[u1_session, u2]).add(u1_again)

        assert record.current == "u1"
        assert [(s.user_id, s.token) for s in record.sessions] == [("u2", "t2"), ("u1", "t1-new")]

    def test_add_does_not_mutate(self, u1_session: Session) -> None:
        original = SessionFile(current="u1", sessions=[u1_session])
        original.add(Session(user_id="u2", token="t2", created_at=T0))
        assert original.current == "u1"
        assert len(original.sessions) == 1

    def test_null_fields_from_yaml(self) -> None:
        record = SessionFile.model_validate({"current": None, "sessions": None})
        assert record.current == ""
        assert record.sessions == []


class TestSessionStore:
    def test_default_path(self, isolated_config) -> None:
        assert default_store_path() == isolated_config / "config" / "cloudcli" / "cloud" / "auth.yaml"
        assert SessionStore().path == default_store_path()

    def test_load_missing_file_is_empty(self, store: SessionStore) -> None:
        record = store.load()
        assert record.current == ""
        assert record.sessions == []

    def test_load_empty_file_is_empty(self, store: SessionStore) -> None:
        store.path.parent.mkdir(parents=True)
        store.path.write_text("", encoding="utf-8")
        assert store.load() == SessionFile()

    def test_save_and_load(self, store: SessionStore, u1_session: Session) -> None:
        store.save(SessionFile(current="u1", sessions=[u1_session]))

        loaded = store.load()
        assert loaded.current == "u1"
        assert loaded.sessions == [u1_session]

    def test_file_format(self, store: SessionStore, u1_session: Session) -> None:
        store.save(SessionFile(current="u1", sessions=[u1_session]))

        data = yaml.safe_load(store.path.read_text(encoding="utf-8"))
        assert data["current"] == "u1"
        assert data["sessions"][0]["userId"] == "u1"
        assert data["sessions"][0]["token"] == "t1"
        assert "createdAt" in data["sessions"][0]

    def test_loads_unquoted_yaml_timestamps(self, store: SessionStore) -> None:
        """Files written by other tools may carry native YAML timestamps."""
        store.path.parent.mkdir(parents=True)
        store.path.write_text(
            "current: u1\n"
            "sessions:\n"
            "- userId: u1\n"
            "  token: t1\n"
            "  createdAt: 2026-01-01T00:00:00Z\n",
            encoding="utf-8",
        )
        assert store.load().current_session().created_at == T0

    def test_malformed_yaml_raises_decode_error(self, store: SessionStore) -> None:
        store.path.parent.mkdir(parents=True)
        store.path.write_text("current: [unclosed\n", encoding="utf-8")
        with pytest.raises(DecodeError):
            store.load()

    def test_wrong_shape_raises_decode_error(self, store: SessionStore) -> None:
        store.path.parent.mkdir(parents=True)
        store.path.write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(DecodeError, match="expected a mapping"):
            store.load()

    def test_invalid_session_raises_decode_error(self, store: SessionStore) -> None:
        store.path.parent.mkdir(parents=True)
        store.path.write_text("current: u1\nsessions:\n- userId: u1\n", encoding="utf-8")
        with pytest.raises(DecodeError):
            store.load()

    def test_unreadable_path_raises_store_io_error(self, store: SessionStore) -> None:
        store.path.mkdir(parents=True)  # a directory where the file should be
        with pytest.raises(StoreIOError):
            store.load()

    def test_file_permissions(self, store: SessionStore, u1_session: Session) -> None:
        store.save(SessionFile(current="u1", sessions=[u1_session]))
        assert stat.S_IMODE(os.stat(store.path).st_mode) == 0o600

    def test_directory_permissions(self, store: SessionStore, u1_session: Session) -> None:
        store.save(SessionFile(current="u1", sessions=[u1_session]))
        assert stat.S_IMODE(os.stat(store.path.parent).st_mode) == 0o700
        assert stat.S_IMODE(os.stat(store.path.parent.parent).st_mode) == 0o700

    def test_save_leaves_no_temp_files(self, store: SessionStore, u1_session: Session) -> None:
        store.save(SessionFile(current="u1", sessions=[u1_session]))
        store.save(SessionFile())
        assert [p.name for p in store.path.parent.iterdir()] == ["auth.yaml"]

    def test_commit(self, store: SessionStore, u1_session: Session) -> None:
        store.save(SessionFile(current="u1", sessions=[u1_session]))
        u2 = Session(user_id="u2", token="t2", created_at=T0 + timedelta(hours=1))

        written = store.commit(u2)

        assert written == store.load()
        assert written.current == "u2"
        assert [s.user_id for s in written.sessions] == ["u1", "u2"]

    def test_current(self, store: SessionStore, u1_session: Session) -> None:
        store.save(SessionFile(current="u1", sessions=[u1_session]))
        assert store.current() == u1_session

    def test_current_when_signed_out(self, store: SessionStore) -> None:
        with pytest.raises(NoCurrentSessionError):
            store.current()
