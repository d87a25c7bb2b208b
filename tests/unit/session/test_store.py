"""SessionStore のテスト。

書き込み順序, 完了マーカー, 破損検出, ID 検証, 一覧。
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from review_code.models.session import (
    SessionHeader,
    SessionPayload,
    SessionRequest,
    SessionStatus,
)
from review_code.models.target import ErrorKind, ErrorTarget
from review_code.session._store import (
    HEADER_FILE,
    PAYLOAD_FILE,
    InvalidSessionIdError,
    SessionCorruptError,
    SessionError,
    SessionNotFoundError,
    SessionStore,
    validate_session_id,
    write_json_atomic,
)

# =============================================================================
# ヘルパー
# =============================================================================

_CREATED = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def _header(session_id: str, created_at: datetime = _CREATED) -> SessionHeader:
    return SessionHeader(
        session_id=session_id, created_at=created_at, status=SessionStatus.ERROR
    )


def _payload() -> SessionPayload:
    return SessionPayload(
        request=SessionRequest(raw_arg="nope"),
        target=ErrorTarget(error="bad", kind=ErrorKind.INVALID_ARGUMENT),
        message="bad",
        error_kind=ErrorKind.INVALID_ARGUMENT,
    )


@pytest.fixture
def store(tmp_path: Path) -> SessionStore:
    return SessionStore(tmp_path / "sessions")


def _write(store: SessionStore, session_id: str) -> Path:
    path = store.create(session_id)
    store.write(_header(session_id), _payload())
    return path


# =============================================================================
# ID 検証
# =============================================================================


class TestValidateSessionId:
    """パストラバーサルを防ぐ ID 検証。"""

    def test_valid(self) -> None:
        """英数字・-・_ は許可。"""
        assert validate_session_id("acme-widgets_pr-1") == "acme-widgets_pr-1"

    @pytest.mark.parametrize("session_id", ["", "../etc", "a/b", "a.b", "a b"])
    def test_invalid(self, session_id: str) -> None:
        """それ以外は拒否。"""
        with pytest.raises(InvalidSessionIdError):
            validate_session_id(session_id)

    def test_store_rejects_invalid_id(self, store: SessionStore) -> None:
        """ストアの全操作で ID を検証する。"""
        with pytest.raises(InvalidSessionIdError):
            store.read_header("../outside")
        with pytest.raises(InvalidSessionIdError):
            store.delete("../outside")


# =============================================================================
# 書き込み
# =============================================================================


class TestWriteJsonAtomic:
    """アトミック書き込み。"""

    def test_replaces_without_leftovers(self, tmp_path: Path) -> None:
        """一時ファイルを残さずに置き換える。"""
        target = tmp_path / "data.json"
        target.write_text("old")
        write_json_atomic(target, '{"new": true}')
        assert json.loads(target.read_text()) == {"new": True}
        assert [p.name for p in tmp_path.iterdir()] == ["data.json"]


class TestSessionStoreWrite:
    """作成と書き込み。"""

    def test_create_mode(self, store: SessionStore) -> None:
        """セッションディレクトリは 0700。"""
        path = store.create("s1")
        assert path.stat().st_mode & 0o777 == 0o700

    def test_duplicate_rejected(self, store: SessionStore) -> None:
        """同じ ID の作成は SessionError。"""
        store.create("s1")
        with pytest.raises(SessionError, match="already exists"):
            store.create("s1")

    def test_both_files_written(self, store: SessionStore) -> None:
        """ヘッダーとペイロードの2ファイル。"""
        path = _write(store, "s1")
        assert (path / HEADER_FILE).is_file()
        assert (path / PAYLOAD_FILE).is_file()
        assert store.read_header("s1").status is SessionStatus.ERROR
        assert store.read_payload("s1").message == "bad"


# =============================================================================
# 読み込み
# =============================================================================


class TestSessionStoreRead:
    """完了確認と破損検出。"""

    def test_not_found(self, store: SessionStore) -> None:
        """存在しない ID → SessionNotFoundError。"""
        with pytest.raises(SessionNotFoundError):
            store.read_header("missing")

    def test_header_missing_is_incomplete(self, store: SessionStore) -> None:
        """ヘッダーがない → 書き込み途中として SessionCorruptError。"""
        store.create("s1")
        with pytest.raises(SessionCorruptError, match="incomplete"):
            store.read_header("s1")

    def test_header_not_complete(self, store: SessionStore) -> None:
        """complete=False → SessionCorruptError。"""
        path = _write(store, "s1")
        header = json.loads((path / HEADER_FILE).read_text())
        header["complete"] = False
        (path / HEADER_FILE).write_text(json.dumps(header))
        with pytest.raises(SessionCorruptError):
            store.read_header("s1")

    def test_garbage_header(self, store: SessionStore) -> None:
        """JSON として壊れたヘッダー → SessionCorruptError。"""
        path = store.create("s1")
        (path / HEADER_FILE).write_text("{not json")
        with pytest.raises(SessionCorruptError):
            store.read_header("s1")

    def test_unknown_schema_version(self, store: SessionStore) -> None:
        """未知のスキーマバージョン → SessionCorruptError。"""
        path = _write(store, "s1")
        header = json.loads((path / HEADER_FILE).read_text())
        header["schema_version"] = 99
        (path / HEADER_FILE).write_text(json.dumps(header))
        with pytest.raises(SessionCorruptError, match="schema"):
            store.read_header("s1")

    def test_mismatched_id(self, store: SessionStore) -> None:
        """ディレクトリ名とヘッダーの ID が異なる → SessionCorruptError。"""
        path = _write(store, "s1")
        path.rename(store.root / "s2")
        with pytest.raises(SessionCorruptError):
            store.read_header("s2")

    def test_payload_missing(self, store: SessionStore) -> None:
        """ペイロードが読めない → SessionCorruptError。"""
        path = _write(store, "s1")
        (path / PAYLOAD_FILE).unlink()
        with pytest.raises(SessionCorruptError):
            store.read_payload("s1")


# =============================================================================
# 削除・一覧
# =============================================================================


class TestSessionStoreDeleteAndList:
    """削除と一覧。"""

    def test_delete(self, store: SessionStore) -> None:
        """削除は存在した場合のみ True。"""
        _write(store, "s1")
        assert store.delete("s1")
        assert not store.delete("s1")

    def test_summaries_skip_incomplete(self, store: SessionStore) -> None:
        """一覧は完了済みのみ、作成日時順。"""
        store.create("later")
        store.write(
            _header("later", _CREATED.replace(hour=5)), _payload()
        )
        _write(store, "earlier")
        store.create("partial")
        assert [s.session_id for s in store.summaries()] == ["earlier", "later"]
        assert store.session_ids() == ["earlier", "later", "partial"]

    def test_empty_root(self, store: SessionStore) -> None:
        """ルートが存在しなければ空。"""
        assert store.summaries() == []
