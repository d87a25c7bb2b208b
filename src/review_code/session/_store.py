"""セッションのディスク上の保存形式。

<session_dir>/<session_id>/
    bundle.json   SessionPayload（先に書き込む）
    session.json  SessionHeader（最後にアトミックに書き込む。書き込み完了マーカー）
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
from pathlib import Path
from typing import Final

from pydantic import ValidationError

from review_code.models.session import (
    SESSION_ID_PATTERN,
    SESSION_SCHEMA_VERSION,
    SessionHeader,
    SessionPayload,
    SessionSummary,
)

logger = logging.getLogger(__name__)

HEADER_FILE: Final[str] = "session.json"
PAYLOAD_FILE: Final[str] = "bundle.json"

SESSION_DIR_MODE: Final[int] = 0o700
"""セッションディレクトリのパーミッション。"""

_SESSION_ID_RE: Final[re.Pattern[str]] = re.compile(SESSION_ID_PATTERN)


class SessionError(Exception):
    """セッション操作の失敗。"""


class SessionNotFoundError(SessionError):
    """指定されたセッションが存在しない。"""


class InvalidSessionIdError(SessionError):
    """セッション ID が許可された文字以外を含む。"""


class SessionStatusError(SessionError):
    """アクセサがセッションの状態と一致しない。"""


class SessionCorruptError(SessionError):
    """セッションファイルが書き込み途中または破損している。"""


def validate_session_id(session_id: str) -> str:
    """セッション ID を検証する。

    Raises:
        InvalidSessionIdError: 英数字・"-"・"_" 以外を含む、または空の場合。
    """
    if not _SESSION_ID_RE.fullmatch(session_id):
        raise InvalidSessionIdError(
            f"Invalid session id: {session_id!r} (only alphanumeric, -, _ allowed)"
        )
    return session_id


def write_json_atomic(path: Path, text: str) -> None:
    """同一ディレクトリの一時ファイルに書き込み、fsync 後に置き換える。"""
    fd, tmp_name = tempfile.mkstemp(
        dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
    )
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


class SessionStore:
    """セッションディレクトリの読み書き。

    Args:
        root: 全セッションの親ディレクトリ。
    """

    def __init__(self, root: Path) -> None:
        self._root = root

    @property
    def root(self) -> Path:
        return self._root

    def session_path(self, session_id: str) -> Path:
        """セッションディレクトリのパス。

        Raises:
            InvalidSessionIdError: ID が不正な場合。
        """
        return self._root / validate_session_id(session_id)

    def create(self, session_id: str) -> Path:
        """セッションディレクトリを新規作成する。

        Raises:
            InvalidSessionIdError: ID が不正な場合。
            SessionError: 同じ ID のセッションが既に存在する場合。
        """
        path = self.session_path(session_id)
        self._root.mkdir(parents=True, exist_ok=True)
        try:
            path.mkdir(mode=SESSION_DIR_MODE)
        except FileExistsError:
            raise SessionError(f"Session already exists: {session_id}") from None
        return path

    def write(self, header: SessionHeader, payload: SessionPayload) -> None:
        """ペイロード、ヘッダーの順に書き込む。"""
        path = self.session_path(header.session_id)
        write_json_atomic(path / PAYLOAD_FILE, payload.model_dump_json(indent=2))
        write_json_atomic(path / HEADER_FILE, header.model_dump_json(indent=2))

    def read_header(self, session_id: str) -> SessionHeader:
        """ヘッダーを読み込み、書き込み完了を確認する。

        Raises:
            InvalidSessionIdError: ID が不正な場合。
            SessionNotFoundError: セッションが存在しない場合。
            SessionCorruptError: ヘッダーが不完全・破損・未知のバージョンの場合。
        """
        path = self.session_path(session_id)
        if not path.is_dir():
            raise SessionNotFoundError(f"Session not found: {session_id}")
        header_file = path / HEADER_FILE
        if not header_file.is_file():
            raise SessionCorruptError(f"Session is incomplete: {session_id}")
        try:
            header = SessionHeader.model_validate_json(
                header_file.read_text(encoding="utf-8")
            )
        except ValidationError as e:
            raise SessionCorruptError(
                f"Session header is invalid or has an unsupported schema "
                f"(expected version {SESSION_SCHEMA_VERSION}): {session_id}"
            ) from e
        if not header.complete or header.session_id != session_id:
            raise SessionCorruptError(f"Session is incomplete: {session_id}")
        return header

    def read_payload(self, session_id: str) -> SessionPayload:
        """ペイロードを読み込む。ヘッダーによる完了確認を先に行う。

        Raises:
            SessionNotFoundError / SessionCorruptError / InvalidSessionIdError
        """
        self.read_header(session_id)
        payload_file = self.session_path(session_id) / PAYLOAD_FILE
        try:
            return SessionPayload.model_validate_json(
                payload_file.read_text(encoding="utf-8")
            )
        except (OSError, ValidationError) as e:
            raise SessionCorruptError(f"Session payload is invalid: {session_id}") from e

    def payload_path(self, session_id: str) -> Path:
        return self.session_path(session_id) / PAYLOAD_FILE

    def delete(self, session_id: str) -> bool:
        """セッションを削除する。存在しなかった場合は False。"""
        path = self.session_path(session_id)
        if not path.exists():
            return False
        shutil.rmtree(path)
        return True

    def session_ids(self) -> list[str]:
        """ディレクトリ名が有効な ID であるセッションの一覧（未完了を含む）。"""
        if not self._root.is_dir():
            return []
        return sorted(
            entry.name
            for entry in self._root.iterdir()
            if entry.is_dir() and _SESSION_ID_RE.fullmatch(entry.name)
        )

    def summaries(self) -> list[SessionSummary]:
        """完了済みセッションの要約を作成日時順に返す。"""
        summaries: list[SessionSummary] = []
        for session_id in self.session_ids():
            try:
                header = self.read_header(session_id)
            except SessionError as e:
                logger.debug("Skipping session %s: %s", session_id, e)
                continue
            summaries.append(
                SessionSummary(
                    session_id=session_id,
                    status=header.status,
                    created_at=header.created_at,
                    path=str(self.session_path(session_id)),
                )
            )
        return sorted(summaries, key=lambda s: s.created_at)
