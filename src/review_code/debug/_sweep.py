"""デバッグセッションの一覧と削除。"""

from __future__ import annotations

import logging
import shutil
from datetime import UTC, datetime, timedelta
from pathlib import Path

from pydantic import Field

from review_code.debug._recorder import SESSION_FILE
from review_code.models._base import ReviewCodeBaseModel

logger = logging.getLogger(__name__)


class DebugSessionInfo(ReviewCodeBaseModel):
    """デバッグセッションディレクトリの要約。"""

    name: str = Field(min_length=1)
    path: Path
    modified_at: datetime
    file_count: int = Field(ge=0)
    has_readme: bool = False


def _describe(session_dir: Path) -> DebugSessionInfo:
    files = [p for p in session_dir.rglob("*") if p.is_file()]
    return DebugSessionInfo(
        name=session_dir.name,
        path=session_dir,
        modified_at=datetime.fromtimestamp(session_dir.stat().st_mtime, tz=UTC),
        file_count=len(files),
        has_readme=(session_dir / "README.md").is_file(),
    )


def list_debug_sessions(base: Path) -> list[DebugSessionInfo]:
    """デバッグセッションを新しい順に返す。

    session.json を持つディレクトリのみをセッションとみなす。
    base が存在しない場合は空リスト。
    """
    if not base.is_dir():
        return []
    sessions = [
        _describe(entry)
        for entry in base.iterdir()
        if entry.is_dir() and (entry / SESSION_FILE).is_file()
    ]
    return sorted(sessions, key=lambda s: s.modified_at, reverse=True)


def delete_debug_sessions(
    base: Path,
    older_than_days: int | None = None,
    delete_all: bool = False,
    *,
    now: datetime | None = None,
) -> list[str]:
    """デバッグセッションを削除し、削除したディレクトリ名を返す。

    Args:
        base: デバッグセッションの親ディレクトリ。
        older_than_days: この日数より古いセッションを削除する。
        delete_all: True の場合は全セッションを削除する。
        now: 基準時刻。None の場合は現在時刻。

    Raises:
        ValueError: older_than_days と delete_all のどちらも指定されていない場合、
            または older_than_days が負の場合。
    """
    if not delete_all and older_than_days is None:
        raise ValueError("Specify older_than_days or delete_all")
    if older_than_days is not None and older_than_days < 0:
        raise ValueError(f"older_than_days must be >= 0, got {older_than_days}")

    cutoff: datetime | None = None
    if not delete_all and older_than_days is not None:
        cutoff = (now or datetime.now(UTC)) - timedelta(days=older_than_days)

    deleted: list[str] = []
    for session in list_debug_sessions(base):
        if cutoff is not None and session.modified_at >= cutoff:
            continue
        shutil.rmtree(session.path)
        logger.debug("Deleted debug session %s", session.path)
        deleted.append(session.name)
    return deleted
