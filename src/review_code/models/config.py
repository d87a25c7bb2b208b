"""設定管理モデル。

設定ファイル・環境変数・CLI オプションを統合した不変の設定値。
グローバルな環境変数を書き換えず、各コンポーネントへ明示的に引き渡す。
"""

from __future__ import annotations

from pathlib import Path
from typing import Final

from pydantic import Field, StrictBool

from review_code.models._base import ReviewCodeBaseModel

DEFAULT_DIFF_CONTEXT_LINES: Final[int] = 1


def _default_review_root() -> Path:
    return Path.home() / "dev" / "ai" / "reviews"


def _default_debug_path() -> Path:
    return Path.home() / ".cache" / "review-code" / "debug"


def _default_session_dir() -> Path:
    return Path.home() / ".claude" / "skills" / "review-code" / "sessions"


class ReviewCodeSettings(ReviewCodeBaseModel):
    """全設定項目を統合した不変モデル。

    デフォルト値のみで有効なインスタンスを構築可能。
    context_path が None の場合はレビューコンテキストを読み込まない。
    """

    # 設定ファイルで指定可能な項目
    review_root_path: Path = Field(default_factory=_default_review_root)
    context_path: Path | None = None
    diff_context_lines: int = Field(default=DEFAULT_DIFF_CONTEXT_LINES, ge=0)

    # 環境変数のみで指定可能な項目
    debug_enabled: StrictBool = False
    debug_path: Path = Field(default_factory=_default_debug_path)
    session_dir: Path = Field(default_factory=_default_session_dir)
