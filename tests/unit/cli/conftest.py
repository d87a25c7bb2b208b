"""CLI テスト共通フィクスチャ・ヘルパー。"""

from __future__ import annotations

from pathlib import Path

from review_code.models.config import ReviewCodeSettings

PATCH_RESOLVE_SETTINGS = "review_code.cli._app.resolve_settings"
PATCH_RESOLVE_TARGET = "review_code.cli._app.resolve_target"
PATCH_SESSION_MANAGER = "review_code.cli._app.SessionManager"


def make_settings(tmp_path: Path) -> ReviewCodeSettings:
    """tmp_path 配下を使うテスト用の設定。"""
    return ReviewCodeSettings(
        review_root_path=tmp_path / "reviews",
        debug_path=tmp_path / "debug",
        session_dir=tmp_path / "sessions",
    )
