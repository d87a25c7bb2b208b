"""設定ファイルパスの探索。"""

from __future__ import annotations

from pathlib import Path

_CONFIG_DIR_NAME: str = ".claude"
_CONFIG_FILE_NAME: str = "review-code.env"


def get_user_config_path() -> Path:
    """ユーザー設定ファイルのパスを返す。

    ~/.claude/review-code.env を固定パスとして返す（存在チェックは行わない）。

    Raises:
        RuntimeError: ホームディレクトリを特定できない場合。
    """
    return Path.home() / _CONFIG_DIR_NAME / _CONFIG_FILE_NAME
