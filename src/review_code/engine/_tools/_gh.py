"""gh コマンドの読み取り専用ツール関数。

PR の検索・メタデータ取得・差分取得に限定し、
ホワイトリスト検証により書き込み系コマンドを防止する。
"""

from __future__ import annotations

from pathlib import Path
from typing import Final

from review_code.engine._tools._process import run_tool

ALLOWED_GH_PATTERNS: Final[frozenset[tuple[str, str]]] = frozenset(
    {
        ("pr", "list"),
        ("pr", "view"),
        ("pr", "diff"),
    }
)
"""読み取り専用の gh サブコマンドパターン。"""

_INSTALL_HINT: Final[str] = "Ensure GitHub CLI is installed and available in PATH."


def run_gh(args: list[str], *, cwd: Path | None = None) -> str:
    """gh コマンドを読み取り専用で実行する。

    Args:
        args: gh サブコマンドと引数のリスト（例: ["pr", "view", "123"]）。
        cwd: 作業ディレクトリ。None の場合はカレントディレクトリ。

    Returns:
        gh コマンドの stdout 出力。

    Raises:
        ValueError: コマンドパターンがホワイトリスト外の場合。
        ToolNotFoundError: gh が PATH 上に見つからない場合。
        ToolCommandError: gh コマンドが非ゼロで終了した場合、
            またはタイムアウトした場合。
    """
    if not args:
        raise ValueError("gh command is empty")

    pattern = (args[0], args[1]) if len(args) >= 2 else None
    if pattern not in ALLOWED_GH_PATTERNS:
        display = " ".join(args[:2])
        raise ValueError(f"gh command '{display}' is not allowed")

    return run_tool("gh", args, cwd=cwd, install_hint=_INSTALL_HINT)
