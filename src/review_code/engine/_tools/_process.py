"""外部コマンド実行の共通処理。

git / gh のツール関数が共有する subprocess 実行とエラー変換。
"""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Final

SUBPROCESS_TIMEOUT_SECONDS: Final[int] = 120
"""subprocess.run のタイムアウト秒数。"""


class ToolCommandError(RuntimeError):
    """外部コマンドの失敗。

    Attributes:
        command: 実行したコマンドライン。
        returncode: 終了コード。起動できなかった場合やタイムアウト時は None。
        stderr: 標準エラー出力（前後空白除去済み）。
    """

    def __init__(
        self,
        message: str,
        *,
        command: tuple[str, ...] = (),
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


class ToolNotFoundError(ToolCommandError):
    """外部コマンドが PATH 上に見つからない。"""


def run_tool(
    executable: str,
    args: list[str],
    *,
    cwd: Path | None = None,
    install_hint: str = "",
) -> str:
    """外部コマンドを実行し stdout を返す。

    出力は UTF-8 としてデコードし、不正なバイトは置換文字にする。

    Args:
        executable: 実行ファイル名（例: "git"）。
        args: 引数のリスト。
        cwd: 作業ディレクトリ。None の場合はカレントディレクトリ。
        install_hint: コマンド未検出時のメッセージに付加するヒント。

    Returns:
        コマンドの stdout 出力。

    Raises:
        ToolNotFoundError: コマンドが PATH 上に見つからない場合。
        ToolCommandError: 非ゼロ終了またはタイムアウトの場合。
    """
    command = (executable, *args)
    try:
        result = subprocess.run(
            list(command),
            capture_output=True,
            encoding="utf-8",
            errors="replace",
            check=True,
            timeout=SUBPROCESS_TIMEOUT_SECONDS,
            cwd=cwd,
        )
    except FileNotFoundError:
        hint = f" {install_hint}" if install_hint else ""
        raise ToolNotFoundError(
            f"{executable} command not found.{hint}", command=command
        ) from None
    except subprocess.TimeoutExpired as e:
        raise ToolCommandError(
            f"{executable} command timed out after {SUBPROCESS_TIMEOUT_SECONDS}s",
            command=command,
        ) from e
    except subprocess.CalledProcessError as e:
        stderr = (e.stderr or "").strip()
        raise ToolCommandError(
            f"{executable} command failed: {stderr}",
            command=command,
            returncode=e.returncode,
            stderr=stderr,
        ) from e

    return result.stdout
