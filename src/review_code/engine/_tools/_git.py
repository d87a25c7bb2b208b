"""git コマンドの読み取り専用ツール関数。

ホワイトリスト検証により作業ツリーや .git を変更するコマンドを防止する。
"""

from __future__ import annotations

from pathlib import Path
from typing import Final

from review_code.engine._tools._process import ToolCommandError, run_tool

ALLOWED_GIT_SUBCOMMANDS: Final[frozenset[str]] = frozenset(
    {
        "branch",
        "cat-file",
        "config",
        "diff",
        "rev-list",
        "rev-parse",
        "show",
        "show-ref",
        "status",
        "symbolic-ref",
    }
)
"""読み取り専用の git サブコマンド。

config / branch / symbolic-ref は書き込み形式を持つため引数の形も検証する。
"""

_INSTALL_HINT: Final[str] = "Ensure git is installed and available in PATH."

_CONFIG_READ_OPTIONS: Final[frozenset[str]] = frozenset(
    {"--get", "--get-all", "--get-regexp", "--list", "-l"}
)
"""git config の読み取り専用オプション。いずれかを先頭に置く必要がある。"""

_BRANCH_READ_OPTIONS: Final[frozenset[str]] = frozenset(
    {"--show-current", "--list", "-l", "-a", "--all", "-r", "--remotes"}
)
"""git branch で許可するオプション。ブランチ名などの位置引数は許可しない。"""

_WRITE_OPTION_PREFIXES: Final[tuple[str, ...]] = ("--output",)
"""全サブコマンド共通で拒否するファイル書き込みオプション。"""

_SYMBOLIC_REF_READ_OPTIONS: Final[frozenset[str]] = frozenset(
    {"--short", "-q", "--quiet"}
)


def _is_symbolic_ref_read(rest: list[str]) -> bool:
    """ref 1つの読み取りか。位置引数2つは書き換え、-d は削除になる。"""
    options = [arg for arg in rest if arg.startswith("-")]
    positional = [arg for arg in rest if not arg.startswith("-")]
    return set(options) <= _SYMBOLIC_REF_READ_OPTIONS and len(positional) <= 1


def _validate_subcommand(args: list[str]) -> None:
    if not args or args[0] not in ALLOWED_GIT_SUBCOMMANDS:
        subcmd = args[0] if args else "(empty)"
        raise ValueError(f"git subcommand '{subcmd}' is not allowed")

    subcmd, rest = args[0], args[1:]
    if any(arg.startswith(_WRITE_OPTION_PREFIXES) for arg in rest):
        raise ValueError(f"git {subcmd} with --output is not allowed")
    if subcmd == "config" and (not rest or rest[0] not in _CONFIG_READ_OPTIONS):
        raise ValueError("git config is allowed only with --get / --list options")
    if subcmd == "branch" and not set(rest) <= _BRANCH_READ_OPTIONS:
        raise ValueError("git branch is allowed only for listing branches")
    if subcmd == "symbolic-ref" and not _is_symbolic_ref_read(rest):
        raise ValueError("git symbolic-ref is allowed only for reading a ref")


def run_git(args: list[str], *, cwd: Path | None = None) -> str:
    """git コマンドを読み取り専用で実行する。

    Args:
        args: git サブコマンドと引数のリスト（例: ["diff", "main"]）。
        cwd: 作業ディレクトリ。None の場合はカレントディレクトリ。

    Returns:
        git コマンドの stdout 出力。

    Raises:
        ValueError: args[0] がホワイトリスト外のサブコマンドの場合。
        ToolNotFoundError: git が PATH 上に見つからない場合。
        ToolCommandError: git コマンドが非ゼロで終了した場合、
            またはタイムアウトした場合。
    """
    _validate_subcommand(args)
    return run_tool("git", args, cwd=cwd, install_hint=_INSTALL_HINT)


def git_succeeds(args: list[str], *, cwd: Path | None = None) -> bool:
    """git コマンドが終了コード 0 で完了するかを返す。

    存在確認系のコマンド（rev-parse --verify, show-ref --verify 等）用。

    Raises:
        ValueError: args[0] がホワイトリスト外のサブコマンドの場合。
        ToolNotFoundError: git が PATH 上に見つからない場合。
    """
    try:
        run_git(args, cwd=cwd)
    except ToolCommandError as e:
        # 起動失敗・タイムアウトは判定不能として伝播する
        if e.returncode is None:
            raise
        return False
    return True
