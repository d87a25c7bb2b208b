"""KEY=VALUE 形式の設定ファイルローダー。

設定ファイルをシェルとして評価せずに解析する。パース前にファイルの所有者と
書き込み権限を stat で検証し、許可リストにあるキーのみを返す。
"""

from __future__ import annotations

import os
import re
import stat as stat_module
from collections.abc import Iterable
from pathlib import Path
from typing import Final

ALLOWED_CONFIG_KEYS: Final[frozenset[str]] = frozenset(
    {
        "REVIEW_ROOT_PATH",
        "CONTEXT_PATH",
        "DIFF_CONTEXT_LINES",
    }
)
"""設定値として適用されるキー。その他の有効なキーは前方互換のため無視する。"""

_KEY_RE: Final[re.Pattern[str]] = re.compile(r"^[A-Z_][A-Z0-9_]*$")
_COMMENT_RE: Final[re.Pattern[str]] = re.compile(r"^\s*#")

_FORBIDDEN_WRITE_BITS: Final[int] = stat_module.S_IWGRP | stat_module.S_IWOTH


class ConfigSecurityError(Exception):
    """設定ファイルの所有者または権限が安全でない。

    ファイルは自動修正しない。エラーメッセージに修正方法を含める。
    """


def load_env_config(path: Path) -> dict[str, str]:
    """設定ファイルを読み込み、許可リストのキーと値を返す。

    ファイルが存在しない場合は空辞書を返す。

    Args:
        path: 設定ファイルのパス。

    Returns:
        許可リストにあるキーの辞書。

    Raises:
        ConfigSecurityError: 所有者が実効ユーザーでない、
            またはグループ・その他に書き込み権限がある場合。
        PermissionError: 読み取り権限がない場合。
    """
    try:
        st = path.stat()
    except FileNotFoundError:
        return {}
    if not stat_module.S_ISREG(st.st_mode):
        return {}

    verify_config_permissions(path, st)

    with path.open(encoding="utf-8") as f:
        return parse_env_lines(f)


def verify_config_permissions(path: Path, st: os.stat_result) -> None:
    """stat 結果から設定ファイルの安全性を検証する。

    Args:
        path: 設定ファイルのパス（エラーメッセージ用）。
        st: path の stat 結果。

    Raises:
        ConfigSecurityError: 検証に失敗した場合。
    """
    if st.st_uid != os.geteuid():
        raise ConfigSecurityError(
            f"Config file not owned by current user: {path}\n"
            f"Fix with: chown {os.geteuid()} {path}"
        )
    if st.st_mode & _FORBIDDEN_WRITE_BITS:
        raise ConfigSecurityError(
            f"Config file is group- or world-writable: {path}\n"
            f"Fix with: chmod go-w {path}"
        )


def parse_env_lines(lines: Iterable[str]) -> dict[str, str]:
    """KEY=VALUE 行を解析し、許可リストのキーのみを返す。

    - 先頭空白の後に # がある行はコメント
    - 空行と = を含まない行は無視
    - キーが ^[A-Z_][A-Z0-9_]*$ に一致しない行は無視
    - 値を囲む対のダブルクォート・シングルクォートを除去
    - 同じキーが複数回現れた場合は後勝ち
    """
    result: dict[str, str] = {}
    for raw_line in lines:
        line = raw_line.rstrip("\r\n")
        if not line.strip() or _COMMENT_RE.match(line):
            continue
        key, sep, value = line.partition("=")
        if not sep or not _KEY_RE.fullmatch(key):
            continue
        if key not in ALLOWED_CONFIG_KEYS:
            continue
        result[key] = _strip_quotes(value)
    return result


def _strip_quotes(value: str) -> str:
    """値を囲む対のクォートを1組だけ除去する。"""
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value
