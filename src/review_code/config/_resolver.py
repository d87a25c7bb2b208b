"""設定リゾルバー。

4層の設定ソースを項目単位でマージし、不変の ReviewCodeSettings を構築する。
デフォルト値 < 環境変数 < 設定ファイル < CLI オプション。
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Final

from review_code.config._loader import load_env_config
from review_code.config._locator import get_user_config_path
from review_code.models.config import ReviewCodeSettings

FILE_KEY_TO_FIELD: Final[dict[str, str]] = {
    "REVIEW_ROOT_PATH": "review_root_path",
    "CONTEXT_PATH": "context_path",
    "DIFF_CONTEXT_LINES": "diff_context_lines",
}
"""設定ファイルキーと設定フィールドの対応。環境変数でも同名キーを参照する。"""

DEBUG_ENV: Final[str] = "REVIEW_CODE_DEBUG"
DEBUG_PATH_ENV: Final[str] = "REVIEW_CODE_DEBUG_PATH"
SESSION_DIR_ENV: Final[str] = "CLAUDE_SESSION_DIR"


def environ_layer(environ: Mapping[str, str]) -> dict[str, object]:
    """環境変数から設定レイヤーを構築する。

    空文字列の環境変数は未設定扱い。REVIEW_CODE_DEBUG は "1" のときのみ有効。
    """
    layer: dict[str, object] = {}
    for key, field in FILE_KEY_TO_FIELD.items():
        value = environ.get(key)
        if value:
            layer[field] = value
    if DEBUG_ENV in environ:
        layer["debug_enabled"] = environ[DEBUG_ENV] == "1"
    if environ.get(DEBUG_PATH_ENV):
        layer["debug_path"] = environ[DEBUG_PATH_ENV]
    if environ.get(SESSION_DIR_ENV):
        layer["session_dir"] = environ[SESSION_DIR_ENV]
    return layer


def file_layer(values: Mapping[str, str]) -> dict[str, object]:
    """設定ファイルの値を設定レイヤーに変換する。空値は未設定扱い。"""
    return {
        FILE_KEY_TO_FIELD[key]: value
        for key, value in values.items()
        if key in FILE_KEY_TO_FIELD and value
    }


def filter_cli_overrides(cli_options: Mapping[str, object]) -> dict[str, object]:
    """CLI オプション辞書から None 値を除外する。

    None 値は「未指定」を意味し、マージ対象から除外する。
    """
    return {k: v for k, v in cli_options.items() if v is not None}


def merge_config_layers(*layers: Mapping[str, object] | None) -> dict[str, object]:
    """設定レイヤーを項目単位でマージする。後のレイヤーが優先される。"""
    result: dict[str, object] = {}
    for layer in layers:
        if layer is None:
            continue
        result.update(layer)
    return result


def resolve_settings(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
    cli_overrides: Mapping[str, object] | None = None,
) -> ReviewCodeSettings:
    """設定ソースを解決し ReviewCodeSettings を構築する。

    設定ファイルが存在しない場合は該当レイヤーをスキップする。
    パス値中の ~ はホームディレクトリに展開する。

    Args:
        config_path: 設定ファイルのパス。None の場合は ~/.claude/review-code.env。
        environ: 環境変数。None の場合は os.environ。
        cli_overrides: CLI オプションの辞書。None 値は未指定扱い。

    Returns:
        解決済みの ReviewCodeSettings インスタンス。

    Raises:
        ConfigSecurityError: 設定ファイルの所有者・権限が不正な場合。
        pydantic.ValidationError: マージ後の設定値が不正な場合。
        PermissionError: 設定ファイルの読み取り権限がない場合。
    """
    effective_environ = environ if environ is not None else os.environ
    effective_path = config_path if config_path is not None else get_user_config_path()

    merged = merge_config_layers(
        environ_layer(effective_environ),
        file_layer(load_env_config(effective_path)),
        filter_cli_overrides(cli_overrides) if cli_overrides is not None else None,
    )
    for field in ("review_root_path", "context_path", "debug_path", "session_dir"):
        value = merged.get(field)
        if isinstance(value, (str, Path)):
            merged[field] = Path(value).expanduser()

    # 残りのフィールドは ReviewCodeSettings のデフォルト値が適用される
    return ReviewCodeSettings(**merged)  # type: ignore[arg-type]
