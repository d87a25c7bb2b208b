"""CliApp — Typer アプリケーション定義。

resolve: 位置引数からレビュー対象を判定して JSON を出力する。
session: レビューセッションの作成・参照・削除。
debug: デバッグセッションの一覧・削除。

stdout には結果のみを出力し、エラーメッセージは stderr に出力する。
"""

from __future__ import annotations

import importlib.metadata
import json
import sys
from pathlib import Path
from typing import Annotated

import typer
from pydantic import BaseModel, ValidationError
from rich.console import Console
from rich.table import Table

from review_code.config import ConfigSecurityError, resolve_settings
from review_code.debug import delete_debug_sessions, list_debug_sessions
from review_code.engine import parse_invocation, resolve_target
from review_code.models.config import ReviewCodeSettings
from review_code.models.exit_code import ExitCode
from review_code.models.target import ErrorKind, ErrorTarget, ResolvedRequest
from review_code.session import DEFAULT_MAX_AGE_MINUTES, SessionError, SessionManager

_OPTIONS_KEY = "_settings_options"

app = typer.Typer(
    name="review-code",
    help=(
        "Resolve code review targets and manage review sessions.\n\n"
        "Targets (positional argument):\n\n"
        "  (no args)        current branch / uncommitted changes\n\n"
        "  <number|PR URL>  pull request\n\n"
        "  <A>..<B>         commit range\n\n"
        "  <branch|commit>  git ref\n\n"
        "  <area>           security, performance, maintainability, testing,\n"
        "                   compatibility, architecture, frontend"
    ),
    add_completion=False,
    no_args_is_help=True,
)
session_app = typer.Typer(help="Manage review sessions.", no_args_is_help=True)
debug_app = typer.Typer(help="Manage debug sessions.", no_args_is_help=True)
app.add_typer(session_app, name="session")
app.add_typer(debug_app, name="debug")

_TargetArgs = Annotated[
    list[str] | None,
    typer.Argument(
        help="[find] [TARGET] [FILE_PATTERN]",
        show_default=False,
    ),
]
_SessionIdArg = Annotated[str, typer.Argument(help="Session id returned by init.")]


def _version_callback(value: bool) -> None:
    """--version 指定時にバージョン番号を出力して終了する。"""
    if value:
        print(importlib.metadata.version("review-code"))
        raise typer.Exit()


def main() -> None:
    """CLI エントリポイント。pyproject.toml の [project.scripts] から呼び出される。"""
    app()


@app.callback()
def root_callback(
    ctx: typer.Context,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            help="Show version and exit.",
            callback=_version_callback,
            is_eager=True,
        ),
    ] = None,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            help="Config file path (default: ~/.claude/review-code.env).",
            dir_okay=False,
        ),
    ] = None,
    review_root: Annotated[
        Path | None,
        typer.Option("--review-root", help="Root directory for review files."),
    ] = None,
    context_path: Annotated[
        Path | None,
        typer.Option("--context-path", help="Directory of review context files."),
    ] = None,
    diff_context_lines: Annotated[
        int | None,
        typer.Option(
            "--diff-context-lines", help="Context lines for git diff.", min=0
        ),
    ] = None,
) -> None:
    """Resolve code review targets and manage review sessions."""
    obj = ctx.ensure_object(dict)
    obj[_OPTIONS_KEY] = {
        "config_path": config,
        "cli_overrides": {
            "review_root_path": review_root,
            "context_path": context_path,
            "diff_context_lines": diff_context_lines,
        },
    }


# --- 共通ヘルパー ---


def _resolve_settings(ctx: typer.Context) -> ReviewCodeSettings:
    options = ctx.ensure_object(dict).get(_OPTIONS_KEY, {})
    return resolve_settings(
        config_path=options.get("config_path"),
        cli_overrides=options.get("cli_overrides"),
    )


def _load_settings(ctx: typer.Context) -> ReviewCodeSettings:
    """CLI オプションと設定ファイルから設定を解決する。

    Raises:
        ConfigSecurityError: 設定ファイルの所有者・権限が不正な場合。
        typer.Exit: 設定値が不正、または設定ファイルが読めない場合。
    """
    try:
        return _resolve_settings(ctx)
    except ValidationError as e:
        print(
            f"Error: Invalid configuration: {e}\n"
            "Check ~/.claude/review-code.env for invalid values.",
            file=sys.stderr,
        )
        raise typer.Exit(code=ExitCode.ERROR) from None
    except OSError as e:
        print(
            f"Error: Cannot read configuration file: {e}\n"
            "Check file permissions for ~/.claude/review-code.env.",
            file=sys.stderr,
        )
        raise typer.Exit(code=ExitCode.ERROR) from None


def _error_target_exit(message: str, kind: ErrorKind) -> typer.Exit:
    """ErrorTarget を JSON として stderr に出力する。"""
    request = ResolvedRequest(target=ErrorTarget(error=message, kind=kind))
    print(json.dumps(request.to_output(), ensure_ascii=False), file=sys.stderr)
    return typer.Exit(code=ExitCode.ERROR)


def _config_error_exit(error: ConfigSecurityError) -> typer.Exit:
    """設定ファイルのセキュリティ違反をエラー JSON として stderr に出力する。"""
    return _error_target_exit(str(error), ErrorKind.CONFIG_SECURITY_VIOLATION)


def _session_manager(ctx: typer.Context) -> SessionManager:
    try:
        settings = _load_settings(ctx)
    except ConfigSecurityError as e:
        raise _config_error_exit(e) from None
    return SessionManager(settings)


def _print_model(model: BaseModel) -> None:
    print(model.model_dump_json(indent=2))


def _session_error_exit(error: SessionError) -> typer.Exit:
    print(f"Error: {error}", file=sys.stderr)
    return typer.Exit(code=ExitCode.ERROR)


# --- resolve ---


@app.command()
def resolve(ctx: typer.Context, args: _TargetArgs = None) -> None:
    """Resolve the review target and print it as JSON.

    Prints to stdout and exits 0 for every resolved state; prints the error
    object to stderr and exits 1 when resolution or configuration fails.
    """
    try:
        _resolve_settings(ctx)
    except ConfigSecurityError as e:
        raise _config_error_exit(e) from None
    except ValidationError as e:
        raise _error_target_exit(
            f"Invalid configuration: {e}", ErrorKind.INVALID_CONFIG
        ) from None
    except OSError as e:
        raise _error_target_exit(
            f"Cannot read configuration file: {e}", ErrorKind.INVALID_CONFIG
        ) from None

    raw_arg, file_pattern, find_mode = parse_invocation(args)
    request = resolve_target(raw_arg, file_pattern, find_mode=find_mode)
    output = json.dumps(request.to_output(), ensure_ascii=False)
    if request.is_error:
        print(output, file=sys.stderr)
        raise typer.Exit(code=ExitCode.ERROR)
    print(output)


# --- session ---


@session_app.command("init")
def session_init(ctx: typer.Context, args: _TargetArgs = None) -> None:
    """Resolve the target, compute the review bundle once and print the session id."""
    manager = _session_manager(ctx)
    raw_arg, file_pattern, find_mode = parse_invocation(args)
    try:
        session_id = manager.init(raw_arg, file_pattern, find_mode=find_mode)
    except SessionError as e:
        raise _session_error_exit(e) from None
    print(session_id)


@session_app.command("get-status")
def session_get_status(ctx: typer.Context, session_id: _SessionIdArg) -> None:
    """Print the session status."""
    manager = _session_manager(ctx)
    try:
        print(manager.get_status(session_id).value)
    except SessionError as e:
        raise _session_error_exit(e) from None


@session_app.command("get-error-data")
def session_get_error_data(ctx: typer.Context, session_id: _SessionIdArg) -> None:
    """Print the error message of an error session."""
    manager = _session_manager(ctx)
    try:
        _print_model(manager.get_error_data(session_id))
    except SessionError as e:
        raise _session_error_exit(e) from None


@session_app.command("get-ambiguous-data")
def session_get_ambiguous_data(ctx: typer.Context, session_id: _SessionIdArg) -> None:
    """Print the choices of an ambiguous session."""
    manager = _session_manager(ctx)
    try:
        _print_model(manager.get_ambiguous_data(session_id))
    except SessionError as e:
        raise _session_error_exit(e) from None


@session_app.command("get-prompt-data")
def session_get_prompt_data(ctx: typer.Context, session_id: _SessionIdArg) -> None:
    """Print the choices of a prompt session."""
    manager = _session_manager(ctx)
    try:
        _print_model(manager.get_prompt_data(session_id))
    except SessionError as e:
        raise _session_error_exit(e) from None


@session_app.command("get-prompt-pull-data")
def session_get_prompt_pull_data(
    ctx: typer.Context, session_id: _SessionIdArg
) -> None:
    """Print the choices of a prompt_pull session."""
    manager = _session_manager(ctx)
    try:
        _print_model(manager.get_prompt_pull_data(session_id))
    except SessionError as e:
        raise _session_error_exit(e) from None


@session_app.command("get-find-data")
def session_get_find_data(ctx: typer.Context, session_id: _SessionIdArg) -> None:
    """Print the target and bundle file of a find session."""
    manager = _session_manager(ctx)
    try:
        _print_model(manager.get_find_data(session_id))
    except SessionError as e:
        raise _session_error_exit(e) from None


@session_app.command("get-ready-data")
def session_get_ready_data(ctx: typer.Context, session_id: _SessionIdArg) -> None:
    """Print the review bundle of a ready session."""
    manager = _session_manager(ctx)
    try:
        _print_model(manager.get_ready_data(session_id))
    except SessionError as e:
        raise _session_error_exit(e) from None


@session_app.command("get-session-file")
def session_get_session_file(ctx: typer.Context, session_id: _SessionIdArg) -> None:
    """Print the path of the bundle file (ready/find sessions only)."""
    manager = _session_manager(ctx)
    try:
        print(manager.get_session_file(session_id))
    except SessionError as e:
        raise _session_error_exit(e) from None


@session_app.command("cleanup")
def session_cleanup(ctx: typer.Context, session_id: _SessionIdArg) -> None:
    """Delete a session. Deleting a missing session succeeds."""
    manager = _session_manager(ctx)
    try:
        manager.cleanup(session_id)
    except SessionError as e:
        raise _session_error_exit(e) from None


@session_app.command("cleanup-old")
def session_cleanup_old(
    ctx: typer.Context,
    minutes: Annotated[
        int,
        typer.Option("--minutes", help="Delete sessions older than this.", min=0),
    ] = DEFAULT_MAX_AGE_MINUTES,
) -> None:
    """Delete sessions older than the given age."""
    manager = _session_manager(ctx)
    deleted = manager.cleanup_old(minutes)
    print(f"Removed {len(deleted)} session(s).", file=sys.stderr)


@session_app.command("list")
def session_list(ctx: typer.Context) -> None:
    """List completed sessions."""
    manager = _session_manager(ctx)
    sessions = manager.list_sessions()
    if not sessions:
        print("No sessions.", file=sys.stderr)
        return

    table = Table()
    table.add_column("SESSION ID")
    table.add_column("STATUS")
    table.add_column("CREATED")
    for summary in sessions:
        table.add_row(
            summary.session_id,
            summary.status.value,
            summary.created_at.strftime("%Y-%m-%d %H:%M:%S"),
        )
    Console().print(table)


# --- debug ---


@debug_app.command("list")
def debug_list(ctx: typer.Context) -> None:
    """List debug sessions, newest first."""
    try:
        settings = _load_settings(ctx)
    except ConfigSecurityError as e:
        raise _config_error_exit(e) from None

    sessions = list_debug_sessions(settings.debug_path)
    if not sessions:
        print(f"No debug sessions in {settings.debug_path}.", file=sys.stderr)
        return

    table = Table(title=str(settings.debug_path))
    table.add_column("SESSION")
    table.add_column("MODIFIED")
    table.add_column("FILES", justify="right")
    table.add_column("README")
    for info in sessions:
        table.add_row(
            info.name,
            info.modified_at.astimezone().strftime("%Y-%m-%d %H:%M:%S"),
            str(info.file_count),
            "yes" if info.has_readme else "no",
        )
    Console().print(table)


@debug_app.command("clean")
def debug_clean(
    ctx: typer.Context,
    days: Annotated[
        int | None,
        typer.Option("--days", help="Delete debug sessions older than N days.", min=0),
    ] = None,
    delete_all: Annotated[
        bool, typer.Option("--all", help="Delete all debug sessions.")
    ] = False,
) -> None:
    """Delete debug sessions."""
    if days is None and not delete_all:
        print("Error: Specify --days N or --all.", file=sys.stderr)
        raise typer.Exit(code=ExitCode.ERROR)
    if days is not None and delete_all:
        print("Error: --days and --all are mutually exclusive.", file=sys.stderr)
        raise typer.Exit(code=ExitCode.ERROR)

    try:
        settings = _load_settings(ctx)
    except ConfigSecurityError as e:
        raise _config_error_exit(e) from None

    deleted = delete_debug_sessions(
        settings.debug_path, older_than_days=days, delete_all=delete_all
    )
    print(f"Removed {len(deleted)} debug session(s).", file=sys.stderr)
