"""DebugRecorder — パイプライン各段階の中間成果物の記録。

REVIEW_CODE_DEBUG=1 のときのみファイルに記録する。無効時は全メソッドが
即座に返る NullDebugRecorder を使い、呼び出し側の制御フローは変わらない。
"""

from __future__ import annotations

import json
import logging
import re
import shutil
import subprocess
import time
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Final, Protocol, runtime_checkable

from review_code.models.config import ReviewCodeSettings

logger = logging.getLogger(__name__)

COMMAND_NOT_FOUND_EXIT_CODE: Final[int] = 127
"""実行ファイルが見つからない場合の終了コード。"""

DEBUG_DIR_MODE: Final[int] = 0o700
"""デバッグセッションディレクトリのパーミッション。"""

SESSION_FILE: Final[str] = "session.json"
TIMING_FILE: Final[str] = "timing.ndjson"
README_FILE: Final[str] = "README.md"

_NAME_RE: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9._-]*$")
"""ステージ名・ファイル名として受け付けるパターン。"""

_UNSAFE_DIR_CHARS_RE: Final[re.Pattern[str]] = re.compile(r"[^A-Za-z0-9._-]")


def _utc_now_iso() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def _validate_name(value: str, label: str) -> str:
    if not _NAME_RE.fullmatch(value):
        raise ValueError(f"Invalid debug {label}: {value!r}")
    return value


# =============================================================================
# DebugRecorder Protocol
# =============================================================================


@runtime_checkable
class DebugRecorder(Protocol):
    """デバッグ成果物を記録するプロトコル。

    init() より前の記録呼び出しは何もしない。
    """

    @property
    def session_dir(self) -> Path | None:
        """デバッグセッションディレクトリ。未初期化・無効時は None。"""
        ...

    def init(self, identifier: str, org: str, repo: str, mode: str) -> None:
        """デバッグセッションを開始する。"""
        ...

    def save(self, stage: str, filename: str, content: str) -> None:
        """文字列を成果物として保存する。"""
        ...

    def save_file(self, stage: str, filename: str, source: Path) -> None:
        """既存ファイルを成果物としてコピーする。"""
        ...

    def save_json(self, stage: str, filename: str, data: object) -> None:
        """JSON 互換データを整形して保存する。"""
        ...

    def log_command(self, stage: str, description: str, args: Sequence[str]) -> int:
        """コマンドを実行し終了コードを返す。"""
        ...

    def time(self, stage: str, event: str) -> None:
        """タイミングイベント（start / end）を記録する。"""
        ...

    def trace(self, stage: str, message: str) -> None:
        """トレースログに1行追記する。"""
        ...

    def stats(self, stage: str, **values: object) -> None:
        """ステージの統計を保存する。"""
        ...

    def finalize(self) -> Path | None:
        """README.md を生成し、そのパスを返す。"""
        ...


# =============================================================================
# NullDebugRecorder
# =============================================================================


class NullDebugRecorder:
    """デバッグ無効時の記録器。

    log_command のみコマンドを実行し（出力は破棄）、終了コードを返す。
    """

    @property
    def session_dir(self) -> Path | None:
        return None

    def init(self, identifier: str, org: str, repo: str, mode: str) -> None:
        pass

    def save(self, stage: str, filename: str, content: str) -> None:
        pass

    def save_file(self, stage: str, filename: str, source: Path) -> None:
        pass

    def save_json(self, stage: str, filename: str, data: object) -> None:
        pass

    def log_command(self, stage: str, description: str, args: Sequence[str]) -> int:
        try:
            result = subprocess.run(
                list(args),
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=False,
            )
        except FileNotFoundError:
            return COMMAND_NOT_FOUND_EXIT_CODE
        return result.returncode

    def time(self, stage: str, event: str) -> None:
        pass

    def trace(self, stage: str, message: str) -> None:
        pass

    def stats(self, stage: str, **values: object) -> None:
        pass

    def finalize(self) -> Path | None:
        return None


# =============================================================================
# FileDebugRecorder
# =============================================================================


class FileDebugRecorder:
    """デバッグセッションディレクトリに成果物を記録する。

    レイアウト:
        <base>/<org>-<repo>-<identifier>-<YYYYmmdd-HHMMSS>/
            session.json
            timing.ndjson
            <stage>/commands.log, stdout.log, stderr.log, trace.log, stats.json, ...
            README.md

    Args:
        base_path: デバッグセッションを作成する親ディレクトリ。
        clock: 現在時刻を返す関数。ディレクトリ名と session.json に使用する。
        timer: タイミングイベントの UNIX 時刻を返す関数。
    """

    def __init__(
        self,
        base_path: Path,
        *,
        clock: Callable[[], datetime] | None = None,
        timer: Callable[[], float] = time.time,
    ) -> None:
        self._base_path = base_path
        self._clock = clock or datetime.now
        self._timer = timer
        self._session_dir: Path | None = None

    @property
    def session_dir(self) -> Path | None:
        return self._session_dir

    def init(self, identifier: str, org: str, repo: str, mode: str) -> None:
        identifier = identifier or "unknown"
        org = org or "unknown"
        repo = repo or "unknown"
        timestamp = self._clock().strftime("%Y%m%d-%H%M%S")
        dir_name = _UNSAFE_DIR_CHARS_RE.sub(
            "-", f"{org}-{repo}-{identifier}-{timestamp}"
        )
        session_dir = self._base_path / dir_name
        header = {
            "identifier": identifier,
            "org": org,
            "repo": repo,
            "mode": mode,
            "timestamp": timestamp,
            "started_at": _utc_now_iso(),
            "debug_dir": str(session_dir),
        }
        try:
            session_dir.mkdir(parents=True, exist_ok=True)
            session_dir.chmod(DEBUG_DIR_MODE)
            (session_dir / SESSION_FILE).write_text(
                json.dumps(header, indent=2) + "\n", encoding="utf-8"
            )
        except OSError as e:
            # 以降の記録呼び出しは未初期化として何もしない
            logger.warning(
                "Debug recording disabled, cannot create %s: %s", session_dir, e
            )
            self._session_dir = None
            return
        self._session_dir = session_dir
        logger.info("Debug session: %s", session_dir)

    def _stage_dir(self, stage: str) -> Path | None:
        if self._session_dir is None:
            return None
        stage_dir = self._session_dir / _validate_name(stage, "stage")
        stage_dir.mkdir(exist_ok=True)
        return stage_dir

    def save(self, stage: str, filename: str, content: str) -> None:
        stage_dir = self._stage_dir(stage)
        if stage_dir is None:
            return
        path = stage_dir / _validate_name(filename, "filename")
        if not content.endswith("\n"):
            content += "\n"
        path.write_text(content, encoding="utf-8")

    def save_file(self, stage: str, filename: str, source: Path) -> None:
        stage_dir = self._stage_dir(stage)
        if stage_dir is None:
            return
        shutil.copyfile(source, stage_dir / _validate_name(filename, "filename"))

    def save_json(self, stage: str, filename: str, data: object) -> None:
        stage_dir = self._stage_dir(stage)
        if stage_dir is None:
            return
        path = stage_dir / _validate_name(filename, "filename")
        if isinstance(data, str):
            # 整形できない文字列はそのまま保存する
            try:
                data = json.loads(data)
            except json.JSONDecodeError:
                path.write_text(data, encoding="utf-8")
                return
        path.write_text(
            json.dumps(data, indent=2, ensure_ascii=False, default=str) + "\n",
            encoding="utf-8",
        )

    def log_command(self, stage: str, description: str, args: Sequence[str]) -> int:
        stage_dir = self._stage_dir(stage)
        if stage_dir is None:
            return NullDebugRecorder().log_command(stage, description, args)

        with (stage_dir / "commands.log").open("a", encoding="utf-8") as log:
            log.write(f"=== {description} ===\n")
            log.write(f"Command: {' '.join(args)}\n")
            log.write(f"Timestamp: {_utc_now_iso()}\n\n")

        with (
            (stage_dir / "stdout.log").open("a", encoding="utf-8") as out,
            (stage_dir / "stderr.log").open("a", encoding="utf-8") as err,
        ):
            try:
                exit_code = subprocess.run(
                    list(args), stdout=out, stderr=err, check=False
                ).returncode
            except FileNotFoundError:
                err.write(f"{args[0] if args else ''}: command not found\n")
                exit_code = COMMAND_NOT_FOUND_EXIT_CODE

        with (stage_dir / "commands.log").open("a", encoding="utf-8") as log:
            log.write(f"Exit code: {exit_code}\n\n")
        return exit_code

    def time(self, stage: str, event: str) -> None:
        if self._session_dir is None:
            return
        record = {"stage": stage, "event": event, "timestamp": self._timer()}
        with (self._session_dir / TIMING_FILE).open("a", encoding="utf-8") as f:
            f.write(json.dumps(record) + "\n")

    def trace(self, stage: str, message: str) -> None:
        stage_dir = self._stage_dir(stage)
        if stage_dir is None:
            return
        with (stage_dir / "trace.log").open("a", encoding="utf-8") as f:
            f.write(f"[{_utc_now_iso()}] {message}\n")

    def stats(self, stage: str, **values: object) -> None:
        self.save_json(stage, "stats.json", values)

    def finalize(self) -> Path | None:
        if self._session_dir is None:
            return None
        readme = self._session_dir / README_FILE
        readme.write_text(render_debug_readme(self._session_dir), encoding="utf-8")
        logger.info("Debug README: %s", readme)
        return readme


# =============================================================================
# README 生成
# =============================================================================


def stage_durations(timing_file: Path) -> list[tuple[str, float]]:
    """timing.ndjson から各ステージの所要時間を求める。

    ステージごとに最初の start と最初の end を対応させる。
    end のないステージは含めない。順序は最初の start の出現順。
    """
    if not timing_file.is_file():
        return []
    starts: dict[str, float] = {}
    ends: dict[str, float] = {}
    for line in timing_file.read_text(encoding="utf-8").splitlines():
        if not line.strip():
            continue
        try:
            record = json.loads(line)
            stage = str(record["stage"])
            event = record["event"]
            timestamp = float(record["timestamp"])
        except (json.JSONDecodeError, KeyError, TypeError, ValueError):
            logger.warning("Skipping malformed timing record: %s", line)
            continue
        if event == "start":
            starts.setdefault(stage, timestamp)
        elif event == "end":
            ends.setdefault(stage, timestamp)
    return [(stage, ends[stage] - start) for stage, start in starts.items() if stage in ends]


def render_debug_readme(session_dir: Path) -> str:
    """デバッグセッションの要約 Markdown を生成する。"""
    lines: list[str] = ["# Review Code Debug Summary", ""]

    session_file = session_dir / SESSION_FILE
    if session_file.is_file():
        try:
            header = json.loads(session_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            header = {}
        lines += [
            "## Session Information",
            "",
            f"- Mode: {header.get('mode', 'unknown')}",
            f"- Identifier: {header.get('identifier', 'unknown')}",
            f"- Repository: {header.get('org', 'unknown')}/{header.get('repo', 'unknown')}",
            f"- Started: {header.get('started_at', 'unknown')}",
            f"- Debug Directory: {session_dir}",
            "",
        ]

    durations = stage_durations(session_dir / TIMING_FILE)
    if durations:
        lines += ["## Timing Summary", ""]
        lines += [f"- {stage}: {seconds:.3f}s" for stage, seconds in durations]
        lines.append("")

    stage_dirs = sorted(p for p in session_dir.iterdir() if p.is_dir())

    stats_lines: list[str] = []
    for stage_dir in stage_dirs:
        stats_file = stage_dir / "stats.json"
        if not stats_file.is_file():
            continue
        try:
            values = json.loads(stats_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            continue
        rendered = ", ".join(f"{k}={v}" for k, v in values.items())
        stats_lines.append(f"- {stage_dir.name}: {rendered}")
    if stats_lines:
        lines += ["## Statistics", "", *stats_lines, ""]

    lines += ["## Debug Artifacts by Stage", ""]
    for stage_dir in stage_dirs:
        file_count = sum(1 for p in stage_dir.rglob("*") if p.is_file())
        lines.append(f"- {stage_dir.name} ({file_count} files)")
    lines += [
        "",
        "Full debug session saved to:",
        "",
        f"    {session_dir}",
        "",
    ]
    return "\n".join(lines)


# =============================================================================
# ファクトリ関数
# =============================================================================


def create_debug_recorder(settings: ReviewCodeSettings) -> DebugRecorder:
    """設定に基づいて DebugRecorder を生成する。

    debug_enabled が True の場合は FileDebugRecorder、それ以外は
    NullDebugRecorder を返す。判定は生成時の1回のみ。
    """
    if settings.debug_enabled:
        return FileDebugRecorder(settings.debug_path)
    return NullDebugRecorder()
