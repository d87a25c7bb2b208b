"""SessionManager — レビューセッションのライフサイクル管理。

init でレビュー対象を判定し、確定済みの対象についてバンドルを1回だけ計算して
保存する。以降のアクセサはファイルを読むだけで git やネットワークを呼ばない。
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path
from typing import Final

from review_code.debug import DebugRecorder, create_debug_recorder
from review_code.engine import (
    BundleBuilder,
    BundleError,
    GitBundleBuilder,
    GitProbe,
    PullRequestFinder,
    ToolCommandError,
    ToolNotFoundError,
    get_org_repo,
    resolve_target,
)
from review_code.engine._repository import parse_pull_request_url
from review_code.models.bundle import ReviewBundle
from review_code.models.config import ReviewCodeSettings
from review_code.models.session import (
    AmbiguousData,
    ErrorData,
    FindData,
    PromptData,
    PromptPullData,
    SessionHeader,
    SessionPayload,
    SessionRequest,
    SessionStatus,
    SessionSummary,
)
from review_code.models.target import (
    AmbiguousTarget,
    AreaTarget,
    BranchTarget,
    ConcreteTarget,
    ErrorKind,
    ErrorTarget,
    LocalUncommittedTarget,
    PromptPullTarget,
    PromptUncommittedTarget,
    PullRequestTarget,
    RangeTarget,
    ResolvedRequest,
    ReviewTarget,
)
from review_code.session._store import (
    SessionStatusError,
    SessionStore,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE_MINUTES: Final[int] = 60
"""cleanup_old が削除対象とするセッションの経過時間。"""

_UNSAFE_ID_CHARS_RE: Final[re.Pattern[str]] = re.compile(r"[^A-Za-z0-9_-]")

_STATUS_BY_MODE: Final[dict[str, SessionStatus]] = {
    "error": SessionStatus.ERROR,
    "ambiguous": SessionStatus.AMBIGUOUS,
    "prompt": SessionStatus.PROMPT,
    "prompt_pull": SessionStatus.PROMPT_PULL,
}


def _local_now() -> datetime:
    return datetime.now().astimezone()


def _command_error_kind(error: ToolCommandError) -> ErrorKind:
    """失敗したコマンドに応じたエラー分類。"""
    if error.command[:1] == ("gh",):
        return ErrorKind.GH_COMMAND_FAILED
    return ErrorKind.GIT_COMMAND_FAILED


def status_for(request: ResolvedRequest) -> SessionStatus:
    """解決結果に対応するセッション状態。

    確定済みの対象は find モードなら find、それ以外は ready。
    """
    status = _STATUS_BY_MODE.get(request.target.mode)
    if status is not None:
        return status
    return SessionStatus.FIND if request.find_mode else SessionStatus.READY


def target_identifier(target: ReviewTarget) -> str:
    """セッション ID とデバッグディレクトリ名に使う対象の識別子。"""
    if isinstance(target, PullRequestTarget):
        return target.pr_number
    if isinstance(target, BranchTarget):
        return target.branch
    if isinstance(target, RangeTarget):
        return target.range.replace(".", "-")
    if isinstance(target, AreaTarget):
        return target.area.value
    if isinstance(target, LocalUncommittedTarget):
        return target.scope
    if isinstance(target, AmbiguousTarget):
        return target.arg
    if isinstance(target, PromptUncommittedTarget):
        return target.current_branch
    if isinstance(target, PromptPullTarget):
        return target.branch
    return target.kind.value


def build_session_id(
    org: str, repo: str, target: ReviewTarget, created_at: datetime
) -> str:
    """{org}-{repo}-{mode}-{identifier}-{YYYYmmdd-HHMMSS} 形式のセッション ID。

    英数字・"-"・"_" 以外の文字は "-" に置換する。
    """
    raw = "-".join(
        (
            org or "unknown",
            repo or "unknown",
            target.mode,
            target_identifier(target),
            created_at.strftime("%Y%m%d-%H%M%S"),
        )
    )
    return _UNSAFE_ID_CHARS_RE.sub("-", raw)


class SessionManager:
    """レビューセッションの作成・参照・削除。

    Args:
        settings: 解決済み設定。session_dir 配下にセッションを保存する。
        builder: バンドル計算器。None の場合は GitBundleBuilder。
        recorder: デバッグ記録器。None の場合は設定に基づいて生成する。
        git: git クエリ。None の場合はカレントディレクトリの GitProbe。
        pr_finder: ブランチに紐づく PR の検索関数。
        clock: 現在時刻を返す関数。
    """

    def __init__(
        self,
        settings: ReviewCodeSettings,
        *,
        builder: BundleBuilder | None = None,
        recorder: DebugRecorder | None = None,
        git: GitProbe | None = None,
        pr_finder: PullRequestFinder | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._settings = settings
        self._git = git if git is not None else GitProbe()
        self._pr_finder = pr_finder
        self._recorder = (
            recorder if recorder is not None else create_debug_recorder(settings)
        )
        self._builder = (
            builder
            if builder is not None
            else GitBundleBuilder(
                settings, git=self._git, recorder=self._recorder, pr_finder=pr_finder
            )
        )
        self._clock = clock or _local_now
        self._store = SessionStore(settings.session_dir)

    @property
    def store(self) -> SessionStore:
        return self._store

    # --- 作成 ---

    def init(
        self, raw_arg: str = "", file_pattern: str = "", *, find_mode: bool = False
    ) -> str:
        """レビュー対象を判定してセッションを作成し、セッション ID を返す。

        確定済みの対象はここで1回だけバンドルを計算する。計算の失敗は
        例外ではなく status=error のセッションとして記録する。

        Raises:
            SessionError: 同じ ID のセッションが既に存在する場合。
        """
        rec = self._recorder
        request = resolve_target(
            raw_arg,
            file_pattern,
            find_mode=find_mode,
            git=self._git,
            pr_finder=self._pr_finder,
        )
        target = request.target
        org, repo = self._org_repo(target)
        identifier = target_identifier(target)
        debug_identifier = (
            "local" if target.mode == "local" else f"{target.mode}-{identifier}"
        )

        rec.init(debug_identifier, org, repo, target.mode)
        rec.time("00-session", "start")
        rec.save(
            "00-input",
            "args.txt",
            f"arg={raw_arg}\nfile_pattern={file_pattern}\nfind_mode={find_mode}",
        )
        rec.time("01-parse", "start")
        rec.save_json("01-parse", "output.json", request.to_output())
        rec.time("01-parse", "end")

        status = status_for(request)
        message: str | None = None
        error_kind: ErrorKind | None = None
        bundle: ReviewBundle | None = None

        if isinstance(target, ErrorTarget):
            message = target.error
            error_kind = target.kind
        elif isinstance(target, ConcreteTarget):
            try:
                bundle = self._builder.build(request)
            except ToolNotFoundError as e:
                status, message, error_kind = (
                    SessionStatus.ERROR,
                    str(e),
                    ErrorKind.EXTERNAL_TOOL_MISSING,
                )
            except ToolCommandError as e:
                status, message, error_kind = (
                    SessionStatus.ERROR,
                    str(e),
                    _command_error_kind(e),
                )
            except BundleError as e:
                status, message, error_kind = SessionStatus.ERROR, str(e), e.kind
            except Exception as e:
                # 想定外の失敗もセッションを残して呼び出し元に error を返す
                logger.warning(
                    "Unexpected bundle failure %s: %s",
                    type(e).__name__,
                    e,
                    exc_info=True,
                )
                status, message = (
                    SessionStatus.ERROR,
                    f"Bundle computation failed: {type(e).__name__}: {e}",
                )
            if message is not None:
                logger.warning("Bundle computation failed: %s", message)
                rec.trace("02-diff", f"Bundle computation failed: {message}")

        created_at = self._clock()
        session_id = build_session_id(org, repo, target, created_at)
        self._store.create(session_id)
        self._store.write(
            SessionHeader(session_id=session_id, created_at=created_at, status=status),
            SessionPayload(
                request=SessionRequest(
                    raw_arg=raw_arg, file_pattern=file_pattern, find_mode=find_mode
                ),
                target=target,
                message=message,
                error_kind=error_kind,
                bundle=bundle,
            ),
        )

        rec.time("00-session", "end")
        rec.finalize()
        return session_id

    def _org_repo(self, target: ReviewTarget) -> tuple[str, str]:
        if isinstance(target, PullRequestTarget) and target.pr_url:
            parsed = parse_pull_request_url(target.pr_url)
            if parsed is not None:
                return parsed
        return get_org_repo(self._git)

    # --- 参照 ---

    def get_status(self, session_id: str) -> SessionStatus:
        """セッションの状態を返す。

        Raises:
            SessionNotFoundError / SessionCorruptError / InvalidSessionIdError
        """
        return self._store.read_header(session_id).status

    def _payload_for(
        self, session_id: str, *allowed: SessionStatus
    ) -> SessionPayload:
        status = self.get_status(session_id)
        if status not in allowed:
            expected = " or ".join(s.value for s in allowed)
            raise SessionStatusError(
                f"Session {session_id} has status '{status.value}', expected {expected}"
            )
        return self._store.read_payload(session_id)

    def get_error_data(self, session_id: str) -> ErrorData:
        """status=error のメッセージ。"""
        payload = self._payload_for(session_id, SessionStatus.ERROR)
        return ErrorData(message=payload.message or "", kind=payload.error_kind)

    def get_ambiguous_data(self, session_id: str) -> AmbiguousData:
        """status=ambiguous の判定材料。"""
        payload = self._payload_for(session_id, SessionStatus.AMBIGUOUS)
        target = payload.target
        if not isinstance(target, AmbiguousTarget):
            raise SessionStatusError(f"Session {session_id} has no ambiguous target")
        return AmbiguousData(
            arg=target.arg,
            ref_kind=target.ref_kind,
            is_branch=target.is_branch,
            is_current=target.is_current,
            base_branch=target.base_branch,
            reason=target.reason,
        )

    def get_prompt_data(self, session_id: str) -> PromptData:
        """status=prompt の判定材料。"""
        payload = self._payload_for(session_id, SessionStatus.PROMPT)
        target = payload.target
        if not isinstance(target, PromptUncommittedTarget):
            raise SessionStatusError(f"Session {session_id} has no prompt target")
        return PromptData(
            current_branch=target.current_branch,
            base_branch=target.base_branch,
            has_uncommitted=target.has_uncommitted,
        )

    def get_prompt_pull_data(self, session_id: str) -> PromptPullData:
        """status=prompt_pull の判定材料。"""
        payload = self._payload_for(session_id, SessionStatus.PROMPT_PULL)
        target = payload.target
        if not isinstance(target, PromptPullTarget):
            raise SessionStatusError(f"Session {session_id} has no prompt_pull target")
        return PromptPullData(
            branch=target.branch,
            base_branch=target.base_branch,
            associated_pr=target.associated_pr,
            remote_ahead=target.remote_ahead,
            warnings=target.warnings,
        )

    def get_find_data(self, session_id: str) -> FindData:
        """status=find の対象とバンドルファイルのパス。"""
        payload = self._payload_for(session_id, SessionStatus.FIND)
        target = payload.target
        if not isinstance(target, ConcreteTarget):
            raise SessionStatusError(f"Session {session_id} has no concrete target")
        return FindData(
            target=target,
            file_pattern=payload.request.file_pattern,
            session_file=str(self._store.payload_path(session_id)),
        )

    def get_ready_data(self, session_id: str) -> ReviewBundle:
        """status=ready のバンドル。"""
        payload = self._payload_for(session_id, SessionStatus.READY)
        if payload.bundle is None:
            raise SessionStatusError(f"Session {session_id} has no bundle")
        return payload.bundle

    def get_session_file(self, session_id: str) -> Path:
        """バンドルファイル（bundle.json）のパス。ready / find のみ有効。"""
        self._payload_for(session_id, SessionStatus.READY, SessionStatus.FIND)
        return self._store.payload_path(session_id)

    # --- 削除・一覧 ---

    def cleanup(self, session_id: str) -> bool:
        """セッションを削除する。存在しない場合も成功として False を返す。

        Raises:
            InvalidSessionIdError: ID が不正な場合。
        """
        return self._store.delete(session_id)

    def cleanup_old(self, max_age_minutes: int = DEFAULT_MAX_AGE_MINUTES) -> list[str]:
        """最終更新から max_age_minutes 分以上経過したセッションを削除する。

        書き込み途中で残ったセッションも対象とする。削除した ID を返す。
        """
        if max_age_minutes < 0:
            raise ValueError(f"max_age_minutes must be >= 0, got {max_age_minutes}")
        cutoff = (self._clock() - timedelta(minutes=max_age_minutes)).timestamp()
        deleted: list[str] = []
        for session_id in self._store.session_ids():
            path = self._store.session_path(session_id)
            if path.stat().st_mtime <= cutoff:
                self._store.delete(session_id)
                deleted.append(session_id)
        if deleted:
            logger.info("Removed %d old session(s)", len(deleted))
        return deleted

    def list_sessions(self) -> list[SessionSummary]:
        """完了済みセッションの一覧。"""
        return self._store.summaries()
