"""TargetResolver — 位置引数からのレビュー対象判定。

判定器を優先順に評価し、最初に結果を返したものを採用する。
1. 領域キーワード
2. PR 番号 / PR URL
3. コミット範囲（A..B）
4. git ref（ブランチ・コミット・タグ）
5. 引数なし
6. いずれにも該当しない → エラー
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Final

from review_code.engine._base_branch import locate_base_branch
from review_code.engine._git_probe import GitProbe
from review_code.engine._tools import ToolCommandError, ToolNotFoundError, run_gh
from review_code.models.target import (
    AmbiguousTarget,
    AreaKeyword,
    AreaTarget,
    BranchTarget,
    ErrorKind,
    ErrorTarget,
    LocalUncommittedTarget,
    PromptPullTarget,
    PromptUncommittedTarget,
    PullRequestTarget,
    RangeTarget,
    RefKind,
    ResolvedRequest,
    ReviewTarget,
)

logger = logging.getLogger(__name__)

FIND_KEYWORD: Final[str] = "find"
"""先頭に置くと find モードになる位置引数。"""

_PR_DIGITS_RE: Final[re.Pattern[str]] = re.compile(r"^[0-9]+$")
_PR_URL_RE: Final[re.Pattern[str]] = re.compile(
    r"^https://[^/\s]+/[^/\s]+/[^/\s]+/pull/([^/?#\s]*)(?:[/?#].*)?$"
)
_RANGE_SEPARATOR: Final[str] = ".."
_AREA_KEYWORDS: Final[frozenset[str]] = frozenset(k.value for k in AreaKeyword)

_REASON_CURRENT_BRANCH: Final[str] = (
    "Current branch - unclear if reviewing uncommitted vs branch changes"
)
_REASON_COMMIT: Final[str] = (
    "Commit hash - unclear if reviewing single commit vs range to HEAD"
)
_REASON_TAG: Final[str] = "Tag - unclear if reviewing tag vs range to HEAD"
_REASON_OTHER: Final[str] = "Git object - unclear what to review"

PullRequestFinder = Callable[[str], list[str]]
"""ブランチ名からオープンな PR 番号のリストを返す関数。"""


def find_open_pull_requests(branch: str) -> list[str]:
    """gh pr list でブランチに紐づくオープンな PR 番号を取得する。

    Raises:
        ToolNotFoundError: gh が PATH 上に見つからない場合。
        ToolCommandError: gh コマンドが失敗した場合。
    """
    output = run_gh(
        [
            "pr",
            "list",
            "--head",
            branch,
            "--state",
            "open",
            "--json",
            "number",
            "--jq",
            ".[].number",
        ]
    )
    return [line.strip() for line in output.splitlines() if line.strip()]


@dataclass(frozen=True)
class ResolverContext:
    """判定器が共有する外部アクセス手段。"""

    git: GitProbe
    pr_finder: PullRequestFinder


Detector = Callable[[str, ResolverContext], ReviewTarget | None]
"""判定器。該当しない場合は None を返す。"""


# ---------------------------------------------------------------------------
# 判定器
# ---------------------------------------------------------------------------


def detect_area(raw_arg: str, ctx: ResolverContext) -> ReviewTarget | None:
    """領域キーワードとの完全一致。git は参照しない。"""
    if raw_arg in _AREA_KEYWORDS:
        return AreaTarget(area=AreaKeyword(raw_arg))
    return None


def detect_pull_request(raw_arg: str, ctx: ResolverContext) -> ReviewTarget | None:
    """PR 番号（数字のみ）または PR URL。

    URL の形をしているが番号部分が数字でない場合は不正な URL としてエラーを返す。
    """
    if _PR_DIGITS_RE.match(raw_arg):
        return PullRequestTarget(pr_number=raw_arg)

    match = _PR_URL_RE.match(raw_arg)
    if match is None:
        return None
    segment = match.group(1)
    if not _PR_DIGITS_RE.match(segment):
        return ErrorTarget(
            error=f"Malformed pull request URL: {raw_arg}",
            kind=ErrorKind.MALFORMED_URL,
        )
    return PullRequestTarget(pr_number=segment, pr_url=raw_arg)


def detect_range(raw_arg: str, ctx: ResolverContext) -> ReviewTarget | None:
    """コミット範囲。最初の ".." で分割し、両端の存在を確認する。

    範囲の形をしていれば後続の判定器には進まない。
    """
    if _RANGE_SEPARATOR not in raw_arg:
        return None
    start_ref, end_ref = raw_arg.split(_RANGE_SEPARATOR, 1)
    if not ctx.git.verify_object(start_ref):
        return ErrorTarget(
            error=f"Invalid start ref: {start_ref}", kind=ErrorKind.INVALID_REF
        )
    if not ctx.git.verify_object(end_ref):
        return ErrorTarget(
            error=f"Invalid end ref: {end_ref}", kind=ErrorKind.INVALID_REF
        )
    return RangeTarget(range=raw_arg, start_ref=start_ref, end_ref=end_ref)


def detect_git_ref(raw_arg: str, ctx: ResolverContext) -> ReviewTarget | None:
    """git ref。現在のブランチ以外のローカルブランチのみ確定し、他は曖昧とする。"""
    if not raw_arg or not ctx.git.verify_object(raw_arg):
        return None

    is_branch = ctx.git.is_local_branch(raw_arg)
    object_type = ctx.git.object_type(raw_arg)
    current_branch = ctx.git.current_branch()
    base_branch = locate_base_branch(ctx.git)
    is_current = raw_arg == current_branch

    ref_kind = _classify_ref(is_branch, object_type)

    if is_branch and not is_current:
        return BranchTarget(branch=raw_arg, base_branch=base_branch)

    if is_current:
        reason = _REASON_CURRENT_BRANCH
    elif ref_kind is RefKind.COMMIT:
        reason = _REASON_COMMIT
    elif ref_kind is RefKind.TAG:
        reason = _REASON_TAG
    else:
        reason = _REASON_OTHER

    return AmbiguousTarget(
        arg=raw_arg,
        ref_kind=ref_kind,
        is_branch=is_branch,
        is_current=is_current,
        base_branch=base_branch,
        reason=reason,
    )


def _classify_ref(is_branch: bool, object_type: str | None) -> RefKind:
    if is_branch:
        return RefKind.BRANCH
    if object_type == "commit":
        return RefKind.COMMIT
    if object_type == "tag":
        return RefKind.TAG
    return RefKind.UNKNOWN


def detect_no_argument(raw_arg: str, ctx: ResolverContext) -> ReviewTarget | None:
    """引数なし。現在のブランチと作業ツリーの状態から判定する。"""
    if raw_arg:
        return None

    current_branch = ctx.git.current_branch()
    base_branch = locate_base_branch(ctx.git)
    has_uncommitted = ctx.git.has_uncommitted_changes()
    on_base = current_branch in (base_branch, base_branch.removeprefix("origin/"))

    if on_base:
        if has_uncommitted:
            return LocalUncommittedTarget()
        return ErrorTarget(
            error="No changes to review. Use /review-code <commit|branch|range>",
            kind=ErrorKind.NO_CHANGES_TO_REVIEW,
        )

    if has_uncommitted:
        return PromptUncommittedTarget(
            current_branch=current_branch, base_branch=base_branch
        )

    warnings: list[str] = []
    remote_ahead = _check_remote_ahead(ctx.git, current_branch, warnings)
    associated_pr = _find_associated_pr(ctx.pr_finder, current_branch, warnings)

    return PromptPullTarget(
        branch=current_branch,
        base_branch=base_branch,
        associated_pr=associated_pr,
        remote_ahead=remote_ahead,
        warnings=tuple(warnings),
    )


def _check_remote_ahead(git: GitProbe, branch: str, warnings: list[str]) -> bool:
    """upstream が HEAD より進んでいるかを返す。判定できない場合は False。"""
    upstream = git.upstream()
    if upstream is None:
        return False
    local_rev = git.rev_parse("HEAD")
    remote_rev = git.rev_parse(upstream)
    if local_rev is None or remote_rev is None or local_rev == remote_rev:
        return False

    behind = git.count_commits(f"HEAD..{upstream}") or 0
    ahead = git.count_commits(f"{upstream}..HEAD") or 0
    if behind <= 0:
        return False

    if ahead > 0:
        message = (
            f"Branch '{branch}' has diverged from remote "
            f"(local ahead by {ahead}, behind by {behind})"
        )
        logger.warning(message)
        warnings.append(message)
    return True


def _find_associated_pr(
    pr_finder: PullRequestFinder, branch: str, warnings: list[str]
) -> str | None:
    """ブランチに紐づくオープンな PR を1つ返す。取得できない場合は None。"""
    try:
        numbers = pr_finder(branch)
    except ToolNotFoundError:
        logger.debug("gh not available, skipping PR lookup for '%s'", branch)
        return None
    except ToolCommandError as e:
        logger.warning("PR lookup for '%s' failed: %s", branch, e)
        return None

    numbers = [n for n in numbers if _PR_DIGITS_RE.match(n)]
    if not numbers:
        return None
    if len(numbers) > 1:
        message = (
            f"Multiple open PRs found for branch '{branch}': "
            f"{', '.join(numbers)}. Using PR #{numbers[0]}. "
            "To review a different PR, specify it explicitly."
        )
        logger.warning(message)
        warnings.append(message)
    return numbers[0]


def detect_invalid(raw_arg: str, ctx: ResolverContext) -> ReviewTarget | None:
    """どの判定器にも該当しない非空引数。"""
    return ErrorTarget(
        error=(
            f"Invalid argument: {raw_arg}. "
            "Not a valid PR, git ref, range, or area."
        ),
        kind=ErrorKind.INVALID_ARGUMENT,
    )


DETECTORS: Final[tuple[Detector, ...]] = (
    detect_area,
    detect_pull_request,
    detect_range,
    detect_git_ref,
    detect_no_argument,
    detect_invalid,
)
"""判定器の評価順。最初に None 以外を返したものを採用する。"""


# ---------------------------------------------------------------------------
# 公開 API
# ---------------------------------------------------------------------------


def parse_invocation(args: list[str] | None) -> tuple[str, str, bool]:
    """位置引数を (raw_arg, file_pattern, find_mode) に分解する。

    先頭が "find" の場合はそれを取り除き find モードとする。
    """
    remaining = list(args or [])
    find_mode = bool(remaining) and remaining[0] == FIND_KEYWORD
    if find_mode:
        remaining = remaining[1:]
    raw_arg = remaining[0] if remaining else ""
    file_pattern = remaining[1] if len(remaining) > 1 else ""
    return raw_arg, file_pattern, find_mode


def resolve_target(
    raw_arg: str,
    file_pattern: str = "",
    *,
    find_mode: bool = False,
    git: GitProbe | None = None,
    pr_finder: PullRequestFinder | None = None,
) -> ResolvedRequest:
    """位置引数からレビュー対象を判定する。

    同じリポジトリ状態に対しては何度呼び出しても同じ結果を返す。

    Args:
        raw_arg: 位置引数。空文字列は引数なし。
        file_pattern: diff を絞り込むパスパターン。判定には使用しない。
        find_mode: find モードかどうか。結果にそのまま引き継ぐ。
        git: git クエリ。None の場合はカレントディレクトリの GitProbe。
        pr_finder: PR 検索関数。None の場合は gh pr list を使用する。

    Returns:
        ResolvedRequest: 判定結果。失敗は ErrorTarget として返し、例外は送出しない。
    """
    ctx = ResolverContext(
        git=git if git is not None else GitProbe(),
        pr_finder=pr_finder if pr_finder is not None else find_open_pull_requests,
    )
    target = _run_detectors(raw_arg, ctx)
    return ResolvedRequest(target=target, file_pattern=file_pattern, find_mode=find_mode)


def _run_detectors(raw_arg: str, ctx: ResolverContext) -> ReviewTarget:
    try:
        for detector in DETECTORS:
            result = detector(raw_arg, ctx)
            if result is not None:
                return result
    except ToolNotFoundError as e:
        return ErrorTarget(error=str(e), kind=ErrorKind.EXTERNAL_TOOL_MISSING)
    except ToolCommandError as e:
        return ErrorTarget(
            error=f"git query failed: {e.stderr or e}",
            kind=ErrorKind.GIT_COMMAND_FAILED,
        )
    # detect_invalid は常に結果を返す
    raise AssertionError("unreachable")
