"""BundleBuilder — 確定済みレビュー対象からのバンドル計算。

以下のパイプラインで ReviewBundle を構築する:

1. リポジトリ情報収集（collect_git_context）
2. 差分取得（generate_diff）
3. 言語検出（detect_languages）
4. レビューコンテキスト読み込み（load_review_context）
5. ファイルメタデータ抽出（build_file_metadata）
6. レビュー結果ファイルのパス決定（build_review_file_info）
7. PR メタデータ取得（PR 対象、またはブランチに紐づく PR がある場合）
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Protocol, runtime_checkable

from review_code.debug import DebugRecorder, NullDebugRecorder
from review_code.engine._context_loader import load_review_context
from review_code.engine._diff import generate_diff
from review_code.engine._diff_analysis import (
    build_file_metadata,
    compute_diff_stats,
    detect_languages,
)
from review_code.engine._git_probe import GitProbe
from review_code.engine._pull_request import PullRequestFetchError, fetch_pull_request
from review_code.engine._repository import (
    UNKNOWN,
    collect_git_context,
    get_org_repo,
    parse_pull_request_url,
    pull_request_repo_spec,
)
from review_code.engine._review_file import ReviewPathError, build_review_file_info
from review_code.engine._target_resolver import (
    PullRequestFinder,
    find_open_pull_requests,
)
from review_code.engine._tools import ToolCommandError, ToolNotFoundError
from review_code.models.bundle import GitContext, PullRequestMetadata, ReviewBundle
from review_code.models.config import ReviewCodeSettings
from review_code.models.target import (
    BranchTarget,
    ConcreteTarget,
    ErrorKind,
    PullRequestTarget,
    RangeTarget,
    ResolvedRequest,
)

logger = logging.getLogger(__name__)

PullRequestFetcher = Callable[[str, str | None], PullRequestMetadata]
"""PR 番号と gh --repo 値（[HOST/]OWNER/REPO）から PR メタデータを取得する関数。"""


class BundleError(Exception):
    """バンドル計算の失敗。

    差分が空の場合やレビュー結果ファイルのパス決定・PR メタデータの解釈など、
    外部コマンドの失敗以外の計算エラーを表す。

    Attributes:
        kind: エラー分類。分類できない場合は None。
    """

    def __init__(self, message: str, *, kind: ErrorKind | None = None) -> None:
        super().__init__(message)
        self.kind = kind


@runtime_checkable
class BundleBuilder(Protocol):
    """確定済みのレビュー要求からバンドルを構築するプロトコル。"""

    def build(self, request: ResolvedRequest) -> ReviewBundle:
        """バンドルを構築する。

        Raises:
            BundleError: 計算に失敗した場合。
            ToolCommandError: 外部コマンドが失敗した場合。
        """
        ...


class GitBundleBuilder:
    """git / gh を使用する BundleBuilder の既定実装。

    Args:
        settings: 解決済み設定。
        git: git クエリ。None の場合はカレントディレクトリの GitProbe。
        recorder: デバッグ記録器。None の場合は記録しない。
        pr_finder: ブランチに紐づく PR の検索関数。
        pr_fetcher: PR メタデータの取得関数。
    """

    def __init__(
        self,
        settings: ReviewCodeSettings,
        *,
        git: GitProbe | None = None,
        recorder: DebugRecorder | None = None,
        pr_finder: PullRequestFinder | None = None,
        pr_fetcher: PullRequestFetcher | None = None,
    ) -> None:
        self._settings = settings
        self._git = git if git is not None else GitProbe()
        self._recorder = recorder if recorder is not None else NullDebugRecorder()
        self._pr_finder = pr_finder if pr_finder is not None else find_open_pull_requests
        self._pr_fetcher = pr_fetcher if pr_fetcher is not None else fetch_pull_request

    def build(self, request: ResolvedRequest) -> ReviewBundle:
        target = request.target
        if not isinstance(target, ConcreteTarget):
            raise BundleError(f"Cannot build a bundle for mode '{target.mode}'")

        rec = self._recorder
        repo_spec = self._repo_spec(target)
        git_context = self._collect_git_context(target)

        rec.time("02-diff", "start")
        diff_result = generate_diff(
            target,
            self._git,
            file_pattern=request.file_pattern,
            context_lines=self._settings.diff_context_lines,
            repo_spec=repo_spec,
        )
        rec.save("02-diff", "diff.patch", diff_result.diff)
        rec.trace("02-diff", f"Diff type: {diff_result.diff_type}")
        rec.time("02-diff", "end")
        if not diff_result.diff.strip():
            raise BundleError(
                f"No changes found to review: {diff_result.diff_type}",
                kind=ErrorKind.NO_CHANGES_TO_REVIEW,
            )

        rec.time("03-language-detection", "start")
        languages = detect_languages(diff_result.diff)
        rec.save_json("03-language-detection", "output.json", list(languages))
        rec.time("03-language-detection", "end")

        rec.time("04-context-loading", "start")
        org, repo = self._org_repo(git_context, target)
        review_context = load_review_context(
            self._settings.context_path, languages, org, repo
        )
        rec.save(
            "04-context-loading",
            "loaded-files.txt",
            "\n".join(review_context.loaded_files) or "(no files loaded)",
        )
        rec.stats(
            "04-context-loading",
            files_loaded=len(review_context.loaded_files),
            languages_requested=len(languages),
        )
        rec.time("04-context-loading", "end")

        rec.time("05-file-metadata", "start")
        file_metadata = build_file_metadata(
            diff_result.diff, repo_root=self._git.cwd
        )
        stats = compute_diff_stats(diff_result.diff, self._count_commits(target))
        rec.save_json(
            "05-file-metadata", "output.json", file_metadata.model_dump(mode="json")
        )
        rec.stats("05-file-metadata", **stats.model_dump())
        rec.time("05-file-metadata", "end")

        rec.time("06-review-file", "start")
        try:
            review_file = build_review_file_info(
                self._settings.review_root_path,
                org,
                repo,
                git_context.branch or UNKNOWN,
                target,
            )
        except ReviewPathError as e:
            raise BundleError(f"Cannot determine review file path: {e}") from e
        rec.save_json(
            "06-review-file", "output.json", review_file.model_dump(mode="json")
        )
        rec.time("06-review-file", "end")

        rec.time("07-pr-context", "start")
        pr = self._pull_request(target, repo_spec)
        if pr is not None:
            rec.save_json("07-pr-context", "output.json", pr.model_dump(mode="json"))
        rec.time("07-pr-context", "end")

        return ReviewBundle(
            target=target,
            file_pattern=request.file_pattern,
            git=git_context,
            diff=diff_result.diff,
            diff_type=diff_result.diff_type,
            file_metadata=file_metadata,
            languages=languages,
            review_context=review_context,
            review_file=review_file,
            stats=stats,
            pr=pr,
        )

    # --- 各段階 ---

    @staticmethod
    def _repo_spec(target: ConcreteTarget) -> str | None:
        """PR URL 指定時の gh --repo 値（[HOST/]OWNER/REPO）。それ以外は None。"""
        if isinstance(target, PullRequestTarget) and target.pr_url:
            return pull_request_repo_spec(target.pr_url)
        return None

    @staticmethod
    def _url_org_repo(target: ConcreteTarget) -> tuple[str, str] | None:
        """PR URL 指定時の (org, repo)。"""
        if isinstance(target, PullRequestTarget) and target.pr_url:
            return parse_pull_request_url(target.pr_url)
        return None

    def _collect_git_context(self, target: ConcreteTarget) -> GitContext:
        """リポジトリ情報を収集する。

        PR 対象はリポジトリ外でも gh だけで計算できるため、
        git の失敗を許容して最小限の情報で続行する。
        """
        try:
            return collect_git_context(self._git)
        except ToolNotFoundError:
            raise
        except ToolCommandError as e:
            if not isinstance(target, PullRequestTarget):
                raise
            logger.warning("Not in a git repository, continuing with gh only: %s", e)
            org, repo = self._url_org_repo(target) or get_org_repo(self._git)
            return GitContext(org=org, repo=repo, branch=UNKNOWN)

    def _org_repo(
        self, git_context: GitContext, target: ConcreteTarget
    ) -> tuple[str, str]:
        return self._url_org_repo(target) or (git_context.org, git_context.repo)

    def _count_commits(self, target: ConcreteTarget) -> int | None:
        if isinstance(target, BranchTarget):
            return self._git.count_commits(f"{target.base_branch}..{target.branch}")
        if isinstance(target, RangeTarget):
            return self._git.count_commits(target.range)
        return None

    def _pull_request(
        self, target: ConcreteTarget, repo_spec: str | None
    ) -> PullRequestMetadata | None:
        """PR メタデータを取得する。

        PR 対象では取得失敗をエラーとし、ブランチ対象では紐づく PR が
        取得できなければ None とする。
        """
        if isinstance(target, PullRequestTarget):
            try:
                return self._pr_fetcher(target.pr_number, repo_spec)
            except PullRequestFetchError as e:
                raise BundleError(str(e), kind=ErrorKind.GH_COMMAND_FAILED) from e

        if isinstance(target, BranchTarget):
            try:
                numbers = self._pr_finder(target.branch)
                if not numbers:
                    return None
                return self._pr_fetcher(numbers[0], None)
            except ToolCommandError as e:
                logger.warning(
                    "Skipping PR context for branch '%s': %s", target.branch, e
                )
                return None
        return None
