"""DiffGenerator — レビュー対象ごとの差分取得。

ターゲットタイプに応じて git diff / gh pr diff で差分を取得する。
ロックファイルやビルド成果物は pathspec の除外指定で取り除く。
"""

from __future__ import annotations

from typing import Final

from pydantic import Field

from review_code.engine._diff_analysis import filter_diff_by_pattern
from review_code.engine._git_probe import GitProbe
from review_code.engine._tools import run_gh
from review_code.models._base import ReviewCodeBaseModel
from review_code.models.target import (
    AreaTarget,
    BranchTarget,
    ConcreteTarget,
    LocalUncommittedTarget,
    PullRequestTarget,
    RangeTarget,
)

DIFF_EXCLUSIONS: Final[tuple[str, ...]] = (
    ":!package-lock.json",
    ":!pnpm-lock.yaml",
    ":!yarn.lock",
    ":!Cargo.lock",
    ":!*.min.js",
    ":!*.min.css",
    ":!dist/",
    ":!build/",
    ":!.generated/",
)
"""レビュー差分から除外する pathspec。"""

UNSTAGED_SEPARATOR: Final[str] = "\n\n--- Unstaged Changes ---\n\n"
"""ステージ済み差分と未ステージ差分を連結する区切り。"""


class DiffResult(ReviewCodeBaseModel):
    """差分取得の結果。

    Attributes:
        diff: unified diff テキスト。変更がなければ空文字列。
        diff_type: 差分の種類を示す表示用文字列。
    """

    diff: str
    diff_type: str = Field(min_length=1)


def _pathspec(file_pattern: str) -> list[str]:
    spec = ["--", *DIFF_EXCLUSIONS]
    if file_pattern:
        spec.append(file_pattern)
    return spec


def _with_filter(description: str, file_pattern: str) -> str:
    if file_pattern:
        return f"{description} filtered by: {file_pattern}"
    return description


def generate_diff(
    target: ConcreteTarget,
    git: GitProbe,
    *,
    file_pattern: str = "",
    context_lines: int = 1,
    repo_spec: str | None = None,
) -> DiffResult:
    """ターゲットに応じて差分を取得する。

    Args:
        target: 確定済みのレビュー対象。
        git: git クエリ。
        file_pattern: 差分を絞り込むパスパターン。空文字列はフィルタなし。
        context_lines: git diff -U に渡すコンテキスト行数。
        repo_spec: PR 取得時に gh --repo に渡す [HOST/]OWNER/REPO。None は現在のリポジトリ。

    Returns:
        DiffResult: 差分と種類。

    Raises:
        ToolNotFoundError: git / gh が見つからない場合。
        ToolCommandError: 差分取得コマンドが失敗した場合。
        TypeError: 未知のターゲット型の場合。
    """
    options = [f"-U{context_lines}", "--diff-filter=d"]
    spec = _pathspec(file_pattern)

    if isinstance(target, BranchTarget):
        comparison = f"{target.base_branch}..{target.branch}"
        diff = git.run(["diff", comparison, *options, *spec])
        return DiffResult(
            diff=diff, diff_type=_with_filter(f"branch ({comparison})", file_pattern)
        )
    if isinstance(target, RangeTarget):
        diff = git.run(["diff", target.range, *options, *spec])
        return DiffResult(
            diff=diff, diff_type=_with_filter(f"range ({target.range})", file_pattern)
        )
    if isinstance(target, PullRequestTarget):
        diff = _pull_request_diff(target.pr_number, repo_spec)
        return DiffResult(
            diff=filter_diff_by_pattern(diff, file_pattern),
            diff_type=_with_filter(f"pr (#{target.pr_number})", file_pattern),
        )
    if isinstance(target, (LocalUncommittedTarget, AreaTarget)):
        return DiffResult(
            diff=_uncommitted_diff(git, options, spec),
            diff_type=_with_filter("local (uncommitted)", file_pattern),
        )
    raise TypeError(f"Unknown target type: {type(target)}")


def _uncommitted_diff(git: GitProbe, options: list[str], spec: list[str]) -> str:
    """ステージ済みと未ステージの差分を連結する。"""
    staged = git.run(["diff", "--staged", *options, *spec])
    unstaged = git.run(["diff", *options, *spec])
    if staged and unstaged:
        return f"{staged.rstrip()}{UNSTAGED_SEPARATOR}{unstaged}"
    return staged or unstaged


def _pull_request_diff(pr_number: str, repo_spec: str | None) -> str:
    args = ["pr", "diff", pr_number]
    if repo_spec:
        args.extend(["--repo", repo_spec])
    return run_gh(args)
