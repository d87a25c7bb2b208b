"""レビュー結果ファイルのパス決定。

<review_root>/<org>/<repo>/<filename> を求める。ファイルやディレクトリは作成しない。
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Final

from review_code.models.bundle import ReviewFileInfo
from review_code.models.target import (
    BranchTarget,
    ConcreteTarget,
    PullRequestTarget,
    RangeTarget,
)

_UNSAFE_CHARS_RE: Final[re.Pattern[str]] = re.compile(r"[^a-zA-Z0-9._-]")


class ReviewPathError(ValueError):
    """パス要素が安全なファイル名に変換できない。"""


def sanitize_path_component(value: str) -> str:
    """パス要素を安全なファイル名に変換する。

    "/" は "-" に置換し、英数字・"."・"_"・"-" 以外を除去する。

    Raises:
        ReviewPathError: 空、絶対パス、".." を含む、変換後に "." か "-" で始まる、
            または変換後に空になる場合。
    """
    if not value:
        raise ReviewPathError("Empty path component not allowed")
    if value.startswith("/"):
        raise ReviewPathError(f"Absolute paths not allowed: {value}")
    if ".." in value:
        raise ReviewPathError(f"Path traversal sequences not allowed: {value}")
    sanitized = _UNSAFE_CHARS_RE.sub("", value.replace("/", "-"))
    if not sanitized:
        raise ReviewPathError(f"Path component became empty after sanitization: {value}")
    if sanitized[0] in ".-":
        raise ReviewPathError(
            f"Path component cannot start with dot or dash: {sanitized} (from: {value})"
        )
    return sanitized


def review_filename(target: ConcreteTarget, current_branch: str) -> str:
    """レビュー対象に対応するファイル名。

    PR は pr-<N>.md、範囲は range-<A>-to-<B>.md、ブランチは <branch>.md、
    未コミット変更は現在のブランチ名を使う。
    """
    if isinstance(target, PullRequestTarget):
        return f"pr-{target.pr_number}.md"
    if isinstance(target, RangeTarget):
        start = sanitize_path_component(target.start_ref)
        end = sanitize_path_component(target.end_ref)
        return f"range-{start}-to-{end}.md"
    if isinstance(target, BranchTarget):
        return f"{sanitize_path_component(target.branch)}.md"
    return f"{sanitize_path_component(current_branch)}.md"


def build_review_file_info(
    review_root: Path,
    org: str,
    repo: str,
    current_branch: str,
    target: ConcreteTarget,
) -> ReviewFileInfo:
    """レビュー結果ファイルの配置情報を構築する。

    Raises:
        ReviewPathError: パス要素が不正な場合、
            または解決後のパスが review_root の外を指す場合。
    """
    safe_org = sanitize_path_component(org)
    safe_repo = sanitize_path_component(repo)
    safe_branch = sanitize_path_component(current_branch)
    filename = review_filename(target, current_branch)

    root = review_root.expanduser().resolve()
    file_path = (root / safe_org / safe_repo / filename).resolve()
    if not file_path.is_relative_to(root):
        raise ReviewPathError(f"Path outside allowed directory: {file_path}")

    pr_number = target.pr_number if isinstance(target, PullRequestTarget) else None
    return ReviewFileInfo(
        org=safe_org,
        repo=safe_repo,
        branch=safe_branch,
        pr_number=pr_number,
        file_path=str(file_path),
        file_exists=file_path.is_file(),
    )
