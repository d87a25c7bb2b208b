"""レビューバンドルのモデル。

セッション初期化時に1回だけ計算され、以降はファイルから読み出される
diff・メタデータ・コンテキストの集合。
"""

from __future__ import annotations

from pydantic import Field

from review_code.models._base import ReviewCodeBaseModel
from review_code.models.target import ReviewTarget


class GitContext(ReviewCodeBaseModel):
    """リポジトリのメタデータ。リモート未設定時の org / repo は "unknown"。"""

    org: str = "unknown"
    repo: str = "unknown"
    branch: str = ""
    commit: str = ""
    working_dir: str = ""
    has_changes: bool = False


class FileMetadata(ReviewCodeBaseModel):
    """diff に含まれる1ファイルのメタデータ。"""

    path: str = Field(min_length=1)
    type: str = "source"
    language: str = "unknown"
    is_test: bool = False
    likely_test_path: str | None = None


class FileMetadataSummary(ReviewCodeBaseModel):
    """diff 全体のファイルメタデータ。"""

    modified_files: tuple[FileMetadata, ...] = ()
    file_count: int = Field(default=0, ge=0)
    has_tests: bool = False
    has_migrations: bool = False
    has_config: bool = False


class ReviewContext(ReviewCodeBaseModel):
    """言語・org・repo 別に読み込んだレビューコンテキスト。"""

    content: str = ""
    loaded_files: tuple[str, ...] = ()


class ReviewFileInfo(ReviewCodeBaseModel):
    """レビュー結果ファイルの配置情報。存在チェックのみでファイルは作成しない。"""

    org: str
    repo: str
    branch: str
    pr_number: str | None = None
    file_path: str
    file_exists: bool = False


class DiffStats(ReviewCodeBaseModel):
    """diff の統計。commits は範囲を持つ対象でのみ算出する。"""

    files_changed: int = Field(default=0, ge=0)
    lines_added: int = Field(default=0, ge=0)
    lines_removed: int = Field(default=0, ge=0)
    commits: int | None = None


class PullRequestMetadata(ReviewCodeBaseModel):
    """gh pr view から取得した PR メタデータ。"""

    number: int = Field(gt=0)
    title: str = ""
    body: str = ""
    url: str = ""
    author: str = ""
    head_ref: str = ""
    base_ref: str = ""
    state: str = ""


class ReviewBundle(ReviewCodeBaseModel):
    """下流のレビューエージェントに渡す計算済みバンドル。"""

    target: ReviewTarget
    file_pattern: str = ""
    git: GitContext
    diff: str
    diff_type: str
    file_metadata: FileMetadataSummary
    languages: tuple[str, ...] = ()
    review_context: ReviewContext = Field(default_factory=ReviewContext)
    review_file: ReviewFileInfo
    stats: DiffStats
    pr: PullRequestMetadata | None = None
