"""レビュー対象の判別共用体。

位置引数の解決結果を mode フィールドで判別する。1回の解決につき
必ずいずれか1つのバリアントが返される。ambiguous / prompt / prompt_pull は
ユーザーの明示的な選択を経た2回目の呼び出しでのみ具体的な対象に到達する。
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Literal, Union

from pydantic import Field, TypeAdapter

from review_code.models._base import ReviewCodeBaseModel

PR_NUMBER_PATTERN: str = r"^[0-9]+$"
"""PR 番号として受け付ける文字列パターン。"""


class AreaKeyword(StrEnum):
    """領域限定レビューのキーワード。位置引数と完全一致で判定する。"""

    SECURITY = "security"
    PERFORMANCE = "performance"
    MAINTAINABILITY = "maintainability"
    TESTING = "testing"
    COMPATIBILITY = "compatibility"
    ARCHITECTURE = "architecture"
    FRONTEND = "frontend"


class RefKind(StrEnum):
    """git ref の種別。"""

    BRANCH = "branch"
    COMMIT = "commit"
    TAG = "tag"
    UNKNOWN = "unknown"


class ErrorKind(StrEnum):
    """解決エラーの分類。"""

    INVALID_ARGUMENT = "invalid_argument"
    INVALID_REF = "invalid_ref"
    NO_CHANGES_TO_REVIEW = "no_changes_to_review"
    CONFIG_SECURITY_VIOLATION = "config_security_violation"
    MALFORMED_URL = "malformed_url"
    EXTERNAL_TOOL_MISSING = "external_tool_missing"
    GIT_COMMAND_FAILED = "git_command_failed"
    GH_COMMAND_FAILED = "gh_command_failed"
    INVALID_CONFIG = "invalid_config"


class AreaTarget(ReviewCodeBaseModel):
    """領域キーワード指定。未コミット変更を指定領域に絞ってレビューする。"""

    mode: Literal["area"] = "area"
    area: AreaKeyword


class PullRequestTarget(ReviewCodeBaseModel):
    """PR 番号または PR URL 指定。

    pr_number は位置引数（または URL から抽出した部分）をそのまま保持する。
    """

    mode: Literal["pr"] = "pr"
    pr_number: str = Field(pattern=PR_NUMBER_PATTERN)
    pr_url: str | None = None


class RangeTarget(ReviewCodeBaseModel):
    """コミット範囲指定（例: abc123..HEAD）。両端とも存在確認済み。"""

    mode: Literal["range"] = "range"
    range: str = Field(min_length=1)
    start_ref: str = Field(min_length=1)
    end_ref: str = Field(min_length=1)


class BranchTarget(ReviewCodeBaseModel):
    """現在のブランチ以外のローカルブランチ指定。ベースブランチとの比較。"""

    mode: Literal["branch"] = "branch"
    branch: str = Field(min_length=1)
    base_branch: str = Field(min_length=1)
    ref_kind: RefKind = RefKind.BRANCH


class AmbiguousTarget(ReviewCodeBaseModel):
    """曖昧な git ref 指定。自動解決せず呼び出し元に判断を委ねる。"""

    mode: Literal["ambiguous"] = "ambiguous"
    arg: str = Field(min_length=1)
    ref_kind: RefKind
    is_branch: bool
    is_current: bool
    base_branch: str = Field(min_length=1)
    reason: str


class PromptUncommittedTarget(ReviewCodeBaseModel):
    """引数なし・ベース以外のブランチ・未コミット変更あり。"""

    mode: Literal["prompt"] = "prompt"
    current_branch: str = Field(min_length=1)
    base_branch: str = Field(min_length=1)
    has_uncommitted: bool = True


class PromptPullTarget(ReviewCodeBaseModel):
    """引数なし・ベース以外のブランチ・未コミット変更なし。

    remote_ahead が False かつ PR が見つからなくても Branch に再分類しない。
    pull の要否は呼び出し元の人間が判断する。
    """

    mode: Literal["prompt_pull"] = "prompt_pull"
    branch: str = Field(min_length=1)
    base_branch: str = Field(min_length=1)
    associated_pr: str | None = Field(default=None, pattern=PR_NUMBER_PATTERN)
    remote_ahead: bool = False
    warnings: tuple[str, ...] = ()


class LocalUncommittedTarget(ReviewCodeBaseModel):
    """引数なし・ベースブランチ上・未コミット変更あり。"""

    mode: Literal["local"] = "local"
    scope: Literal["uncommitted"] = "uncommitted"


class ErrorTarget(ReviewCodeBaseModel):
    """解決失敗。error はユーザー向けメッセージ。"""

    mode: Literal["error"] = "error"
    error: str = Field(min_length=1)
    kind: ErrorKind


ReviewTarget = Annotated[
    Union[
        AreaTarget,
        PullRequestTarget,
        RangeTarget,
        BranchTarget,
        AmbiguousTarget,
        PromptUncommittedTarget,
        PromptPullTarget,
        LocalUncommittedTarget,
        ErrorTarget,
    ],
    Field(discriminator="mode"),
]
"""レビュー対象の判別共用体。mode フィールドの値で型を自動選択する。"""

ConcreteTarget = (
    AreaTarget | PullRequestTarget | RangeTarget | BranchTarget | LocalUncommittedTarget
)
"""バンドル計算が可能な確定済みレビュー対象。"""

PendingTarget = AmbiguousTarget | PromptUncommittedTarget | PromptPullTarget
"""ユーザーの明示的な選択を必要とする保留状態。"""

REVIEW_TARGET_ADAPTER: TypeAdapter[ReviewTarget] = TypeAdapter(ReviewTarget)
"""辞書や JSON から ReviewTarget を復元するためのアダプタ。"""


class ResolvedRequest(ReviewCodeBaseModel):
    """1回の呼び出しの解決結果。

    file_pattern は ReviewTarget と直交し、下流の diff 生成にそのまま渡される。
    空文字列はフィルタなしを意味する。
    """

    target: ReviewTarget
    file_pattern: str = ""
    find_mode: bool = False

    @property
    def is_error(self) -> bool:
        """解決が失敗したかどうか。"""
        return isinstance(self.target, ErrorTarget)

    def to_output(self) -> dict[str, object]:
        """CLI 出力用のフラットな辞書に変換する。

        対象のフィールドに file_pattern（非空時のみ）と
        find_mode（True 時のみ）を加える。None のフィールドは除外する。
        """
        output = self.target.model_dump(mode="json", exclude_none=True)
        if self.file_pattern:
            output["file_pattern"] = self.file_pattern
        if self.find_mode:
            output["find_mode"] = True
        return output
