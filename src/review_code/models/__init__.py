"""review-code ドメインモデルパッケージ。"""

from review_code.models._base import ReviewCodeBaseModel
from review_code.models.bundle import (
    DiffStats,
    FileMetadata,
    FileMetadataSummary,
    GitContext,
    PullRequestMetadata,
    ReviewBundle,
    ReviewContext,
    ReviewFileInfo,
)
from review_code.models.config import ReviewCodeSettings
from review_code.models.exit_code import ExitCode
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
    AreaKeyword,
    AreaTarget,
    BranchTarget,
    ConcreteTarget,
    ErrorKind,
    ErrorTarget,
    LocalUncommittedTarget,
    PendingTarget,
    PromptPullTarget,
    PromptUncommittedTarget,
    PullRequestTarget,
    RangeTarget,
    RefKind,
    ResolvedRequest,
    ReviewTarget,
)

__all__ = [
    "AmbiguousData",
    "AmbiguousTarget",
    "AreaKeyword",
    "AreaTarget",
    "BranchTarget",
    "ConcreteTarget",
    "DiffStats",
    "ErrorData",
    "ErrorKind",
    "ErrorTarget",
    "ExitCode",
    "FileMetadata",
    "FileMetadataSummary",
    "FindData",
    "GitContext",
    "LocalUncommittedTarget",
    "PendingTarget",
    "PromptData",
    "PromptPullData",
    "PromptPullTarget",
    "PromptUncommittedTarget",
    "PullRequestMetadata",
    "PullRequestTarget",
    "RangeTarget",
    "RefKind",
    "ResolvedRequest",
    "ReviewBundle",
    "ReviewCodeBaseModel",
    "ReviewCodeSettings",
    "ReviewContext",
    "ReviewFileInfo",
    "ReviewTarget",
    "SessionHeader",
    "SessionPayload",
    "SessionRequest",
    "SessionStatus",
    "SessionSummary",
]
