"""セッションレコードのモデル。

session.json（ヘッダー）と bundle.json（ペイロード）の2ファイルで構成する。
ヘッダーは最後に書き込まれ、complete=True が書き込み完了マーカーとなる。
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Final, Literal

from pydantic import Field

from review_code.models._base import ReviewCodeBaseModel
from review_code.models.bundle import ReviewBundle
from review_code.models.target import (
    ConcreteTarget,
    ErrorKind,
    PR_NUMBER_PATTERN,
    RefKind,
    ReviewTarget,
)

SESSION_SCHEMA_VERSION: Final[int] = 1

SESSION_ID_PATTERN: Final[str] = r"^[A-Za-z0-9_-]+$"
"""セッション ID として受け付けるパターン。パストラバーサル防止。"""


class SessionStatus(StrEnum):
    """セッションの状態。アクセサはこの値に対応するものだけが有効。"""

    ERROR = "error"
    AMBIGUOUS = "ambiguous"
    PROMPT = "prompt"
    PROMPT_PULL = "prompt_pull"
    FIND = "find"
    READY = "ready"


class SessionRequest(ReviewCodeBaseModel):
    """セッション初期化時の入力。"""

    raw_arg: str = ""
    file_pattern: str = ""
    find_mode: bool = False


class SessionHeader(ReviewCodeBaseModel):
    """session.json の内容。"""

    schema_version: Literal[1] = SESSION_SCHEMA_VERSION
    session_id: str = Field(pattern=SESSION_ID_PATTERN)
    created_at: datetime
    status: SessionStatus
    complete: bool = True


class SessionPayload(ReviewCodeBaseModel):
    """bundle.json の内容。bundle は ready / find のときのみ存在する。"""

    schema_version: Literal[1] = SESSION_SCHEMA_VERSION
    request: SessionRequest
    target: ReviewTarget | None = None
    message: str | None = None
    error_kind: ErrorKind | None = None
    bundle: ReviewBundle | None = None


class SessionSummary(ReviewCodeBaseModel):
    """セッション一覧表示用の要約。"""

    session_id: str
    status: SessionStatus
    created_at: datetime
    path: str


# --- 状態別アクセサの戻り値 ---


class ErrorData(ReviewCodeBaseModel):
    """status=error のデータ。"""

    message: str
    kind: ErrorKind | None = None


class AmbiguousData(ReviewCodeBaseModel):
    """status=ambiguous のデータ。"""

    arg: str
    ref_kind: RefKind
    is_branch: bool
    is_current: bool
    base_branch: str
    reason: str


class PromptData(ReviewCodeBaseModel):
    """status=prompt のデータ。"""

    current_branch: str
    base_branch: str
    has_uncommitted: bool


class PromptPullData(ReviewCodeBaseModel):
    """status=prompt_pull のデータ。"""

    branch: str
    base_branch: str
    associated_pr: str | None = Field(default=None, pattern=PR_NUMBER_PATTERN)
    remote_ahead: bool
    warnings: tuple[str, ...] = ()


class FindData(ReviewCodeBaseModel):
    """status=find のデータ。"""

    target: ConcreteTarget = Field(discriminator="mode")
    file_pattern: str = ""
    session_file: str
