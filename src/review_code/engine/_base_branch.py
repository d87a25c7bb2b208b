"""ベースブランチの探索。

origin/HEAD が指すブランチを優先し、見つからなければ慣習的な名前を順に試す。
"""

from __future__ import annotations

from typing import Final, Protocol

DEFAULT_BASE_BRANCH: Final[str] = "main"
"""どの候補も存在しない場合に返すブランチ名。"""

FALLBACK_CANDIDATES: Final[tuple[str, ...]] = (
    "main",
    "origin/main",
    "master",
    "origin/master",
)
"""origin/HEAD が解決できない場合に順に確認する候補。"""


class BaseBranchProbe(Protocol):
    """locate_base_branch が必要とする git クエリ。"""

    def origin_head(self) -> str | None: ...

    def verify_object(self, ref: str) -> bool: ...


def locate_base_branch(probe: BaseBranchProbe) -> str:
    """リポジトリのベースブランチ名を返す。

    1. origin/HEAD が指すブランチ。ローカルに同名ブランチがあればそれを、
       なければ origin/<name> を返す。
    2. main, origin/main, master, origin/master のうち最初に存在するもの。
    3. いずれも存在しなければ "main"。

    ref が存在しないことによる例外は送出しない。
    """
    default_name = probe.origin_head()
    if default_name:
        if probe.verify_object(default_name):
            return default_name
        remote_name = f"origin/{default_name}"
        if probe.verify_object(remote_name):
            return remote_name

    for candidate in FALLBACK_CANDIDATES:
        if probe.verify_object(candidate):
            return candidate

    return DEFAULT_BASE_BRANCH
