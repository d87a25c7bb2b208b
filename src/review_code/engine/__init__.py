"""レビュー対象解決エンジン。

位置引数からレビュー対象を判定し、確定した対象のバンドルを計算する。

1. ベースブランチ探索（locate_base_branch）
2. レビュー対象判定（resolve_target）
3. バンドル計算（GitBundleBuilder）
"""

from review_code.engine._base_branch import locate_base_branch
from review_code.engine._bundle import BundleBuilder, BundleError, GitBundleBuilder
from review_code.engine._git_probe import GitProbe
from review_code.engine._repository import get_org_repo, parse_remote_url
from review_code.engine._target_resolver import (
    DETECTORS,
    PullRequestFinder,
    find_open_pull_requests,
    parse_invocation,
    resolve_target,
)
from review_code.engine._tools import ToolCommandError, ToolNotFoundError

__all__ = [
    "BundleBuilder",
    "BundleError",
    "DETECTORS",
    "GitBundleBuilder",
    "GitProbe",
    "PullRequestFinder",
    "ToolCommandError",
    "ToolNotFoundError",
    "find_open_pull_requests",
    "get_org_repo",
    "locate_base_branch",
    "parse_invocation",
    "parse_remote_url",
    "resolve_target",
]
