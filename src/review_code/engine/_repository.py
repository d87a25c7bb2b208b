"""リポジトリ情報の取得。

remote.origin.url から org / repo を求め、作業ツリーのメタデータを収集する。
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Final

from review_code.engine._git_probe import GitProbe
from review_code.engine._tools import ToolCommandError
from review_code.models.bundle import GitContext

logger = logging.getLogger(__name__)

UNKNOWN: Final[str] = "unknown"

_SAFE_URL_RE: Final[re.Pattern[str]] = re.compile(r"^[a-zA-Z0-9@:/._-]+$")
"""remote URL として受け付ける文字集合。"""

_GITHUB_REMOTE_RE: Final[re.Pattern[str]] = re.compile(
    r"^(?:https://|ssh://git@|git@)github\.com[:/]"
    r"(?P<org>[a-zA-Z0-9_-]+)/(?P<repo>[a-zA-Z0-9._-]+?)(?:\.git)?/?$"
)

_PR_URL_RE: Final[re.Pattern[str]] = re.compile(
    r"^https://(?P<host>[^/]+)/(?P<org>[^/]+)/(?P<repo>[^/]+)/pull/"
)

GITHUB_HOST: Final[str] = "github.com"
"""gh の既定ホスト。これ以外のホストは --repo に HOST/ を付けて指定する。"""


def parse_remote_url(url: str | None) -> tuple[str, str]:
    """GitHub の remote URL から (org, repo) を取り出す。

    SSH 形式（git@github.com:Org/repo.git）と HTTPS 形式に対応する。
    org は小文字に正規化する。解析できない場合は ("unknown", "unknown")。
    """
    if not url:
        return UNKNOWN, UNKNOWN
    if not _SAFE_URL_RE.match(url):
        logger.warning("Git remote URL contains invalid characters: %s", url)
        return UNKNOWN, UNKNOWN
    match = _GITHUB_REMOTE_RE.match(url)
    if match is None:
        logger.warning("Could not parse git remote URL: %s", url)
        return UNKNOWN, UNKNOWN
    return match.group("org").lower(), match.group("repo")


def parse_pull_request_url(url: str) -> tuple[str, str] | None:
    """PR URL から (org, repo) を取り出す。org は小文字に正規化する。"""
    match = _PR_URL_RE.match(url)
    if match is None:
        return None
    return match.group("org").lower(), match.group("repo")


def pull_request_repo_spec(url: str) -> str | None:
    """PR URL から gh --repo に渡す [HOST/]OWNER/REPO を作る。

    github.com のみ HOST/ を省略する。
    """
    match = _PR_URL_RE.match(url)
    if match is None:
        return None
    host = match.group("host").lower()
    repo_spec = f"{match.group('org').lower()}/{match.group('repo')}"
    if host == GITHUB_HOST:
        return repo_spec
    return f"{host}/{repo_spec}"


def get_org_repo(git: GitProbe) -> tuple[str, str]:
    """現在のリポジトリの (org, repo)。取得できない場合は ("unknown", "unknown")。"""
    try:
        return parse_remote_url(git.remote_url())
    except ToolCommandError as e:
        logger.debug("Could not read remote URL: %s", e)
        return UNKNOWN, UNKNOWN


def collect_git_context(git: GitProbe) -> GitContext:
    """リポジトリのメタデータを収集する。

    Raises:
        ToolNotFoundError: git が見つからない場合。
        ToolCommandError: git status が失敗した場合（リポジトリ外など）。
    """
    org, repo = get_org_repo(git)
    working_dir = git.cwd if git.cwd is not None else Path.cwd()
    return GitContext(
        org=org,
        repo=repo,
        branch=git.current_branch(),
        commit=git.head_commit(),
        working_dir=str(working_dir.resolve()),
        has_changes=git.has_uncommitted_changes(),
    )
