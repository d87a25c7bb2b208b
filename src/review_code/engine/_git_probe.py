"""リポジトリ状態の読み取り専用プローブ。

ターゲット解決とベースブランチ探索が必要とする git クエリを集約する。
テストでは同じインターフェースを持つフェイクに差し替える。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Final

from review_code.engine._tools import ToolCommandError, git_succeeds, run_git

logger = logging.getLogger(__name__)

UNKNOWN_BRANCH: Final[str] = "unknown"
"""現在のブランチもコミットも特定できない場合の表示名。"""


def _is_safe_ref(ref: str) -> bool:
    """オプションと誤認されない ref 文字列かを判定する。"""
    return bool(ref) and not ref.startswith("-")


class GitProbe:
    """git の読み取り専用クエリ。

    Args:
        cwd: git を実行するディレクトリ。None の場合はカレントディレクトリ。
    """

    def __init__(self, cwd: Path | None = None) -> None:
        self._cwd = cwd

    @property
    def cwd(self) -> Path | None:
        return self._cwd

    def run(self, args: list[str]) -> str:
        """任意の読み取り専用 git コマンドを実行する。

        Raises:
            ToolNotFoundError: git が PATH 上に見つからない場合。
            ToolCommandError: git コマンドが失敗した場合。
        """
        return run_git(args, cwd=self._cwd)

    def _output_or_none(self, args: list[str]) -> str | None:
        """失敗時に None を返す。出力は前後空白を除去する。"""
        try:
            output = self.run(args).strip()
        except ToolCommandError as e:
            if e.returncode is None:
                raise
            return None
        return output or None

    def verify_object(self, ref: str) -> bool:
        """ref が git オブジェクトとして解決できるかを返す。"""
        if not _is_safe_ref(ref):
            return False
        return git_succeeds(["rev-parse", "--verify", "--quiet", ref], cwd=self._cwd)

    def is_local_branch(self, name: str) -> bool:
        """refs/heads/<name> が存在するかを返す。"""
        if not _is_safe_ref(name):
            return False
        return git_succeeds(
            ["show-ref", "--verify", "--quiet", f"refs/heads/{name}"], cwd=self._cwd
        )

    def object_type(self, ref: str) -> str | None:
        """git cat-file -t の結果（commit / tag / tree / blob）。失敗時は None。"""
        if not _is_safe_ref(ref):
            return None
        return self._output_or_none(["cat-file", "-t", ref])

    def current_branch(self) -> str:
        """現在のブランチ名を返す。

        detached HEAD の場合は短縮コミットハッシュ、それも取得できなければ
        "unknown" を返す。
        """
        branch = self._output_or_none(["branch", "--show-current"])
        if branch:
            return branch
        short = self._output_or_none(["rev-parse", "--short", "HEAD"])
        return short or UNKNOWN_BRANCH

    def has_uncommitted_changes(self) -> bool:
        """ステージ済み・未ステージ・未追跡の変更があるかを返す。

        Raises:
            ToolCommandError: リポジトリ外など git status が失敗した場合。
        """
        return bool(self.run(["status", "--porcelain"]).strip())

    def origin_head(self) -> str | None:
        """refs/remotes/origin/HEAD が指すブランチ名（origin/ 接頭辞なし）。"""
        ref = self._output_or_none(["symbolic-ref", "refs/remotes/origin/HEAD"])
        if ref is None:
            return None
        return ref.removeprefix("refs/remotes/origin/") or None

    def upstream(self) -> str | None:
        """現在のブランチの upstream 名。未設定時は None。"""
        return self._output_or_none(
            ["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}"]
        )

    def rev_parse(self, ref: str) -> str | None:
        """ref のコミットハッシュ。解決できない場合は None。"""
        if not _is_safe_ref(ref):
            return None
        return self._output_or_none(["rev-parse", ref])

    def count_commits(self, revision_range: str) -> int | None:
        """git rev-list --count の結果。失敗時は None。"""
        output = self._output_or_none(["rev-list", "--count", revision_range])
        if output is None:
            return None
        try:
            return int(output)
        except ValueError:
            logger.warning("Unexpected rev-list output: %s", output)
            return None

    def remote_url(self) -> str | None:
        """remote.origin.url の値。未設定時は None。"""
        return self._output_or_none(["config", "--get", "remote.origin.url"])

    def head_commit(self) -> str:
        """HEAD のコミットハッシュ。コミットが存在しない場合は空文字列。"""
        return self._output_or_none(["rev-parse", "HEAD"]) or ""
