"""engine テスト共通のフェイクと実リポジトリのヘルパー。"""

from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from review_code.engine._tools import ToolCommandError


@dataclass
class FakeGitProbe:
    """GitProbe と同じインターフェースを持つインメモリのフェイク。

    objects: 解決可能な ref。branches: ローカルブランチ。
    outputs: run() に渡された引数タプルと出力の対応。未登録の引数は失敗扱い。
    """

    objects: set[str] = field(default_factory=set)
    branches: set[str] = field(default_factory=set)
    types: dict[str, str] = field(default_factory=dict)
    current: str = "main"
    uncommitted: bool = False
    default_branch: str | None = None
    upstream_name: str | None = None
    revs: dict[str, str] = field(default_factory=dict)
    counts: dict[str, int] = field(default_factory=dict)
    remote: str | None = None
    head: str = "0123456789abcdef"
    outputs: dict[tuple[str, ...], str] = field(default_factory=dict)
    cwd: Path | None = None
    calls: list[list[str]] = field(default_factory=list)

    def run(self, args: list[str]) -> str:
        self.calls.append(list(args))
        key = tuple(args)
        if key not in self.outputs:
            raise ToolCommandError(
                f"git command failed: {' '.join(args)}",
                command=("git", *args),
                returncode=128,
                stderr="fatal: not a git repository",
            )
        return self.outputs[key]

    def verify_object(self, ref: str) -> bool:
        return ref in self.objects

    def is_local_branch(self, name: str) -> bool:
        return name in self.branches

    def object_type(self, ref: str) -> str | None:
        return self.types.get(ref)

    def current_branch(self) -> str:
        return self.current

    def has_uncommitted_changes(self) -> bool:
        return self.uncommitted

    def origin_head(self) -> str | None:
        return self.default_branch

    def upstream(self) -> str | None:
        return self.upstream_name

    def rev_parse(self, ref: str) -> str | None:
        return self.revs.get(ref)

    def count_commits(self, revision_range: str) -> int | None:
        return self.counts.get(revision_range)

    def remote_url(self) -> str | None:
        return self.remote

    def head_commit(self) -> str:
        return self.head


# =============================================================================
# 実リポジトリ
# =============================================================================

SKIP_NO_GIT = pytest.mark.skipif(
    shutil.which("git") is None, reason="git executable required"
)

_GIT_IDENTITY = (
    "-c",
    "user.email=dev@example.com",
    "-c",
    "user.name=Dev",
    "-c",
    "commit.gpgsign=false",
)


def git_cmd(repo: Path, *args: str) -> str:
    """テスト用リポジトリで git を実行し、標準出力を返す。"""
    result = subprocess.run(
        ["git", *_GIT_IDENTITY, *args],
        cwd=repo,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


def make_repo(path: Path, branch: str = "main") -> Path:
    """1コミットを持つリポジトリを作成する。"""
    path.mkdir(parents=True, exist_ok=True)
    git_cmd(path, "init", "-q")
    git_cmd(path, "symbolic-ref", "HEAD", f"refs/heads/{branch}")
    (path / "a.txt").write_text("hello\n")
    git_cmd(path, "add", "a.txt")
    git_cmd(path, "commit", "-q", "-m", "initial")
    return path
