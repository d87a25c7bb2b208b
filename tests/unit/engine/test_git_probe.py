"""GitProbe のテスト。

一時ディレクトリに作成した実リポジトリに対するクエリ結果,
ベースブランチ探索とターゲット解決の結合。
"""

from __future__ import annotations

from pathlib import Path

import pytest

from review_code.engine import GitProbe, locate_base_branch, resolve_target
from review_code.engine._tools import ToolCommandError
from review_code.models.target import (
    BranchTarget,
    ErrorKind,
    ErrorTarget,
    LocalUncommittedTarget,
    PromptPullTarget,
    PromptUncommittedTarget,
    RangeTarget,
)
from tests.unit.engine.conftest import SKIP_NO_GIT, git_cmd, make_repo

pytestmark = SKIP_NO_GIT


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    return make_repo(tmp_path / "repo")


# =============================================================================
# ref クエリ
# =============================================================================


class TestRefQueries:
    """ref の解決と種別判定。"""

    def test_verify_object(self, repo: Path) -> None:
        """存在する ref は True、存在しない ref とオプション風の文字列は False。"""
        probe = GitProbe(cwd=repo)
        assert probe.verify_object("main")
        assert probe.verify_object("HEAD")
        assert not probe.verify_object("no-such-branch")
        assert not probe.verify_object("--all")

    def test_is_local_branch(self, repo: Path) -> None:
        """refs/heads 配下のみローカルブランチとみなす。"""
        git_cmd(repo, "tag", "v1.0")
        probe = GitProbe(cwd=repo)
        assert probe.is_local_branch("main")
        assert not probe.is_local_branch("v1.0")
        assert not probe.is_local_branch("missing")

    def test_object_type(self, repo: Path) -> None:
        """コミットは commit、注釈付きタグは tag、未知の ref は None。"""
        git_cmd(repo, "tag", "-a", "v2.0", "-m", "release")
        probe = GitProbe(cwd=repo)
        assert probe.object_type("main") == "commit"
        assert probe.object_type("v2.0") == "tag"
        assert probe.object_type("nope") is None

    def test_rev_parse_and_head_commit(self, repo: Path) -> None:
        """HEAD のハッシュを返し、解決できない ref は None。"""
        probe = GitProbe(cwd=repo)
        head = git_cmd(repo, "rev-parse", "HEAD")
        assert probe.head_commit() == head
        assert probe.rev_parse("main") == head
        assert probe.rev_parse("missing") is None

    def test_count_commits(self, repo: Path) -> None:
        """範囲内のコミット数。不正な範囲は None。"""
        git_cmd(repo, "checkout", "-q", "-b", "feature")
        for name in ("b.txt", "c.txt"):
            (repo / name).write_text(name)
            git_cmd(repo, "add", name)
            git_cmd(repo, "commit", "-q", "-m", f"add {name}")
        probe = GitProbe(cwd=repo)
        assert probe.count_commits("main..feature") == 2
        assert probe.count_commits("main..missing") is None


# =============================================================================
# ブランチと作業ツリー
# =============================================================================


class TestBranchState:
    """現在のブランチと upstream。"""

    def test_current_branch(self, repo: Path) -> None:
        """チェックアウト中のブランチ名。"""
        assert GitProbe(cwd=repo).current_branch() == "main"

    def test_detached_head_uses_short_hash(self, repo: Path) -> None:
        """detached HEAD は短縮コミットハッシュ。"""
        head = git_cmd(repo, "rev-parse", "HEAD")
        git_cmd(repo, "checkout", "-q", "--detach", "HEAD")
        branch = GitProbe(cwd=repo).current_branch()
        assert branch != "main"
        assert head.startswith(branch)

    def test_no_remote_configuration(self, repo: Path) -> None:
        """origin も upstream もなければ None。"""
        probe = GitProbe(cwd=repo)
        assert probe.origin_head() is None
        assert probe.upstream() is None
        assert probe.remote_url() is None

    def test_remote_url(self, repo: Path) -> None:
        """remote.origin.url を返す。"""
        git_cmd(repo, "remote", "add", "origin", "git@github.com:acme/widgets.git")
        assert GitProbe(cwd=repo).remote_url() == "git@github.com:acme/widgets.git"

    def test_origin_head(self, repo: Path) -> None:
        """refs/remotes/origin/HEAD の指すブランチ名を origin/ なしで返す。"""
        head = git_cmd(repo, "rev-parse", "HEAD")
        git_cmd(repo, "update-ref", "refs/remotes/origin/trunk", head)
        git_cmd(
            repo,
            "symbolic-ref",
            "refs/remotes/origin/HEAD",
            "refs/remotes/origin/trunk",
        )
        assert GitProbe(cwd=repo).origin_head() == "trunk"


class TestUncommittedChanges:
    """作業ツリーの変更検出。"""

    def test_clean_tree(self, repo: Path) -> None:
        assert not GitProbe(cwd=repo).has_uncommitted_changes()

    def test_modified_file(self, repo: Path) -> None:
        (repo / "a.txt").write_text("changed\n")
        assert GitProbe(cwd=repo).has_uncommitted_changes()

    def test_untracked_file(self, repo: Path) -> None:
        """未追跡ファイルも変更として扱う。"""
        (repo / "new.txt").write_text("new\n")
        assert GitProbe(cwd=repo).has_uncommitted_changes()

    def test_outside_repository_raises(self, tmp_path: Path) -> None:
        """リポジトリ外では ToolCommandError を送出する。"""
        outside = tmp_path / "plain"
        outside.mkdir()
        with pytest.raises(ToolCommandError) as exc:
            GitProbe(cwd=outside).has_uncommitted_changes()
        assert exc.value.returncode is not None


# =============================================================================
# ベースブランチ探索
# =============================================================================


class TestLocateBaseBranch:
    """実リポジトリでのベースブランチ探索。"""

    def test_main(self, repo: Path) -> None:
        assert locate_base_branch(GitProbe(cwd=repo)) == "main"

    def test_master_only(self, tmp_path: Path) -> None:
        """main がなく master のみ存在する場合は master。"""
        repo = make_repo(tmp_path / "legacy", branch="master")
        assert locate_base_branch(GitProbe(cwd=repo)) == "master"

    def test_origin_head_without_local_branch(self, repo: Path) -> None:
        """origin/HEAD の指すブランチがローカルになければ origin/<name>。"""
        head = git_cmd(repo, "rev-parse", "HEAD")
        git_cmd(repo, "update-ref", "refs/remotes/origin/trunk", head)
        git_cmd(
            repo,
            "symbolic-ref",
            "refs/remotes/origin/HEAD",
            "refs/remotes/origin/trunk",
        )
        assert locate_base_branch(GitProbe(cwd=repo)) == "origin/trunk"


# =============================================================================
# ターゲット解決
# =============================================================================


def _no_pull_requests(branch: str) -> list[str]:
    return []


class TestResolveWithRealRepository:
    """実リポジトリに対するターゲット解決。"""

    def test_clean_base_branch_is_error(self, repo: Path) -> None:
        """ベースブランチ上で変更なし → no_changes_to_review。"""
        target = resolve_target("", git=GitProbe(cwd=repo)).target
        assert isinstance(target, ErrorTarget)
        assert target.kind is ErrorKind.NO_CHANGES_TO_REVIEW

    def test_dirty_base_branch_is_local(self, repo: Path) -> None:
        """ベースブランチ上の未コミット変更 → local。"""
        (repo / "a.txt").write_text("changed\n")
        target = resolve_target("", git=GitProbe(cwd=repo)).target
        assert isinstance(target, LocalUncommittedTarget)

    def test_dirty_feature_branch_prompts(self, repo: Path) -> None:
        """フィーチャーブランチ上の未コミット変更 → prompt。"""
        git_cmd(repo, "checkout", "-q", "-b", "feature")
        (repo / "a.txt").write_text("changed\n")
        target = resolve_target(
            "", git=GitProbe(cwd=repo), pr_finder=_no_pull_requests
        ).target
        assert isinstance(target, PromptUncommittedTarget)
        assert target.current_branch == "feature"
        assert target.base_branch == "main"

    def test_clean_feature_branch_prompts_pull(self, repo: Path) -> None:
        """フィーチャーブランチで変更なし → prompt_pull（upstream なし）。"""
        git_cmd(repo, "checkout", "-q", "-b", "feature")
        target = resolve_target(
            "", git=GitProbe(cwd=repo), pr_finder=_no_pull_requests
        ).target
        assert isinstance(target, PromptPullTarget)
        assert target.branch == "feature"
        assert target.associated_pr is None
        assert not target.remote_ahead

    def test_branch_argument(self, repo: Path) -> None:
        """ローカルブランチ名 → branch（ベースブランチとの比較）。"""
        git_cmd(repo, "branch", "feature")
        target = resolve_target("feature", git=GitProbe(cwd=repo)).target
        assert isinstance(target, BranchTarget)
        assert target.branch == "feature"
        assert target.base_branch == "main"

    def test_range_argument(self, repo: Path) -> None:
        """両端が解決できる範囲 → range。"""
        git_cmd(repo, "branch", "feature")
        target = resolve_target("main..feature", git=GitProbe(cwd=repo)).target
        assert isinstance(target, RangeTarget)
        assert target.range == "main..feature"
