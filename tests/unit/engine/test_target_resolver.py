"""TargetResolver のテスト。

判定器の優先順位, 各バリアントの判定条件, 引数なし時の状態判定,
外部コマンド失敗時のエラー変換, 位置引数の分解。
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from review_code.engine._target_resolver import (
    PullRequestFinder,
    find_open_pull_requests,
    parse_invocation,
    resolve_target,
)
from review_code.engine._tools import ToolCommandError, ToolNotFoundError
from review_code.models.target import (
    AmbiguousTarget,
    AreaKeyword,
    AreaTarget,
    BranchTarget,
    ErrorKind,
    ErrorTarget,
    LocalUncommittedTarget,
    PromptPullTarget,
    PromptUncommittedTarget,
    PullRequestTarget,
    RangeTarget,
    RefKind,
    ReviewTarget,
)
from tests.unit.engine.conftest import FakeGitProbe

# =============================================================================
# ヘルパー
# =============================================================================


def _no_prs(branch: str) -> list[str]:
    return []


def _resolve(
    raw_arg: str, git: FakeGitProbe, pr_finder: PullRequestFinder = _no_prs
) -> ReviewTarget:
    return resolve_target(raw_arg, git=git, pr_finder=pr_finder).target  # type: ignore[arg-type]


def _repo(**kwargs: object) -> FakeGitProbe:
    """main ブランチとコミット・タグを持つリポジトリ。"""
    defaults: dict[str, object] = {
        "objects": {"main", "feature", "abc1234", "v1.0", "HEAD"},
        "branches": {"main", "feature"},
        "types": {"abc1234": "commit", "v1.0": "tag", "HEAD": "commit"},
        "current": "main",
    }
    defaults.update(kwargs)
    return FakeGitProbe(**defaults)  # type: ignore[arg-type]


class _MissingGit(FakeGitProbe):
    """git が PATH 上にないリポジトリ。"""

    def verify_object(self, ref: str) -> bool:
        raise ToolNotFoundError("git command not found.")

    def current_branch(self) -> str:
        raise ToolNotFoundError("git command not found.")


class _OutsideRepository(FakeGitProbe):
    """git status が失敗するディレクトリ。"""

    def has_uncommitted_changes(self) -> bool:
        raise ToolCommandError(
            "git command failed", returncode=128, stderr="fatal: not a git repository"
        )


# =============================================================================
# 領域キーワード
# =============================================================================


class TestDetectArea:
    """領域キーワードとの完全一致。"""

    @pytest.mark.parametrize("keyword", [k.value for k in AreaKeyword])
    def test_keywords(self, keyword: str) -> None:
        """7つのキーワードはすべて AreaTarget。"""
        assert _resolve(keyword, FakeGitProbe()) == AreaTarget(
            area=AreaKeyword(keyword)
        )

    def test_area_wins_over_branch(self) -> None:
        """同名のブランチが存在しても領域キーワードを優先する。"""
        git = _repo(objects={"security"}, branches={"security"})
        assert isinstance(_resolve("security", git), AreaTarget)

    def test_case_sensitive(self) -> None:
        """大文字を含む場合はキーワードとして扱わない。"""
        result = _resolve("Security", FakeGitProbe())
        assert isinstance(result, ErrorTarget)
        assert result.kind is ErrorKind.INVALID_ARGUMENT


# =============================================================================
# PR
# =============================================================================


class TestDetectPullRequest:
    """PR 番号と PR URL。"""

    def test_digits(self) -> None:
        """数字のみ → PR。"""
        assert _resolve("123", FakeGitProbe()) == PullRequestTarget(pr_number="123")

    def test_digits_win_over_ref(self) -> None:
        """数字のみの ref が存在しても PR として扱う。"""
        git = _repo(objects={"123"}, branches={"123"})
        assert isinstance(_resolve("123", git), PullRequestTarget)

    def test_url(self) -> None:
        """PR URL → 番号と URL を保持。"""
        url = "https://github.com/acme/widgets/pull/42"
        assert _resolve(url, FakeGitProbe()) == PullRequestTarget(
            pr_number="42", pr_url=url
        )

    def test_url_with_suffix(self) -> None:
        """/files などの後続パスやクエリを許容する。"""
        url = "https://github.com/acme/widgets/pull/42/files?diff=split"
        result = _resolve(url, FakeGitProbe())
        assert isinstance(result, PullRequestTarget)
        assert result.pr_number == "42"

    def test_malformed_url(self) -> None:
        """番号部分が数字でない URL → malformed_url エラー。"""
        url = "https://github.com/acme/widgets/pull/abc"
        assert _resolve(url, FakeGitProbe()) == ErrorTarget(
            error=f"Malformed pull request URL: {url}",
            kind=ErrorKind.MALFORMED_URL,
        )

    def test_url_does_not_touch_git(self) -> None:
        """PR URL の判定は git を参照しない。"""
        git = _MissingGit()
        assert isinstance(
            _resolve("https://github.com/a/b/pull/1", git), PullRequestTarget
        )


# =============================================================================
# 範囲
# =============================================================================


class TestDetectRange:
    """コミット範囲。"""

    def test_valid_range(self) -> None:
        """両端が存在 → RangeTarget。"""
        assert _resolve("abc1234..HEAD", _repo()) == RangeTarget(
            range="abc1234..HEAD", start_ref="abc1234", end_ref="HEAD"
        )

    def test_invalid_start(self) -> None:
        """開始側が存在しない → invalid_ref。"""
        result = _resolve("nope..HEAD", _repo())
        assert result == ErrorTarget(
            error="Invalid start ref: nope", kind=ErrorKind.INVALID_REF
        )

    def test_invalid_end(self) -> None:
        """終了側が存在しない → invalid_ref。"""
        result = _resolve("main..nope", _repo())
        assert result == ErrorTarget(
            error="Invalid end ref: nope", kind=ErrorKind.INVALID_REF
        )

    def test_empty_side_is_invalid(self) -> None:
        """片側が空の範囲はエラーとして扱い、ref 判定に進まない。"""
        result = _resolve("main..", _repo())
        assert isinstance(result, ErrorTarget)
        assert result.kind is ErrorKind.INVALID_REF

    def test_split_at_first_separator(self) -> None:
        """最初の .. で分割する。"""
        result = _resolve("main...feature", _repo())
        assert result == ErrorTarget(
            error="Invalid end ref: .feature", kind=ErrorKind.INVALID_REF
        )


# =============================================================================
# git ref
# =============================================================================


class TestDetectGitRef:
    """ブランチ・コミット・タグ。"""

    def test_other_local_branch(self) -> None:
        """現在以外のローカルブランチ → BranchTarget。"""
        assert _resolve("feature", _repo()) == BranchTarget(
            branch="feature", base_branch="main"
        )

    def test_current_branch_is_ambiguous(self) -> None:
        """現在のブランチ → ambiguous（is_current=True）。"""
        result = _resolve("main", _repo())
        assert isinstance(result, AmbiguousTarget)
        assert result.is_current
        assert result.is_branch
        assert result.ref_kind is RefKind.BRANCH
        assert result.reason.startswith("Current branch")

    def test_commit_is_ambiguous(self) -> None:
        """コミット → ambiguous（ref_kind=commit）。"""
        result = _resolve("abc1234", _repo())
        assert result == AmbiguousTarget(
            arg="abc1234",
            ref_kind=RefKind.COMMIT,
            is_branch=False,
            is_current=False,
            base_branch="main",
            reason="Commit hash - unclear if reviewing single commit vs range to HEAD",
        )

    def test_tag_is_ambiguous(self) -> None:
        """タグ → ambiguous（ref_kind=tag）。"""
        result = _resolve("v1.0", _repo())
        assert isinstance(result, AmbiguousTarget)
        assert result.ref_kind is RefKind.TAG
        assert result.reason.startswith("Tag")

    def test_other_object_is_ambiguous(self) -> None:
        """ツリー等 → ambiguous（ref_kind=unknown）。"""
        git = _repo(objects={"main", "HEAD^{tree}"}, types={"HEAD^{tree}": "tree"})
        result = _resolve("HEAD^{tree}", git)
        assert isinstance(result, AmbiguousTarget)
        assert result.ref_kind is RefKind.UNKNOWN

    def test_remote_branch_is_not_auto_resolved(self) -> None:
        """リモート追跡ブランチはローカルブランチではないため曖昧扱い。"""
        git = _repo(
            objects={"main", "origin/feature"}, types={"origin/feature": "commit"}
        )
        result = _resolve("origin/feature", git)
        assert isinstance(result, AmbiguousTarget)
        assert not result.is_branch

    def test_unknown_ref_is_invalid_argument(self) -> None:
        """存在しない ref → invalid_argument。"""
        result = _resolve("no-such-thing", _repo())
        assert result == ErrorTarget(
            error="Invalid argument: no-such-thing. "
            "Not a valid PR, git ref, range, or area.",
            kind=ErrorKind.INVALID_ARGUMENT,
        )


# =============================================================================
# 引数なし
# =============================================================================


class TestDetectNoArgument:
    """引数なし時の状態判定。"""

    def test_base_with_changes_is_local(self) -> None:
        """ベースブランチ上・未コミット変更あり → local。"""
        assert _resolve("", _repo(uncommitted=True)) == LocalUncommittedTarget()

    def test_base_without_changes_is_error(self) -> None:
        """ベースブランチ上・変更なし → no_changes_to_review。"""
        result = _resolve("", _repo())
        assert isinstance(result, ErrorTarget)
        assert result.kind is ErrorKind.NO_CHANGES_TO_REVIEW

    def test_remote_base_matches_local_name(self) -> None:
        """ベースが origin/main のとき main 上はベースブランチ上とみなす。"""
        git = FakeGitProbe(objects={"origin/main"}, current="main", uncommitted=True)
        assert _resolve("", git) == LocalUncommittedTarget()

    def test_feature_with_changes_is_prompt(self) -> None:
        """ベース以外・未コミット変更あり → prompt。"""
        result = _resolve("", _repo(current="feature", uncommitted=True))
        assert result == PromptUncommittedTarget(
            current_branch="feature", base_branch="main"
        )

    def test_feature_clean_is_prompt_pull(self) -> None:
        """ベース以外・変更なし → prompt_pull（Branch に再分類しない）。"""
        result = _resolve("", _repo(current="feature"))
        assert result == PromptPullTarget(branch="feature", base_branch="main")

    def test_associated_pr(self) -> None:
        """ブランチに紐づく PR を含める。"""
        result = _resolve(
            "", _repo(current="feature"), pr_finder=lambda branch: ["77"]
        )
        assert isinstance(result, PromptPullTarget)
        assert result.associated_pr == "77"
        assert result.warnings == ()

    def test_multiple_prs_pick_first_with_warning(self) -> None:
        """複数の PR → 最初の PR を採用し警告を含める。"""
        result = _resolve(
            "", _repo(current="feature"), pr_finder=lambda branch: ["12", "15"]
        )
        assert isinstance(result, PromptPullTarget)
        assert result.associated_pr == "12"
        assert len(result.warnings) == 1
        assert "12, 15" in result.warnings[0]

    def test_pr_lookup_without_gh(self) -> None:
        """gh が無い場合は PR なしとして続行する。"""

        def finder(branch: str) -> list[str]:
            raise ToolNotFoundError("gh command not found.")

        result = _resolve("", _repo(current="feature"), pr_finder=finder)
        assert isinstance(result, PromptPullTarget)
        assert result.associated_pr is None

    def test_pr_lookup_failure(self) -> None:
        """gh の失敗は PR なしとして続行する。"""

        def finder(branch: str) -> list[str]:
            raise ToolCommandError("gh command failed: auth", returncode=1)

        result = _resolve("", _repo(current="feature"), pr_finder=finder)
        assert isinstance(result, PromptPullTarget)
        assert result.associated_pr is None

    def test_remote_ahead(self) -> None:
        """upstream が進んでいる → remote_ahead=True。"""
        git = _repo(
            current="feature",
            upstream_name="origin/feature",
            revs={"HEAD": "aaa", "origin/feature": "bbb"},
            counts={"HEAD..origin/feature": 2, "origin/feature..HEAD": 0},
        )
        result = _resolve("", git)
        assert isinstance(result, PromptPullTarget)
        assert result.remote_ahead
        assert result.warnings == ()

    def test_diverged_branch_warns(self) -> None:
        """双方に未取り込みコミット → remote_ahead=True と警告。"""
        git = _repo(
            current="feature",
            upstream_name="origin/feature",
            revs={"HEAD": "aaa", "origin/feature": "bbb"},
            counts={"HEAD..origin/feature": 2, "origin/feature..HEAD": 3},
        )
        result = _resolve("", git)
        assert isinstance(result, PromptPullTarget)
        assert result.remote_ahead
        assert "diverged" in result.warnings[0]

    def test_local_ahead_only(self) -> None:
        """ローカルのみ進んでいる → remote_ahead=False。"""
        git = _repo(
            current="feature",
            upstream_name="origin/feature",
            revs={"HEAD": "aaa", "origin/feature": "bbb"},
            counts={"HEAD..origin/feature": 0, "origin/feature..HEAD": 1},
        )
        result = _resolve("", git)
        assert isinstance(result, PromptPullTarget)
        assert not result.remote_ahead

    def test_no_upstream(self) -> None:
        """upstream 未設定 → remote_ahead=False。"""
        result = _resolve("", _repo(current="feature"))
        assert isinstance(result, PromptPullTarget)
        assert not result.remote_ahead


# =============================================================================
# エラー変換・冪等性
# =============================================================================


class TestResolveTargetErrors:
    """外部コマンドの失敗は例外ではなく ErrorTarget になる。"""

    def test_missing_git(self) -> None:
        """git 未検出 → external_tool_missing。"""
        result = _resolve("feature", _MissingGit())
        assert isinstance(result, ErrorTarget)
        assert result.kind is ErrorKind.EXTERNAL_TOOL_MISSING

    def test_outside_repository(self) -> None:
        """リポジトリ外での引数なし → git_command_failed。"""
        result = _resolve("", _OutsideRepository())
        assert isinstance(result, ErrorTarget)
        assert result.kind is ErrorKind.GIT_COMMAND_FAILED
        assert "not a git repository" in result.error


class TestResolveTargetRequest:
    """ResolvedRequest への引き継ぎ。"""

    def test_pattern_and_find_mode_passed_through(self) -> None:
        """file_pattern と find_mode は判定に影響せず結果に引き継ぐ。"""
        request = resolve_target(
            "123", "*.py", find_mode=True, git=FakeGitProbe(), pr_finder=_no_prs
        )
        assert request.target == PullRequestTarget(pr_number="123")
        assert request.file_pattern == "*.py"
        assert request.find_mode

    def test_same_state_same_result(self) -> None:
        """同じリポジトリ状態に対しては同じ結果を返す。"""
        git = _repo(current="feature")
        first = resolve_target("", git=git, pr_finder=_no_prs)
        second = resolve_target("", git=git, pr_finder=_no_prs)
        assert first == second


# =============================================================================
# parse_invocation / find_open_pull_requests
# =============================================================================


class TestParseInvocation:
    """位置引数の分解。"""

    @pytest.mark.parametrize(
        ("args", "expected"),
        [
            (None, ("", "", False)),
            ([], ("", "", False)),
            (["123"], ("123", "", False)),
            (["123", "*.py"], ("123", "*.py", False)),
            (["find"], ("", "", True)),
            (["find", "feature", "src/*"], ("feature", "src/*", True)),
            (["feature", "find"], ("feature", "find", False)),
        ],
    )
    def test_split(
        self, args: list[str] | None, expected: tuple[str, str, bool]
    ) -> None:
        """先頭の find のみ find モードとして取り除く。"""
        assert parse_invocation(args) == expected


class TestFindOpenPullRequests:
    """gh pr list による PR 検索。"""

    def test_parses_numbers(self) -> None:
        """1行1番号の出力をリストにする。"""
        with patch(
            "review_code.engine._target_resolver.run_gh", return_value="12\n15\n\n"
        ) as mock_gh:
            assert find_open_pull_requests("feature") == ["12", "15"]
        args = mock_gh.call_args.args[0]
        assert args[:4] == ["pr", "list", "--head", "feature"]
        assert "open" in args
