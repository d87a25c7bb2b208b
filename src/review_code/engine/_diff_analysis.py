"""差分解析 — unified diff からのファイルメタデータ・言語・統計の抽出。

diff テキストのみを入力とし、git は呼び出さない。
likely_test_path の算出のみ作業ツリーのディレクトリ存在を参照する。
"""

from __future__ import annotations

import fnmatch
import re
from pathlib import Path, PurePosixPath
from typing import Final

from review_code.models.bundle import DiffStats, FileMetadata, FileMetadataSummary

_DIFF_SECTION_RE: Final[re.Pattern[str]] = re.compile(r"^diff --git ", re.MULTILINE)
"""unified diff のファイル単位セクション区切りパターン。"""

_FILE_PATH_RE: Final[re.Pattern[str]] = re.compile(r"diff --git a/.+ b/(.+)")
"""diff --git ヘッダーからファイルパス（b/側）を抽出するパターン。"""

_NEW_FILE_RE: Final[re.Pattern[str]] = re.compile(r"^\+\+\+ b/(.+)$", re.MULTILINE)
"""+++ b/ 行からファイルパスを抽出するパターン。"""

_ANY_FILE_RE: Final[re.Pattern[str]] = re.compile(
    r"^(?:\+\+\+|---) [ab]/(.+)$", re.MULTILINE
)
"""+++ / --- 行の両側からファイルパスを抽出するパターン。"""

EXTENSION_LANGUAGES: Final[dict[str, str]] = {
    ".py": "python",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".js": "javascript",
    ".jsx": "javascript",
    ".rs": "rust",
    ".go": "go",
    ".rb": "ruby",
    ".php": "php",
    ".java": "java",
    ".kt": "kotlin",
    ".kts": "kotlin",
    ".swift": "swift",
    ".cs": "csharp",
    ".ex": "elixir",
    ".exs": "elixir",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".cc": "cpp",
    ".cxx": "cpp",
    ".hpp": "cpp",
    ".sql": "sql",
    ".sh": "bash",
    ".bash": "bash",
}
"""拡張子と言語名の対応。"""

_TEST_NAME_RE: Final[re.Pattern[str]] = re.compile(
    r"(^test_|_test\.|_spec\.|\.test\.|\.spec\.)"
)
_TEST_DIR_RE: Final[re.Pattern[str]] = re.compile(r"(^|/)(__tests__|tests?|specs?)$")
_MIGRATION_DIR_RE: Final[re.Pattern[str]] = re.compile(r"(^|/)migrations?$")
_MIGRATION_NAME_RE: Final[re.Pattern[str]] = re.compile(r"^[0-9]{4}_.*\.(sql|py)$")
_CONFIG_EXT_RE: Final[re.Pattern[str]] = re.compile(
    r"\.(json|yaml|yml|toml|ini|env|config)$"
)
_CONFIG_NAMES: Final[frozenset[str]] = frozenset(
    {
        "package.json",
        "tsconfig",
        "Cargo.toml",
        "pyproject.toml",
        "setup.py",
        "Gemfile",
        "composer.json",
    }
)


def split_diff_sections(diff_text: str) -> list[str]:
    """unified diff をファイル単位のセクションに分割する。

    最初の diff --git より前のテキストは捨てる。
    """
    positions = [m.start() for m in _DIFF_SECTION_RE.finditer(diff_text)]
    if not positions:
        return []
    positions.append(len(diff_text))
    return [diff_text[positions[i] : positions[i + 1]] for i in range(len(positions) - 1)]


def filter_diff_by_pattern(diff_text: str, pattern: str) -> str:
    """diff をファイル単位で分割し、pattern にマッチするファイルのみ抽出する。

    fnmatch でファイルパス全体と basename の両方に対してマッチングを行う。
    pattern が空の場合はそのまま返す。マッチするファイルがない場合は空文字列。
    """
    if not diff_text or not pattern:
        return diff_text

    kept: list[str] = []
    for section in split_diff_sections(diff_text):
        match = _FILE_PATH_RE.match(section)
        if match is None:
            continue
        path = match.group(1).strip()
        if fnmatch.fnmatch(path, pattern) or fnmatch.fnmatch(
            PurePosixPath(path).name, pattern
        ):
            kept.append(section)
    return "".join(kept)


def extract_changed_paths(diff_text: str) -> list[str]:
    """+++ b/ 行から変更後のファイルパスを出現順に重複なく取得する。"""
    seen: dict[str, None] = {}
    for match in _NEW_FILE_RE.finditer(diff_text):
        seen.setdefault(match.group(1).strip(), None)
    return list(seen)


def detect_languages(diff_text: str) -> tuple[str, ...]:
    """diff に含まれるファイルの拡張子から言語を検出する。ソート済み。"""
    languages: set[str] = set()
    for match in _ANY_FILE_RE.finditer(diff_text):
        language = language_for_path(match.group(1).strip())
        if language != "unknown":
            languages.add(language)
    return tuple(sorted(languages))


def language_for_path(path: str) -> str:
    """ファイルパスの拡張子に対応する言語名。未知の場合は "unknown"。"""
    return EXTENSION_LANGUAGES.get(PurePosixPath(path).suffix, "unknown")


def compute_diff_stats(diff_text: str, commits: int | None = None) -> DiffStats:
    """変更ファイル数・追加行数・削除行数を数える。"""
    files_changed = 0
    lines_added = 0
    lines_removed = 0
    for line in diff_text.splitlines():
        if line.startswith("diff --git"):
            files_changed += 1
        elif line.startswith("+") and not line.startswith("+++"):
            lines_added += 1
        elif line.startswith("-") and not line.startswith("---"):
            lines_removed += 1
    return DiffStats(
        files_changed=files_changed,
        lines_added=lines_added,
        lines_removed=lines_removed,
        commits=commits,
    )


def describe_file(path: str, repo_root: Path | None = None) -> FileMetadata:
    """1ファイルの種別・言語・テスト判定・推定テストパスを求める。

    Args:
        path: リポジトリルートからの相対パス。
        repo_root: 推定テストパス算出時にディレクトリ存在を確認する基点。
            None の場合はカレントディレクトリ。
    """
    pure = PurePosixPath(path)
    name = pure.name
    parent = str(pure.parent)
    language = language_for_path(path)

    file_type = "source"
    is_test = bool(_TEST_NAME_RE.search(name) or _TEST_DIR_RE.search(parent))
    if is_test:
        file_type = "test"
    if _MIGRATION_DIR_RE.search(parent) or _MIGRATION_NAME_RE.match(name):
        file_type = "migration"
    if _CONFIG_EXT_RE.search(name) or name in _CONFIG_NAMES:
        file_type = "config"

    likely_test_path: str | None = None
    if not is_test and file_type == "source":
        likely_test_path = _likely_test_path(pure, language, repo_root or Path.cwd())

    return FileMetadata(
        path=path,
        type=file_type,
        language=language,
        is_test=is_test,
        likely_test_path=likely_test_path,
    )


def _likely_test_path(path: PurePosixPath, language: str, root: Path) -> str | None:
    parent = path.parent
    name = path.name

    def _join(*parts: str) -> str:
        return str(parent.joinpath(*parts))

    if language == "python":
        test_name = f"test_{name}"
        if (root / parent / "tests").is_dir():
            return _join("tests", test_name)
        return _join(test_name)
    if language in ("typescript", "javascript"):
        test_name = f"{path.stem}.test{path.suffix}"
        if (root / parent / "__tests__").is_dir():
            return _join("__tests__", test_name)
        return _join(test_name)
    if language == "rust":
        return _join("tests", name)
    if language == "go":
        return _join(f"{path.stem}_test.go")
    if (root / parent / "tests").is_dir():
        return _join("tests", f"test_{name}")
    return None


def build_file_metadata(
    diff_text: str, repo_root: Path | None = None
) -> FileMetadataSummary:
    """diff 全体のファイルメタデータを構築する。"""
    files = tuple(
        describe_file(path, repo_root) for path in extract_changed_paths(diff_text)
    )
    return FileMetadataSummary(
        modified_files=files,
        file_count=len(files),
        has_tests=any(f.is_test for f in files),
        has_migrations=any(f.type == "migration" for f in files),
        has_config=any(f.type == "config" for f in files),
    )
