"""ReviewContextLoader — 言語・org・repo 別レビューコンテキストの読み込み。

コンテキストディレクトリから以下の順で Markdown を読み込み連結する。
1. languages/<language>.md
2. orgs/<org>/org.md
3. orgs/<org>/repos/<repo>.md
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from pathlib import Path
from typing import Final

from review_code.models.bundle import ReviewContext

logger = logging.getLogger(__name__)

_SAFE_SEGMENT_RE: Final[re.Pattern[str]] = re.compile(r"^[a-z0-9_-]+$")
"""org / repo として受け付けるパス要素。"""

CONTEXT_MAX_CHARS: Final[int] = 20000
"""1ファイルあたりの最大読み込み文字数。"""


def _safe_segment(value: str) -> str | None:
    lowered = value.lower()
    if not lowered or lowered == "unknown" or not _SAFE_SEGMENT_RE.fullmatch(lowered):
        return None
    return lowered


def _read_context_file(path: Path) -> str | None:
    """ファイルを読み込む。存在しない・読めない場合は None。"""
    if not path.is_file():
        return None
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Failed to read review context '%s': %s", path, e)
        return None
    return content[:CONTEXT_MAX_CHARS].strip()


def load_review_context(
    context_path: Path | None,
    languages: Iterable[str],
    org: str,
    repo: str,
) -> ReviewContext:
    """レビューコンテキストを読み込む。

    context_path が None またはディレクトリでない場合は空のコンテキストを返す。
    org / repo は小文字化し、安全な文字以外を含む場合は無視する。

    Args:
        context_path: コンテキストディレクトリ。
        languages: diff から検出された言語名。
        org: GitHub organization。
        repo: リポジトリ名。

    Returns:
        ReviewContext: 連結済みの Markdown と読み込んだファイルの相対パス。
    """
    if context_path is None or not context_path.is_dir():
        return ReviewContext()

    sections: list[str] = []
    loaded: list[str] = []

    def _load(relative: str, heading: str) -> None:
        content = _read_context_file(context_path / relative)
        if content is None:
            return
        loaded.append(relative)
        sections.append(f"## {heading}\n\n{content}")

    for language in dict.fromkeys(lang.lower() for lang in languages):
        if not _SAFE_SEGMENT_RE.fullmatch(language):
            continue
        _load(f"languages/{language}.md", f"{language.capitalize()} Guidelines")

    safe_org = _safe_segment(org)
    safe_repo = _safe_segment(repo)
    if safe_org is not None:
        _load(
            f"orgs/{safe_org}/org.md",
            f"{safe_org.capitalize()} Organization Guidelines",
        )
        if safe_repo is not None:
            _load(
                f"orgs/{safe_org}/repos/{safe_repo}.md",
                f"{safe_org.capitalize()}/{safe_repo.capitalize()} Repository Guidelines",
            )

    logger.debug("Loaded %d review context file(s)", len(loaded))
    return ReviewContext(content="\n\n".join(sections), loaded_files=tuple(loaded))
