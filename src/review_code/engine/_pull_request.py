"""PR メタデータの取得。"""

from __future__ import annotations

import json
from typing import Final

from pydantic import ValidationError

from review_code.engine._tools import ToolCommandError, run_gh
from review_code.models.bundle import PullRequestMetadata

PR_VIEW_FIELDS: Final[str] = "number,title,body,url,author,headRefName,baseRefName,state"
"""gh pr view --json に渡すフィールド。"""


class PullRequestFetchError(ToolCommandError):
    """gh pr view の出力が解釈できない。"""


def fetch_pull_request(
    pr_number: str, repo_spec: str | None = None
) -> PullRequestMetadata:
    """gh pr view で PR メタデータを取得する。

    Args:
        pr_number: PR 番号。
        repo_spec: gh --repo 値（[HOST/]OWNER/REPO）。None の場合は現在のリポジトリ。

    Raises:
        ToolNotFoundError: gh が見つからない場合。
        ToolCommandError: gh コマンドが失敗した場合。
        PullRequestFetchError: 出力が JSON として解釈できない場合。
    """
    args = ["pr", "view", pr_number, "--json", PR_VIEW_FIELDS]
    if repo_spec:
        args.extend(["--repo", repo_spec])
    output = run_gh(args)

    try:
        data = json.loads(output)
        author = data.get("author") or {}
        return PullRequestMetadata(
            number=data["number"],
            title=data.get("title") or "",
            body=data.get("body") or "",
            url=data.get("url") or "",
            author=author.get("login", "") if isinstance(author, dict) else str(author),
            head_ref=data.get("headRefName") or "",
            base_ref=data.get("baseRefName") or "",
            state=(data.get("state") or "").lower(),
        )
    except (json.JSONDecodeError, AttributeError, KeyError, ValidationError) as e:
        raise PullRequestFetchError(
            f"Unexpected gh pr view output for PR #{pr_number}: {e}"
        ) from e
