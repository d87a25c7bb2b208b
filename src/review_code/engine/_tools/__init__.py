"""外部コマンドの読み取り専用ラッパー。

git / gh をホワイトリスト付きで実行する。
本パッケージはプライベートであり engine 外から直接インポートしない。
"""

from review_code.engine._tools._gh import run_gh
from review_code.engine._tools._git import git_succeeds, run_git
from review_code.engine._tools._process import ToolCommandError, ToolNotFoundError

__all__ = [
    "ToolCommandError",
    "ToolNotFoundError",
    "git_succeeds",
    "run_gh",
    "run_git",
]
