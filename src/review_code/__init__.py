"""review-code: コードレビュー対象の判定とレビューセッション管理。"""


def main() -> None:
    """パッケージエントリポイント。cli.main() に委譲する。

    pyproject.toml の [project.scripts] は review_code.cli:main を直接参照するため、
    この関数はプログラムから review_code.main() として呼び出す場合に使う。
    """
    from review_code.cli import main as cli_main

    cli_main()
