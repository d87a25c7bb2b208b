"""ExitCode — 終了コードの定義。"""

from enum import IntEnum


class ExitCode(IntEnum):
    """プロセス終了コード。

    ambiguous / prompt / find を含む全ての解決済み状態は SUCCESS。
    ERROR は解決失敗・セッション操作失敗・設定エラーに限る。
    """

    SUCCESS = 0
    ERROR = 1
