"""デバッグ計測モジュール。"""

from review_code.debug._recorder import (
    DebugRecorder,
    FileDebugRecorder,
    NullDebugRecorder,
    create_debug_recorder,
    render_debug_readme,
    stage_durations,
)
from review_code.debug._sweep import (
    DebugSessionInfo,
    delete_debug_sessions,
    list_debug_sessions,
)

__all__ = [
    "DebugRecorder",
    "DebugSessionInfo",
    "FileDebugRecorder",
    "NullDebugRecorder",
    "create_debug_recorder",
    "delete_debug_sessions",
    "list_debug_sessions",
    "render_debug_readme",
    "stage_durations",
]
