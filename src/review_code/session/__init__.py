"""レビューセッション管理モジュール。"""

from review_code.session._manager import (
    DEFAULT_MAX_AGE_MINUTES,
    SessionManager,
    build_session_id,
    status_for,
)
from review_code.session._store import (
    InvalidSessionIdError,
    SessionCorruptError,
    SessionError,
    SessionNotFoundError,
    SessionStatusError,
    SessionStore,
    validate_session_id,
    write_json_atomic,
)

__all__ = [
    "DEFAULT_MAX_AGE_MINUTES",
    "InvalidSessionIdError",
    "SessionCorruptError",
    "SessionError",
    "SessionManager",
    "SessionNotFoundError",
    "SessionStatusError",
    "SessionStore",
    "build_session_id",
    "status_for",
    "validate_session_id",
    "write_json_atomic",
]
