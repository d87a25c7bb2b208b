"""設定管理モジュール。"""

from review_code.config._loader import ConfigSecurityError, load_env_config
from review_code.config._locator import get_user_config_path
from review_code.config._resolver import resolve_settings

__all__ = [
    "ConfigSecurityError",
    "get_user_config_path",
    "load_env_config",
    "resolve_settings",
]
