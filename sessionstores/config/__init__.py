# Configuration module for session stores
from .settings import (
    BackendType,
    Environment,
    Settings,
    clear_settings_cache,
    create_settings_for_environment,
    get_settings,
)

__all__ = [
    "BackendType",
    "Environment",
    "Settings",
    "clear_settings_cache",
    "create_settings_for_environment",
    "get_settings",
]
