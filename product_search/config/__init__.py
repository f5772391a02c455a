"""Configuration module.

Environment-based settings via get_settings().
"""

from product_search.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
