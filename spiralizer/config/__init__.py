"""
Configuration for spiral generation, caching and export.
"""

from .config import (
    Settings,
    get_config_name,
    get_setting,
    get_settings,
    load_settings,
    reload_settings,
)

__all__ = ['Settings', 'get_config_name', 'get_setting', 'get_settings',
           'load_settings', 'reload_settings']
