"""
Core configuration module for SmartBlob.

Provides centralized configuration management with support for directory paths,
environment variables and INI file loading.
"""

from smartblob.core.config.config import Config, CoreConfig, CoreSettings, SettingsLike

__all__ = ["Config", "CoreConfig", "CoreSettings", "SettingsLike"]
