"""
Configuration Module

Exposes the datasource settings object and its cached factory.
"""

from datasource.config.settings import Settings, get_settings, settings

__all__ = ["Settings", "get_settings", "settings"]
