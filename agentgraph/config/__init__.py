"""Configuration - environment-driven settings"""
from .settings import Settings, ProviderSettings, settings

__all__ = ["Settings", "ProviderSettings", "settings"]
