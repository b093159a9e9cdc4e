"""Configuration package."""
from lockin.config.settings import Settings, settings

__all__ = ["Settings", "settings"]
