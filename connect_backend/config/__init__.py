"""Configuration package for the Connect backend."""
from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
