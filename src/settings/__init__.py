"""Environment settings for the fetch engine and CLI."""

from .app import AppSettings, get_settings


__all__ = ["AppSettings", "get_settings"]
