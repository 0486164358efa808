"""Core: config and runtime bootstrap."""

from autoflow.core.config import Settings, get_settings

__all__ = ["Settings", "get_settings"]
