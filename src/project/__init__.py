"""Project configuration loading."""

from .config import ProjectConfig

__all__ = ["ProjectConfig"]
