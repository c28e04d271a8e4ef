"""Taskhue - color resolution and sync engine for calendar task overlays."""

from .engine import ColoringEngine
from .exceptions import TaskhueError
from .models import StyleResult

__all__ = ["ColoringEngine", "StyleResult", "TaskhueError"]
