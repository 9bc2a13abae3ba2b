"""Route group exports."""

from . import cache, health, schedule

__all__ = ["cache", "health", "schedule"]
