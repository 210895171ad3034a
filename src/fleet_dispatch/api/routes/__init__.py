"""Route group exports."""

from . import catalog, feed, health, incidents, movements, search

__all__ = ["catalog", "feed", "health", "incidents", "movements", "search"]
