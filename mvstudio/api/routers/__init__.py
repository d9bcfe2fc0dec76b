"""API routers for MV Studio."""

from mvstudio.api.routers import grid, provenance, scenes, settings

__all__ = ["grid", "provenance", "scenes", "settings"]
