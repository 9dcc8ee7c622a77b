"""API routers for capflow Server."""

from . import flows, health

__all__ = ["flows", "health"]
