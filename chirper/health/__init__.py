"""Health check module."""

from chirper.health.router import router


__all__ = ["router"]
