"""API route modules."""

from . import data, sensor, sync

__all__ = ["data", "sensor", "sync"]
