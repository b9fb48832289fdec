"""
Database models for the edge gateway.
"""

from .reading import SensorReading

__all__ = ["SensorReading"]
