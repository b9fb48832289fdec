"""
Pydantic schemas for ingestion requests.
"""

from .reading import RawReading, SensorDataBatch, SensorDataInput, parse_reading

__all__ = ["RawReading", "SensorDataBatch", "SensorDataInput", "parse_reading"]
