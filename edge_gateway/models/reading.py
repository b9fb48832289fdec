"""Sensor reading model for the local store-and-forward buffer."""
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from edge_gateway.database.base import Base, UTCDateTime


class SensorReading(Base):
    """
    SensorReading stores one enriched reading together with its sync state.

    The table is a bounded local buffer: rows stay until they have been
    accepted by the aggregation service and aged past the retention window.
    """
    __tablename__ = "sensor_readings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    sensor_id: Mapped[str] = mapped_column(String(100), nullable=False)

    # Timestamps
    gateway_timestamp: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    sensor_timestamp: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)

    # Raw inputs (after range correction)
    temperature: Mapped[float] = mapped_column(Float, nullable=False)
    humidity: Mapped[float] = mapped_column(Float, nullable=False)
    battery_level: Mapped[Optional[float]] = mapped_column(Float)
    rssi: Mapped[Optional[int]] = mapped_column(Integer)

    # Computed at the edge
    heat_index: Mapped[float] = mapped_column(Float, nullable=False)
    dew_point: Mapped[Optional[float]] = mapped_column(Float)
    comfort_level: Mapped[float] = mapped_column(Float, nullable=False)
    is_anomaly: Mapped[bool] = mapped_column(Boolean, nullable=False)
    temperature_trend: Mapped[str] = mapped_column(String(8), nullable=False)
    humidity_trend: Mapped[str] = mapped_column(String(8), nullable=False)

    # Data quality
    quality_score: Mapped[int] = mapped_column(Integer, nullable=False)
    quality_issues: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    quality_corrected: Mapped[bool] = mapped_column(Boolean, nullable=False)

    # Sync control
    synced: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sync_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_sync_attempt: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)

    __table_args__ = (
        Index("ix_sensor_readings_synced_gateway_timestamp", "synced", "gateway_timestamp"),
        Index("ix_sensor_readings_sensor_id_gateway_timestamp", "sensor_id", "gateway_timestamp"),
    )

    def __repr__(self) -> str:
        return (
            f"<SensorReading(id={self.id}, sensor_id={self.sensor_id}, "
            f"gateway_timestamp={self.gateway_timestamp}, synced={self.synced})>"
        )
