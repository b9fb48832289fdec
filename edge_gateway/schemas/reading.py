"""
Pydantic schemas for raw readings delivered by ingestion collaborators.
"""

from datetime import datetime
from typing import Any, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from edge_gateway.exceptions import ValidationError


class SensorDataInput(BaseModel):
    """Raw reading as reported by a field device."""

    model_config = ConfigDict(allow_inf_nan=False, str_strip_whitespace=True)

    sensor_id: str = Field(..., min_length=1, max_length=100)
    temperature: float
    humidity: float
    battery_level: Optional[float] = Field(None, ge=0, le=100)
    rssi: Optional[int] = Field(None, ge=-150, le=20)
    sensor_timestamp: Optional[datetime] = None

    @field_validator("sensor_timestamp")
    @classmethod
    def require_timezone(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            raise ValueError("sensor_timestamp must include a timezone offset")
        return value


class SensorDataBatch(BaseModel):
    """Several readings delivered together, typically after a device was offline."""

    readings: List[SensorDataInput] = Field(..., min_length=1, max_length=100)


RawReading = Union[SensorDataInput, Mapping[str, Any]]


def parse_reading(raw: RawReading) -> SensorDataInput:
    """
    Coerce a raw record into a validated SensorDataInput.

    Raises:
        ValidationError: If the record is malformed
    """
    if isinstance(raw, SensorDataInput):
        return raw
    try:
        return SensorDataInput.model_validate(raw)
    except PydanticValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        location = first.get("loc") or ()
        field = str(location[0]) if location else None
        raise ValidationError(f"Invalid reading: {exc}", field=field) from exc
