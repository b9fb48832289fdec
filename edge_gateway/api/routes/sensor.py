"""
Sensor ingestion API routes.
"""

from fastapi import APIRouter, status

from edge_gateway.api.dependencies import GatewayDep
from edge_gateway.schemas.reading import SensorDataBatch, SensorDataInput

router = APIRouter()


@router.post("/data", status_code=status.HTTP_201_CREATED)
async def ingest_reading(reading: SensorDataInput, gateway: GatewayDep):
    """Process and store a single sensor reading."""
    processed = await gateway.ingest(reading)
    return {
        "status": "success",
        "message": "Data processed and stored",
        "data": processed.to_dict(),
    }


@router.post("/batch", status_code=status.HTTP_201_CREATED)
async def ingest_batch(batch: SensorDataBatch, gateway: GatewayDep):
    """
    Process and store several readings at once.

    The batch is stored all-or-nothing.
    """
    processed = await gateway.ingest_batch(batch.readings)
    return {
        "status": "success",
        "count": len(processed),
        "ids": [str(reading.id) for reading in processed],
        "batch_stats": gateway.summarize(processed),
        "pending_count": await gateway.count_pending(),
    }
