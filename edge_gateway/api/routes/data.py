"""
Reporting API routes over locally stored readings.
"""

from fastapi import APIRouter, Query

from edge_gateway.api.dependencies import GatewayDep

router = APIRouter()


@router.get("/recent")
async def recent_readings(
    gateway: GatewayDep,
    sensor_id: str | None = None,
    limit: int = Query(20, ge=1, le=500),
):
    """Most recent readings, newest first."""
    readings = await gateway.recent_readings(sensor_id=sensor_id, limit=limit)
    return {
        "status": "success",
        "count": len(readings),
        "data": [reading.to_dict() for reading in readings],
    }


@router.get("/stats")
async def statistics(gateway: GatewayDep):
    """Pending/total counts and the last sync outcome."""
    return {
        "status": "success",
        "data": await gateway.statistics(),
    }
