"""
Manual sync trigger.
"""

from fastapi import APIRouter

from edge_gateway.api.dependencies import GatewayDep

router = APIRouter()


@router.post("")
async def trigger_sync(gateway: GatewayDep):
    """Run one sync cycle now and report its outcome."""
    outcome = await gateway.sync_now()
    return {
        "status": "success",
        "data": outcome.to_dict(),
        "pending_count": await gateway.count_pending(),
    }
