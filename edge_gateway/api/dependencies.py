"""
FastAPI dependencies for the gateway API.
"""

from typing import Annotated

from fastapi import Depends, Request

from edge_gateway.services.gateway import GatewayService


def get_gateway(request: Request) -> GatewayService:
    """Get the gateway service attached to the running application."""
    return request.app.state.gateway


GatewayDep = Annotated[GatewayService, Depends(get_gateway)]
