"""
Gateway services.
"""

from .gateway import GatewayService

__all__ = ["GatewayService"]
