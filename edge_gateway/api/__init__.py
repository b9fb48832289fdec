"""
HTTP API for the edge gateway.
"""

from .main import create_app

__all__ = ["create_app"]
