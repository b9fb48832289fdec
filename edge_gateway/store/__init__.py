"""
Durable reading store backing both edge processing and cloud sync.
"""

from .reading_store import ReadingStore

__all__ = ["ReadingStore"]
