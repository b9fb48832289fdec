"""
Environmental Edge Gateway
==========================

Store-and-forward gateway for temperature/humidity sensors. Readings are
enriched locally (heat index, dew point, comfort, trends, anomalies, quality),
persisted to a SQLite buffer and forwarded to a remote aggregation service in
batches.

Components:
- processing: metric calculator, trend/anomaly detector, quality scorer
- store: durable reading store with sync bookkeeping
- sync: batch sync engine and cloud client
- services: ingestion orchestration and background loops
- api: FastAPI ingestion and reporting endpoints
"""

__version__ = "1.0.0"
__author__ = "Edge Gateway"
