"""
Typed errors raised by the edge gateway core.

Ingestion callers receive ValidationError ("bad data") or StoreError
("system unavailable"). SyncTransportError never leaves the sync engine.
ConfigError is raised while loading settings and is fatal at startup.
"""


class GatewayError(Exception):
    """Base class for all gateway errors."""

    code = "gateway_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(GatewayError):
    """Raw reading is malformed or out of range beyond correction."""

    code = "invalid_reading"

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class StoreError(GatewayError):
    """The reading store failed to read or write."""

    code = "store_unavailable"


class SyncTransportError(GatewayError):
    """Network failure, timeout or non-2xx answer from the aggregation service."""

    code = "sync_transport_failed"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ConfigError(GatewayError):
    """Invalid configuration detected at startup."""

    code = "invalid_config"
