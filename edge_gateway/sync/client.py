"""
Cloud client for the remote aggregation service.

One POST per sync cycle. Only connection-establishment failures are retried
(the request never left the gateway); everything else is reported to the
sync engine as SyncTransportError.
"""

from typing import Any, Dict, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from edge_gateway.config.settings import SyncSettings
from edge_gateway.exceptions import SyncTransportError


class CloudClient:
    """HTTP client posting batch payloads with bearer-token authentication."""

    def __init__(
        self,
        url: str,
        api_key: str,
        gateway_id: str,
        timeout: float = 30.0,
        connect_attempts: int = 3,
        connect_backoff: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.api_key = api_key
        self.gateway_id = gateway_id
        self.timeout = timeout
        self.connect_attempts = connect_attempts
        self.connect_backoff = connect_backoff
        self._transport = transport

    @classmethod
    def from_settings(
        cls,
        settings: SyncSettings,
        gateway_id: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "CloudClient":
        return cls(
            url=settings.cloud_url,
            api_key=settings.api_key.get_secret_value(),
            gateway_id=gateway_id,
            timeout=settings.timeout_seconds,
            connect_attempts=settings.connect_attempts,
            connect_backoff=settings.connect_backoff_seconds,
            transport=transport,
        )

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "X-Gateway-ID": self.gateway_id,
            "Content-Type": "application/json",
        }

    async def send(self, payload: Dict[str, Any]) -> None:
        """
        Post one batch payload.

        Raises:
            SyncTransportError: On network failure, timeout or a non-2xx status
        """
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.connect_attempts),
                wait=wait_exponential(multiplier=self.connect_backoff, max=10),
                retry=retry_if_exception_type(httpx.ConnectError),
                reraise=True,
            ):
                with attempt:
                    async with httpx.AsyncClient(
                        transport=self._transport,
                        timeout=self.timeout,
                    ) as client:
                        response = await client.post(
                            self.url,
                            json=payload,
                            headers=self._headers(),
                        )
        except httpx.TimeoutException as exc:
            raise SyncTransportError(f"Cloud service timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise SyncTransportError(f"Cloud service unreachable: {exc}") from exc

        if not response.is_success:
            raise SyncTransportError(
                f"Cloud service responded {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
