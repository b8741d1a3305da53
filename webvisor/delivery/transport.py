import logging
from typing import Any, Dict, Optional, Protocol

import httpx

from ..errors import DeliveryError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0  # seconds


class Transport(Protocol):
    async def send(self, payload: Dict[str, Any]) -> None: ...


class HttpTransport:
    """
    POST batches as JSON.

    Non-2xx answers raise ``DeliveryError``; connection problems surface as
    ``httpx.TransportError``. Pass ``client`` to share a connection pool
    (or to mount a test transport); otherwise each send opens its own.
    """

    def __init__(self, endpoint: str, timeout: float = DEFAULT_TIMEOUT,
                 client: Optional[httpx.AsyncClient] = None):
        self.endpoint = endpoint
        self.timeout = timeout
        self.client = client

    async def _post(self, client: httpx.AsyncClient, payload: Dict[str, Any]) -> httpx.Response:
        return await client.post(self.endpoint, json=payload, timeout=self.timeout)

    async def send(self, payload: Dict[str, Any]) -> None:
        if self.client is not None:
            response = await self._post(self.client, payload)
        else:
            async with httpx.AsyncClient() as client:
                response = await self._post(client, payload)
        if not response.is_success:
            raise DeliveryError(response.status_code, response.reason_phrase)
        logger.debug("delivered %d events to %s", len(payload.get("events", [])), self.endpoint)
