"""
gateway/services/remote_mirror.py

HTTP client for the remote status mirror.
GET  {base}/{collection}/{id}  -> record JSON, 404 when absent
PATCH {base}/{collection}/{id} -> partial update
Errors propagate to the caller, which logs and swallows them.
"""

from typing import Any, Optional

import httpx
import structlog

logger = structlog.get_logger(__name__)


class HttpRemoteMirror:
    def __init__(
        self,
        base_url: str,
        timeout_s: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout_s,
            transport=self._transport,
        )

    async def read_record(self, collection: str, record_id: str) -> Optional[dict[str, Any]]:
        """Fetch a record; None when the mirror has no such record."""
        async with self._client() as client:
            response = await client.get(f"/{collection}/{record_id}")
            if response.status_code == httpx.codes.NOT_FOUND:
                return None
            response.raise_for_status()
            return response.json()

    async def update_record(
        self,
        collection: str,
        record_id: str,
        fields: dict[str, Any],
    ) -> None:
        async with self._client() as client:
            response = await client.patch(f"/{collection}/{record_id}", json=fields)
            response.raise_for_status()
        logger.debug(
            "remote_mirror_updated",
            collection=collection,
            record_id=record_id,
            fields=sorted(fields),
        )
