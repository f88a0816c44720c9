"""HTTP exporter submitting telemetry batches as JSON."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from yuugen.errors import ExportError


class HttpExporter:
    """
    Posts one JSON body per batch, shaped ``{payload_key: [entries...]}``.

    Any non-2xx response raises ``ExportError``; transport failures propagate
    as ``httpx`` exceptions. The pipeline decides what to do with either.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        api_key: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize HTTP exporter.

        Args:
            endpoint: URL receiving the batches
            api_key: Optional API key sent as a bearer token
            headers: Optional additional headers
            timeout: Request timeout in seconds
            client: Optional pre-built client (not closed on shutdown)
        """
        if not endpoint:
            raise ValueError("endpoint is required")
        export_headers = {"Content-Type": "application/json"}
        if headers:
            export_headers.update(headers)
        if api_key:
            export_headers["Authorization"] = f"Bearer {api_key}"

        self.endpoint = endpoint
        self.headers = export_headers
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def export(self, payload_key: str, entries: List[Dict[str, Any]]) -> None:
        if not entries:
            return
        response = await self._get_client().post(
            self.endpoint,
            json={payload_key: entries},
            headers=self.headers,
        )
        if response.is_error:
            raise ExportError(
                f"Telemetry submission failed: {response.status_code} {response.reason_phrase}",
                {"endpoint": self.endpoint, "entries": len(entries)},
            )

    async def shutdown(self) -> None:
        """Close the underlying client if this exporter created it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
