"""HTTP client for the remote ad service: permissions check and ad fetch."""

from __future__ import annotations

from typing import Any, Dict, FrozenSet, Optional, Protocol

import httpx

from yuugen.config import SDKConfig
from yuugen.errors import AdServingError, ErrorCode, SDKIntegrationError
from yuugen.models import Ad, AdPlacement, AIContext
from yuugen.serialization import to_jsonable

SDK_VERSION = "1.0.0"

DEFAULT_BASE_URLS = {
    "development": "https://dev-api.ai-yuugen.com",
    "staging": "https://staging-api.ai-yuugen.com",
    "production": "https://api.ai-yuugen.com",
}


class AdService(Protocol):
    """What the SDK facade needs from the remote side."""

    async def check_permissions(self, config: SDKConfig) -> FrozenSet[str]: ...

    async def fetch_ad(self, config: SDKConfig, placement: AdPlacement, context: AIContext) -> Ad: ...

    async def aclose(self) -> None: ...


def base_url_for(config: SDKConfig) -> str:
    if config.base_url:
        return config.base_url.rstrip("/")
    return DEFAULT_BASE_URLS.get(config.environment, DEFAULT_BASE_URLS["production"])


class AdServiceClient:
    """
    ``httpx`` implementation of ``AdService``.

    Authorization failures are raised as non-retryable classified errors so
    the retry engine surfaces them immediately; any other failure propagates
    as an ``httpx`` exception and is retried.
    """

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None) -> None:
        self._client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    @staticmethod
    def _headers(config: SDKConfig) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {config.api_key}",
            "User-Agent": f"yuugen-sdk/{SDK_VERSION}",
        }

    async def check_permissions(self, config: SDKConfig) -> FrozenSet[str]:
        response = await self._get_client().post(
            f"{base_url_for(config)}/auth/validate",
            json={"environment": config.environment, "sdkVersion": SDK_VERSION},
            headers=self._headers(config),
            timeout=config.timeout,
        )
        if response.status_code == 401:
            raise SDKIntegrationError(
                "Invalid API key provided. Please check your API key and try again.",
                ErrorCode.INVALID_API_KEY,
            )
        if response.status_code == 403:
            raise SDKIntegrationError(
                "API key does not have sufficient permissions for this environment.",
                ErrorCode.INSUFFICIENT_PERMISSIONS,
            )
        response.raise_for_status()
        data = _json_body(response)
        return frozenset(str(p) for p in data.get("permissions", []))

    async def fetch_ad(self, config: SDKConfig, placement: AdPlacement, context: AIContext) -> Ad:
        response = await self._get_client().post(
            f"{base_url_for(config)}/ads/request",
            json={
                "placement": {"id": placement.id, "format": placement.format, "size": placement.size},
                "context": to_jsonable(context) if context is not None else {},
            },
            headers=self._headers(config),
            timeout=config.timeout,
        )
        if response.status_code == 404:
            raise AdServingError(
                f"Placement '{placement.id}' was not found",
                ErrorCode.PLACEMENT_NOT_FOUND,
                retryable=False,
            )
        response.raise_for_status()
        data = _json_body(response)
        ad_data = data.get("ad", data)
        if not ad_data or "content" not in ad_data:
            raise AdServingError(
                f"Ad service returned no ad for placement '{placement.id}'",
                ErrorCode.AD_SERVING_FAILED,
                retryable=False,
            )
        return Ad.from_dict(ad_data)

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None


def _json_body(response: httpx.Response) -> Dict[str, Any]:
    if not response.content:
        return {}
    data = response.json()
    return data if isinstance(data, dict) else {}
