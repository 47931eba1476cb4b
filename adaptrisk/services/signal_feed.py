"""
Signal Feed — current values of live signals.

The feed is external. If it is down, refresh keeps working on the updates it
already has (graceful degradation): HttpSignalFeed returns an empty mapping
after its retries are exhausted.

Accepted response bodies:
    {"values": {"fx_usd": 1.08, ...}}
    {"data": {"values": {...}}}
    [{"signal_id": "fx_usd", "value": 1.08}, ...]
"""

from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional

import httpx
import structlog

from adaptrisk.config import settings
from adaptrisk.services.resilience import retry_with_backoff

logger = structlog.get_logger(__name__)


class SignalFeed(ABC):
    @abstractmethod
    async def fetch_values(self, signal_ids: Iterable[str]) -> dict[str, float]:
        """Latest value per requested signal id. Unknown ids are omitted."""


class StaticSignalFeed(SignalFeed):
    """Feed backed by an in-process mapping (tests, manual input)."""

    def __init__(self, values: Optional[dict[str, float]] = None):
        self.values: dict[str, float] = dict(values or {})

    def set_value(self, signal_id: str, value: float) -> None:
        self.values[signal_id] = value

    async def fetch_values(self, signal_ids: Iterable[str]) -> dict[str, float]:
        return {sid: self.values[sid] for sid in signal_ids if sid in self.values}


def _extract_values(body: Any) -> dict[str, float]:
    if isinstance(body, list):
        return {
            str(item["signal_id"]): float(item["value"])
            for item in body
            if isinstance(item, dict) and "signal_id" in item and item.get("value") is not None
        }
    if isinstance(body, dict):
        if "data" in body:
            return _extract_values(body["data"])
        values = body.get("values")
        if isinstance(values, dict):
            return {str(k): float(v) for k, v in values.items() if v is not None}
        if isinstance(values, list):
            return _extract_values(values)
    return {}


class HttpSignalFeed(SignalFeed):
    """
    HTTP client for the signal value service.

    GET {base_url}/api/v1/signals/values?ids=a,b,c
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        base_delay: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout if timeout is not None else settings.signal_feed_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.signal_feed_retry_attempts
        self.base_delay = base_delay
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            headers=headers,
            transport=self._transport,
        )

    async def fetch_values(self, signal_ids: Iterable[str]) -> dict[str, float]:
        ids = sorted(set(signal_ids))
        if not ids:
            return {}

        async def _fetch() -> dict[str, float]:
            async with self._client() as client:
                resp = await client.get(
                    f"{self.base_url}/api/v1/signals/values",
                    params={"ids": ",".join(ids)},
                )
                resp.raise_for_status()
                return _extract_values(resp.json())

        try:
            values = await retry_with_backoff(
                _fetch,
                max_retries=self.max_retries,
                base_delay=self.base_delay,
                jitter=0.0 if self.base_delay == 0 else 0.5,
                retry_on=(httpx.HTTPError,),
                operation_name="signal_feed_fetch",
            )
        except httpx.HTTPError as e:
            logger.warning("signal_feed_unavailable", error=str(e), requested=len(ids))
            return {}

        wanted = set(ids)
        values = {k: v for k, v in values.items() if k in wanted}
        logger.info("signal_values_fetched", requested=len(ids), received=len(values))
        return values
