"""HTTP transport for the Overpass, OSRM and Nominatim fetchers."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from pycitynav.config import CityNavConfig
from pycitynav.exceptions import DecodeError, NetworkError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by the fetcher modules.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (`HttpTransport`) concrete.
    """

    async def get_text(self, url: str, *, params: Mapping[str, str] | None = None) -> str:
        ...

    async def post_text(
        self,
        url: str,
        *,
        data: Mapping[str, str],
        params: Mapping[str, str] | None = None,
    ) -> str:
        ...


def decode_json(text: str, *, url: str) -> Any:
    """JSON-decode a response body, raising :class:`DecodeError` on failure."""
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"Invalid JSON from {url}: {text[:200]}") from exc


class HttpTransport:
    """aiohttp-backed transport with a bounded per-request timeout."""

    def __init__(self, config: CityNavConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)
        self._headers = {
            "accept": "application/json",
            "user-agent": config.user_agent,
        }

    async def get_text(self, url: str, *, params: Mapping[str, str] | None = None) -> str:
        return await self._request("GET", url, params=params)

    async def post_text(
        self,
        url: str,
        *,
        data: Mapping[str, str],
        params: Mapping[str, str] | None = None,
    ) -> str:
        return await self._request("POST", url, params=params, data=dict(data))

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: Mapping[str, str] | None = None,
        data: dict[str, str] | None = None,
    ) -> str:
        _logger.debug("%s %s params=%s", method, url, dict(params) if params else {})

        try:
            async with self._http.request(
                method,
                url,
                params=params,
                data=data,
                headers=self._headers,
                timeout=self._timeout,
            ) as resp:
                text = await resp.text()
                if resp.status < 200 or resp.status >= 300:
                    raise NetworkError(
                        f"HTTP {resp.status} from {url}: {text[:200]}",
                        status_code=resp.status,
                        url=url,
                        body=text[:200],
                    )
        except NetworkError:
            raise
        except asyncio.TimeoutError as exc:
            raise NetworkError(
                f"Request to {url} timed out after {self._config.request_timeout:g}s",
                url=url,
            ) from exc
        except aiohttp.ClientError as exc:
            raise NetworkError(f"Request to {url} failed: {exc}", url=url) from exc

        return text
