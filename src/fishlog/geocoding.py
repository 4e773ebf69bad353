"""Best-effort bridging between place names and coordinates."""

from __future__ import annotations

import asyncio
from typing import Any, Protocol

import httpx

from fishlog.config import GeocoderConfig
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "geocoding"})

DEFAULT_TIMEOUT_SECONDS = 5.0


class Geocoder(Protocol):
    """Forward and reverse geocoding service."""

    async def forward(self, text: str) -> tuple[float, float] | None: ...

    async def reverse(self, latitude: float, longitude: float) -> str | None: ...


class NullGeocoder:
    """Geocoder used when lookups are disabled; resolves nothing."""

    async def forward(self, text: str) -> tuple[float, float] | None:
        return None

    async def reverse(self, latitude: float, longitude: float) -> str | None:
        return None


def format_address(address: dict[str, Any]) -> str | None:
    """Render a Nominatim address block as ``"locality, region, country"``."""

    locality = address.get("city") or address.get("town") or address.get("village") or address.get("hamlet")
    parts = [part for part in (locality, address.get("state"), address.get("country")) if part]
    if not parts:
        return None
    return ", ".join(str(part) for part in parts)


class NominatimGeocoder:
    """Geocoder backed by an OpenStreetMap Nominatim compatible HTTP API."""

    def __init__(
        self,
        base_url: str = "https://nominatim.openstreetmap.org",
        *,
        user_agent: str = "fishlog/0.1",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": user_agent, "Accept": "application/json"},
        )

    @classmethod
    def from_config(cls, config: GeocoderConfig) -> "NominatimGeocoder":
        return cls(config.base_url, user_agent=config.user_agent, timeout=config.timeout_seconds)

    async def __aenter__(self) -> "NominatimGeocoder":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def forward(self, text: str) -> tuple[float, float] | None:
        response = await self._client.get(
            f"{self._base_url}/search",
            params={"q": text, "format": "jsonv2", "limit": 1},
        )
        response.raise_for_status()
        results = response.json()
        if not results:
            return None
        first = results[0]
        return float(first["lat"]), float(first["lon"])

    async def reverse(self, latitude: float, longitude: float) -> str | None:
        response = await self._client.get(
            f"{self._base_url}/reverse",
            params={"lat": latitude, "lon": longitude, "format": "jsonv2"},
        )
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict) or "error" in payload:
            return None
        return format_address(payload.get("address") or {}) or payload.get("display_name")


class CoordinateResolver:
    """Fills in coordinates or place names through a geocoder, never blocking ingestion.

    Every lookup is bounded by ``timeout`` seconds. A timeout, an HTTP error
    or any other failure of the geocoder is logged and treated as "no result".
    """

    def __init__(self, geocoder: Geocoder, *, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        if timeout <= 0:
            raise ValueError("geocoder timeout must be positive")
        self._geocoder = geocoder
        self._timeout = timeout

    @property
    def timeout(self) -> float:
        return self._timeout

    async def resolve(
        self,
        latitude: float | None,
        longitude: float | None,
        location_text: str,
    ) -> tuple[float | None, float | None]:
        """Return existing coordinates, or forward-geocode ``location_text``."""

        if latitude is not None and longitude is not None:
            return latitude, longitude

        text = location_text.strip()
        if not text:
            return None, None

        try:
            result = await asyncio.wait_for(self._geocoder.forward(text), timeout=self._timeout)
        except asyncio.TimeoutError:
            LOGGER.warning("geocode_timeout", extra={"direction": "forward", "timeout": self._timeout})
            return None, None
        except Exception as exc:
            LOGGER.warning("geocode_failed", extra={"direction": "forward", "error": str(exc)})
            return None, None

        if result is None:
            LOGGER.info("geocode_no_result", extra={"direction": "forward", "query": text})
            return None, None
        return result

    async def describe(self, latitude: float | None, longitude: float | None) -> str | None:
        """Reverse-geocode coordinates into a place name, or None."""

        if latitude is None or longitude is None:
            return None

        try:
            text = await asyncio.wait_for(self._geocoder.reverse(latitude, longitude), timeout=self._timeout)
        except asyncio.TimeoutError:
            LOGGER.warning("geocode_timeout", extra={"direction": "reverse", "timeout": self._timeout})
            return None
        except Exception as exc:
            LOGGER.warning("geocode_failed", extra={"direction": "reverse", "error": str(exc)})
            return None

        return text or None


__all__ = [
    "CoordinateResolver",
    "DEFAULT_TIMEOUT_SECONDS",
    "Geocoder",
    "NominatimGeocoder",
    "NullGeocoder",
    "format_address",
]
