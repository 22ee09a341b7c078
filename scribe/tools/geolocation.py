from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx

from config.settings import Settings
from scribe.core.currency import currency_for_country, currency_symbol


logger = logging.getLogger(__name__)

RAW_KEYS = (
    "country",
    "countryCode",
    "city",
    "region",
    "timezone",
    "currency",
    "symbol",
    "exchangeRate",
    "ip",
)

Adapter = Callable[[Dict[str, Any]], Dict[str, Any]]


class GeolocationError(RuntimeError):
    """Raised when no provider returned usable location data."""


@dataclass(frozen=True)
class GeoProvider:
    name: str
    url: str
    adapter: Adapter


def _with_currency(raw: Dict[str, Any]) -> Dict[str, Any]:
    code = (raw.get("countryCode") or "").lower()
    currency, rate = currency_for_country(code)
    raw["countryCode"] = code
    raw["currency"] = currency
    raw["symbol"] = currency_symbol(currency)
    raw["exchangeRate"] = rate
    return raw


def _adapt_backend(data: Dict[str, Any]) -> Dict[str, Any]:
    # The ThinqScribe backend nests its answer under "location"/"currency" on
    # some routes and returns the flat shape on others.
    location = data.get("location") if isinstance(data.get("location"), dict) else data
    raw = {key: location.get(key) for key in RAW_KEYS}
    currency = data.get("currency")
    if isinstance(currency, dict):
        raw["currency"] = currency.get("code")
        raw["symbol"] = currency.get("symbol")
        raw["exchangeRate"] = currency.get("exchangeRate")
    if raw.get("countryCode"):
        raw["countryCode"] = str(raw["countryCode"]).lower()
    return raw


def _adapt_ipapi(data: Dict[str, Any]) -> Dict[str, Any]:
    return _with_currency({
        "country": data.get("country_name"),
        "countryCode": data.get("country_code"),
        "city": data.get("city"),
        "region": data.get("region"),
        "timezone": data.get("timezone"),
        "ip": data.get("ip"),
    })


def _adapt_ipinfo(data: Dict[str, Any]) -> Dict[str, Any]:
    return _with_currency({
        "country": data.get("country"),
        "countryCode": data.get("country"),
        "city": data.get("city"),
        "region": data.get("region"),
        "timezone": data.get("timezone"),
        "ip": data.get("ip"),
    })


def _adapt_ip_api(data: Dict[str, Any]) -> Dict[str, Any]:
    return _with_currency({
        "country": data.get("country"),
        "countryCode": data.get("countryCode"),
        "city": data.get("city"),
        "region": data.get("regionName"),
        "timezone": data.get("timezone"),
        "ip": data.get("query"),
    })


EXTERNAL_PROVIDERS: Dict[str, GeoProvider] = {
    "ipapi.co": GeoProvider("ipapi.co", "https://ipapi.co/json/", _adapt_ipapi),
    "ipinfo.io": GeoProvider("ipinfo.io", "https://ipinfo.io/json", _adapt_ipinfo),
    "ip-api.com": GeoProvider("ip-api.com", "http://ip-api.com/json/", _adapt_ip_api),
}


def backend_provider(url: str) -> GeoProvider:
    return GeoProvider("backend", url, _adapt_backend)


def build_default_providers(settings: Settings) -> List[GeoProvider]:
    providers: List[GeoProvider] = []
    if settings.location_api_url:
        providers.append(backend_provider(settings.location_api_url))
    for name in settings.location_external_providers:
        provider = EXTERNAL_PROVIDERS.get(name)
        if provider is None:
            logger.warning("Unknown location provider %r ignored", name)
            continue
        providers.append(provider)
    return providers


class GeoLocator:
    """Looks up the caller's location from the first provider that answers.

    Each provider gets exactly one request; there is no retry loop.
    """

    def __init__(
        self,
        providers: Sequence[GeoProvider],
        timeout: float = 8.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not providers:
            raise ValueError("GeoLocator needs at least one provider")
        self.providers = list(providers)
        self.timeout = timeout
        self._transport = transport

    async def _fetch(self, client: httpx.AsyncClient, provider: GeoProvider) -> Dict[str, Any]:
        try:
            response = await client.get(
                provider.url,
                headers={"Accept": "application/json", "Cache-Control": "no-cache"},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            raise GeolocationError(f"{provider.name} request failed: {exc}") from exc
        except ValueError as exc:
            raise GeolocationError(f"{provider.name} returned invalid JSON: {exc}") from exc

        if not isinstance(data, dict):
            raise GeolocationError(f"{provider.name} returned {type(data).__name__}, expected object")

        raw = provider.adapter(data)
        if not raw.get("countryCode"):
            raise GeolocationError(f"{provider.name} response has no country code")
        raw["detectionMethod"] = (
            "api" if provider.name == "backend" else f"external-{provider.name}"
        )
        return raw

    async def lookup(self) -> Dict[str, Any]:
        errors: List[str] = []
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            for provider in self.providers:
                try:
                    raw = await self._fetch(client, provider)
                except GeolocationError as exc:
                    logger.warning("Location provider failed: %s", exc)
                    errors.append(str(exc))
                    continue
                logger.info(
                    "Location resolved via %s: country=%s city=%s",
                    provider.name,
                    raw.get("countryCode"),
                    raw.get("city"),
                )
                return raw
        raise GeolocationError("All location providers failed: " + "; ".join(errors))
