from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from config.settings import Settings
from scribe.core.currency import (
    NGN_SYMBOL,
    NIGERIA_FLAG,
    country_flag,
    is_african,
    recommended_gateway,
)
from scribe.core.storage import MemoryStorage, StorageError
from scribe.models import LocationRecord
from scribe.tools.geolocation import GeoLocator, GeolocationError, build_default_providers


logger = logging.getLogger(__name__)

CACHE_KEY = "edu_sage_location_cache"
CACHE_EXPIRY_KEY = "edu_sage_location_cache_expiry"
CACHE_VALIDITY_HOURS = 2
NGN_EXCHANGE_RATE = 1530.0


class OutcomeKind(str, Enum):
    MEMORY = "memory"
    STORAGE = "storage"
    NETWORK = "network"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class LocationOutcome:
    """Where a location answer came from.

    ``get_location`` only hands back ``record``; callers that need to tell a
    cache hit from a failed fetch use ``LocationCache.resolve`` instead.
    """

    record: LocationRecord
    kind: OutcomeKind
    error: Optional[str] = None

    @property
    def from_cache(self) -> bool:
        return self.kind in (OutcomeKind.MEMORY, OutcomeKind.STORAGE)


def _now_ms(clock: Callable[[], float]) -> int:
    return int(clock() * 1000)


def normalize_location(
    raw: Dict[str, Any],
    client_timezone: Optional[str] = None,
    ngn_rate: float = NGN_EXCHANGE_RATE,
) -> LocationRecord:
    country_code = str(raw.get("countryCode") or "").lower()
    country = str(raw.get("country") or "")
    city = str(raw.get("city") or "")
    timezone = str(raw.get("timezone") or "")

    is_nigeria = (
        country_code == "ng"
        or "nigeria" in country.lower()
        or "lagos" in city.lower()
        or "Lagos" in timezone
        or raw.get("flag") == NIGERIA_FLAG
    )
    lagos_clock = "Africa/Lagos" in (client_timezone or "")

    currency = str(raw.get("currency") or "usd").lower()
    symbol = str(raw.get("symbol") or "$")
    exchange_rate = float(raw.get("exchangeRate") or 1)

    if is_nigeria or lagos_clock or currency == "ngn":
        currency = "ngn"
        symbol = NGN_SYMBOL
        exchange_rate = ngn_rate

    if is_nigeria:
        country, country_code, city, flag = "Nigeria", "ng", "Lagos", NIGERIA_FLAG
    else:
        flag = raw.get("flag") or country_flag(country_code)

    return LocationRecord(
        country=country or "Unknown",
        countryCode=country_code,
        city=city or None,
        region=raw.get("region"),
        timezone=timezone or None,
        currency=currency,
        symbol=symbol,
        exchangeRate=exchange_rate,
        flag=flag,
        displayName=", ".join(part for part in (city, country) if part) or None,
        isAfrican=is_nigeria or bool(raw.get("isAfrican")) or is_african(country_code),
        recommendedGateway=recommended_gateway(currency),
        recommendedCurrency=currency,
        detectionMethod=raw.get("detectionMethod") or "api",
        ip=raw.get("ip"),
    )


def fallback_record(timestamp: Optional[int] = None, ngn_rate: float = NGN_EXCHANGE_RATE) -> LocationRecord:
    return LocationRecord(
        country="Nigeria",
        countryCode="ng",
        city="Lagos",
        region="Lagos State",
        timezone="Africa/Lagos",
        currency="ngn",
        symbol=NGN_SYMBOL,
        exchangeRate=ngn_rate,
        flag=NIGERIA_FLAG,
        displayName="Lagos, Nigeria",
        isAfrican=True,
        recommendedGateway="paystack",
        recommendedCurrency="ngn",
        detectionMethod="fallback",
        timestamp=timestamp,
    )


class LocationCache:
    """Two-layer cache (memory, then storage) in front of a ``GeoLocator``.

    Concurrent callers share one in-flight lookup. A failed lookup resolves to
    the Lagos fallback record and is never raised to the caller; the fallback
    is not cached so the next call tries the network again.
    """

    def __init__(
        self,
        storage: MemoryStorage,
        locator: GeoLocator,
        validity_hours: float = CACHE_VALIDITY_HOURS,
        ngn_rate: float = NGN_EXCHANGE_RATE,
        client_timezone: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.storage = storage
        self.locator = locator
        self.validity_ms = int(validity_hours * 60 * 60 * 1000)
        self.ngn_rate = ngn_rate
        self.client_timezone = client_timezone
        self._clock = clock
        self._memory: Optional[LocationRecord] = None
        self._memory_expiry = 0
        self._inflight: Optional[asyncio.Future] = None

    @classmethod
    def from_settings(cls, settings: Settings, storage: MemoryStorage, transport=None) -> "LocationCache":
        locator = GeoLocator(
            build_default_providers(settings),
            timeout=settings.location_request_timeout,
            transport=transport,
        )
        return cls(
            storage,
            locator,
            validity_hours=settings.location_cache_hours,
            ngn_rate=settings.ngn_exchange_rate,
            client_timezone=settings.client_timezone,
        )

    def get_cached(self) -> Optional[LocationOutcome]:
        now = _now_ms(self._clock)
        if self._memory is not None and now < self._memory_expiry:
            return LocationOutcome(self._memory, OutcomeKind.MEMORY)

        try:
            payload = self.storage.get_item(CACHE_KEY)
            expiry = self.storage.get_item(CACHE_EXPIRY_KEY)
        except StorageError as exc:
            logger.warning("Location cache unavailable: %s", exc)
            return None
        if not payload or not expiry:
            return None

        try:
            expires_at = int(expiry)
            if now >= expires_at:
                return None
            record = LocationRecord.model_validate_json(payload)
        except ValueError as exc:
            logger.warning("Discarding corrupt location cache entry: %s", exc)
            return None

        self._memory = record
        self._memory_expiry = expires_at
        remaining = round((expires_at - now) / 60000)
        logger.debug("Location cache hit from storage, %s minutes remaining", remaining)
        return LocationOutcome(record, OutcomeKind.STORAGE)

    def set_cached(self, record: LocationRecord) -> LocationRecord:
        now = _now_ms(self._clock)
        expires_at = now + self.validity_ms
        stamped = record.model_copy(update={"timestamp": now})

        self._memory = stamped
        self._memory_expiry = expires_at
        try:
            self.storage.set_item(CACHE_KEY, stamped.model_dump_json(by_alias=True))
            self.storage.set_item(CACHE_EXPIRY_KEY, str(expires_at))
        except StorageError as exc:
            logger.warning("Could not persist location cache, keeping it in memory: %s", exc)
        return stamped

    def clear_cache(self) -> None:
        self._memory = None
        self._memory_expiry = 0
        try:
            self.storage.remove_item(CACHE_KEY)
            self.storage.remove_item(CACHE_EXPIRY_KEY)
        except StorageError as exc:
            logger.warning("Could not clear persisted location cache: %s", exc)

    async def get_location(self, force_refresh: bool = False) -> LocationRecord:
        outcome = await self.resolve(force_refresh=force_refresh)
        return outcome.record

    async def resolve(self, force_refresh: bool = False) -> LocationOutcome:
        if force_refresh:
            self.clear_cache()
            task = self._start_fetch()
        else:
            cached = self.get_cached()
            if cached is not None:
                return cached
            task = self._inflight if self._inflight is not None else self._start_fetch()
        # shield: one caller being cancelled must not cancel the shared lookup
        return await asyncio.shield(task)

    def _start_fetch(self) -> asyncio.Future:
        task = asyncio.ensure_future(self._fetch_and_store())
        self._inflight = task
        task.add_done_callback(self._release)
        return task

    def _release(self, task: asyncio.Future) -> None:
        if self._inflight is task:
            self._inflight = None

    async def _fetch_and_store(self) -> LocationOutcome:
        try:
            raw = await self.locator.lookup()
            record = normalize_location(raw, self.client_timezone, self.ngn_rate)
        except (GeolocationError, ValueError, TypeError) as exc:
            logger.error("Location detection failed, using Lagos fallback: %s", exc)
            record = fallback_record(_now_ms(self._clock), self.ngn_rate)
            return LocationOutcome(record, OutcomeKind.FALLBACK, error=str(exc))

        if asyncio.current_task() is not self._inflight:
            # superseded by a forced refresh; only the newest lookup writes the cache
            logger.info("Discarding superseded location lookup for %s", record.country_code)
            return LocationOutcome(record, OutcomeKind.NETWORK)

        record = self.set_cached(record)
        logger.info(
            "Location cached: %s (%s) currency=%s gateway=%s",
            record.display_name,
            record.country_code,
            record.currency,
            record.recommended_gateway,
        )
        return LocationOutcome(record, OutcomeKind.NETWORK)
