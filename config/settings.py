from __future__ import annotations

import os
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv


load_dotenv()


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings:
    """Application settings loaded from environment variables.

    Keep all endpoints, cache windows and storage locations centralized here.
    """

    app_env: str = os.getenv("APP_ENV", "development")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    location_api_url: Optional[str] = os.getenv("LOCATION_API_URL") or None
    location_external_providers: List[str] = _split_list(
        os.getenv("LOCATION_EXTERNAL_PROVIDERS", "ipapi.co,ipinfo.io,ip-api.com")
    )
    location_request_timeout: float = float(os.getenv("LOCATION_REQUEST_TIMEOUT", "8.0"))
    location_cache_hours: float = float(os.getenv("LOCATION_CACHE_HOURS", "2"))
    ngn_exchange_rate: float = float(os.getenv("NGN_EXCHANGE_RATE", "1530"))
    client_timezone: Optional[str] = os.getenv("CLIENT_TIMEZONE") or os.getenv("TZ") or None

    storage_path: Optional[str] = os.getenv("STORAGE_PATH") or None
    storage_quota_bytes: Optional[int] = (
        int(os.environ["STORAGE_QUOTA_BYTES"]) if os.getenv("STORAGE_QUOTA_BYTES") else None
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
