from scribe.tools.geolocation import GeoLocator, GeoProvider, GeolocationError, build_default_providers

__all__ = ["GeoLocator", "GeoProvider", "GeolocationError", "build_default_providers"]
