from functools import lru_cache

from django.conf import settings

from flights.providers.amadeus import AccessTokenCache, AmadeusProvider
from flights.providers.base import ProviderError


@lru_cache(maxsize=1)
def get_token_cache() -> AccessTokenCache:
    """The process-wide Amadeus token holder, created on first use."""

    return AccessTokenCache(
        client_id=getattr(settings, "AMADEUS_CLIENT_ID", None),
        client_secret=getattr(settings, "AMADEUS_CLIENT_SECRET", None),
        base_url=getattr(settings, "AMADEUS_BASE_URL", None),
    )


def get_flight_provider():
    """Return the configured flight provider instance."""

    raw_name = getattr(settings, "FLIGHTS_PROVIDER", None) or "amadeus"
    provider_name = str(raw_name).strip().lower()

    aliases = {
        "amadeus": "amadeus",
        "amadeus-test": "amadeus",
        "gds": "amadeus",
    }

    provider_name = aliases.get(provider_name, provider_name)

    if provider_name == "amadeus":
        return AmadeusProvider(token_cache=get_token_cache())

    raise ProviderError(f"Unknown flights provider: {provider_name}", status_code=500)
