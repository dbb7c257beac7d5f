import hashlib
import json
import logging
import time

import requests
from django.conf import settings
from django.core.cache import cache

from flights.providers.base import FlightProvider, ProviderError

logger = logging.getLogger(__name__)

# Amadeus Self-Service (test environment unless AMADEUS_BASE_URL says otherwise)

DEFAULT_BASE_URL = "https://test.api.amadeus.com"
TOKEN_PATH = "/v1/security/oauth2/token"
FLIGHT_OFFERS_PATH = "/v2/shopping/flight-offers"
LOCATIONS_PATH = "/v1/reference-data/locations"

# Refresh the token this many seconds before the provider says it expires.
TOKEN_EXPIRY_MARGIN = 60

RESPONSE_CACHE_TTL = 60 * 5
AIRPORTS_CACHE_TTL = 60 * 60

MAX_RESULTS_LIMIT = 250


def _cache_key(prefix: str, payload: dict) -> str:
    """Stable cache key for request payloads."""
    try:
        raw = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    except TypeError:
        raw = str(payload)
    digest = hashlib.sha1(raw.encode("utf-8")).hexdigest()
    return f"{prefix}:{digest}"


def _build_headers(token: str) -> dict:
    return {
        "Accept": "application/vnd.amadeus+json",
        "Authorization": f"Bearer {token}",
    }


def _clamp_max_results(value) -> int | None:
    try:
        value = int(value) if value is not None else None
    except (TypeError, ValueError):
        return None
    if not value:
        return None
    return max(1, min(value, MAX_RESULTS_LIMIT))


def _error_details(response) -> dict:
    try:
        return response.json()
    except ValueError:
        return {"error": response.text}


def _request_json(url: str, *, query: dict, headers: dict, timeout: int = 25) -> dict:
    try:
        response = requests.get(url, params=query, headers=headers, timeout=timeout)
    except requests.RequestException as exc:
        logger.exception("Amadeus request failed.")
        raise ProviderError(
            "Amadeus request failed.",
            status_code=502,
            details={"error": str(exc)},
        )

    if response.status_code >= 400:
        details = _error_details(response)
        logger.warning(
            "Amadeus error response",
            extra={"status_code": response.status_code, "details": details},
        )
        raise ProviderError(
            "Amadeus returned an error.",
            status_code=response.status_code,
            details=details,
        )

    try:
        return response.json()
    except ValueError:
        raise ProviderError("Amadeus response was not valid JSON.")


class AccessTokenCache:
    """OAuth client-credentials token holder.

    One instance is shared by every provider in the process (see
    ``flights.providers.get_token_cache``). The token is fetched lazily on first
    use and again once ``expires_in`` (minus ``TOKEN_EXPIRY_MARGIN``) has passed.
    Concurrent refreshes are not de-duplicated.
    """

    def __init__(self, client_id=None, client_secret=None, base_url=None, clock=time.time, timeout=15):
        self.client_id = client_id
        self.client_secret = client_secret
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.clock = clock
        self.timeout = timeout
        self._token: str | None = None
        self._expires_at: float = 0.0

    @property
    def is_valid(self) -> bool:
        return bool(self._token) and self._expires_at > self.clock()

    def invalidate(self) -> None:
        self._token = None
        self._expires_at = 0.0

    def get_token(self) -> str:
        if self.is_valid:
            return self._token

        if not self.client_id or not self.client_secret:
            raise ProviderError("Amadeus API credentials are not configured.", status_code=500)

        now = self.clock()
        try:
            response = requests.post(
                self.base_url + TOKEN_PATH,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.exception("Amadeus token request failed.")
            raise ProviderError(
                "Failed to get Amadeus token.",
                status_code=502,
                details={"error": str(exc)},
            )

        if response.status_code >= 400:
            raise ProviderError(
                "Failed to get Amadeus token.",
                status_code=response.status_code,
                details=_error_details(response),
            )

        try:
            payload = response.json()
        except ValueError:
            raise ProviderError("Amadeus token response was not valid JSON.")

        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not token:
            raise ProviderError("Amadeus token response did not include a token.")

        try:
            expires_in = float(payload.get("expires_in") or 0)
        except (TypeError, ValueError):
            expires_in = 0.0

        self._token = token
        self._expires_at = now + expires_in - TOKEN_EXPIRY_MARGIN
        logger.info("Amadeus access token refreshed", extra={"expires_in": expires_in})
        return token


class AmadeusProvider(FlightProvider):
    def __init__(self, token_cache: AccessTokenCache, base_url=None, use_cache=True):
        self.token_cache = token_cache
        self.base_url = (base_url or token_cache.base_url).rstrip("/")
        self.use_cache = use_cache

    def _get(self, path: str, query: dict, cache_prefix: str, ttl: int) -> dict:
        ck = _cache_key(cache_prefix, query)
        if self.use_cache:
            cached = cache.get(ck)
            if isinstance(cached, dict):
                return cached

        headers = _build_headers(self.token_cache.get_token())
        try:
            payload = _request_json(self.base_url + path, query=query, headers=headers)
        except ProviderError as exc:
            if exc.status_code == 401:
                # Token was revoked or expired early; next call fetches a new one.
                self.token_cache.invalidate()
            raise

        if not isinstance(payload, dict):
            payload = {}
        if self.use_cache:
            cache.set(ck, payload, timeout=ttl)
        return payload

    def search_offers(
        self,
        origin,
        destination,
        departure_date,
        return_date=None,
        adults=1,
        children=0,
        infants=0,
        cabin_class=None,
        currency=None,
        max_results=None,
    ) -> list[dict]:
        query = {
            "originLocationCode": origin,
            "destinationLocationCode": destination,
            "departureDate": str(departure_date),
            "adults": int(adults),
            "currencyCode": currency or getattr(settings, "DEFAULT_CURRENCY", "USD"),
        }

        max_results = _clamp_max_results(max_results)
        if max_results:
            query["max"] = max_results
        if return_date:
            query["returnDate"] = str(return_date)
        if children:
            query["children"] = int(children)
        if infants:
            query["infants"] = int(infants)
        if cabin_class:
            query["travelClass"] = cabin_class

        payload = self._get(
            FLIGHT_OFFERS_PATH,
            query,
            "flights:amadeus:offers",
            getattr(settings, "FLIGHTS_RESPONSE_CACHE_TTL", RESPONSE_CACHE_TTL),
        )
        data = payload.get("data")
        return [item for item in data if isinstance(item, dict)] if isinstance(data, list) else []

    def search_airports(self, keyword) -> list[dict]:
        payload = self._get(
            LOCATIONS_PATH,
            {"subType": "AIRPORT", "keyword": keyword},
            "flights:amadeus:airports",
            AIRPORTS_CACHE_TTL,
        )
        data = payload.get("data")
        return [item for item in data if isinstance(item, dict)] if isinstance(data, list) else []
