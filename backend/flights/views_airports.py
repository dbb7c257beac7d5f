from __future__ import annotations

import logging

from django.core.cache import cache
from django.http import JsonResponse
from django.views.decorators.http import require_GET

from flights.providers import get_flight_provider
from flights.providers.base import ProviderError
from flights.services.search import AIRPORT_RESULTS_LIMIT, QueryValidationError, search_airports

logger = logging.getLogger(__name__)

AIRPORTS_CACHE_PREFIX = "airports:search"
RESULTS_CACHE_TTL = 60 * 60


def _airport_result(airport) -> dict:
    label = f"{airport.city_name} ({airport.iata_code})" if airport.city_name else airport.iata_code
    return {
        "iataCode": airport.iata_code,
        "name": airport.name,
        "cityName": airport.city_name,
        "countryCode": airport.country_code,
        "label": label,
    }


@require_GET
def airports_search(request):
    keyword = (request.GET.get("keyword") or "").strip()
    exclude = (request.GET.get("exclude") or "").strip().upper() or None
    if not keyword:
        return JsonResponse({"error": "Keyword is required"}, status=400)

    raw_limit = request.GET.get("limit")
    try:
        limit = int(raw_limit) if raw_limit is not None else AIRPORT_RESULTS_LIMIT
    except (TypeError, ValueError):
        limit = AIRPORT_RESULTS_LIMIT
    limit = max(1, min(limit, 12))

    cache_key = f"{AIRPORTS_CACHE_PREFIX}:{keyword.lower()}:{exclude or ''}:{limit}"
    cached = cache.get(cache_key)
    if cached is not None:
        return JsonResponse({"keyword": keyword, "data": cached})

    try:
        airports = search_airports(keyword, get_flight_provider(), exclude=exclude, limit=limit)
    except QueryValidationError as exc:
        return JsonResponse({"error": str(exc)}, status=400)
    except ProviderError as exc:
        logger.warning("Airport search failed", extra={"keyword": keyword, "status_code": exc.status_code})
        return JsonResponse({"keyword": keyword, "data": [], "error": "Failed to search airports"}, status=502)

    results = [_airport_result(a) for a in airports]
    cache.set(cache_key, results, RESULTS_CACHE_TTL)
    return JsonResponse({"keyword": keyword, "data": results})
