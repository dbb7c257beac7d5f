import logging

from django.conf import settings
from django.core.cache import cache
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from flights.providers import get_flight_provider
from flights.providers.base import ProviderError
from flights.serializers import (
    FilterStateSerializer,
    FlightOfferSerializer,
    FlightSearchRequestSerializer,
    FlightSearchSerializer,
    PriceGridRequestSerializer,
    PriceGridSerializer,
    PriceSeriesRequestSerializer,
    PriceSeriesSerializer,
    merge_filter_state,
)
from flights.services import metrics
from flights.services.calendar import BuildGeneration, CalendarAggregator, apply_filtered_prices
from flights.services.filters import default_filter_state, filter_offers
from flights.services.recent_searches import RECENT_SEARCHES_KEY, RecentSearchLog
from flights.services.search import filter_and_rank, search

logger = logging.getLogger(__name__)

CLIENT_ID_HEADER = "X-Client-Id"
SUPERSEDED_MESSAGE = "Superseded by a newer price build."


def _client_id(request, fallback=None):
    return (request.headers.get(CLIENT_ID_HEADER) or fallback or "").strip() or None


def get_recent_search_log(request) -> RecentSearchLog | None:
    """The calling client's log; anonymous callers have none."""
    client_id = _client_id(request)
    if not client_id:
        return None
    return RecentSearchLog(cache, key=f"{RECENT_SEARCHES_KEY}:{client_id}")


def _provider_unavailable(exc: ProviderError) -> Response:
    logger.error("Flight provider unavailable", extra={"status_code": exc.status_code})
    return Response({"message": str(exc)}, status=exc.status_code or status.HTTP_502_BAD_GATEWAY)


def _build_generation(kind: str, client_id: str | None) -> BuildGeneration:
    # Without a client id every build is independent and never superseded.
    if not client_id:
        return BuildGeneration()
    return BuildGeneration(store=cache, key=f"flights:calendar:generation:{kind}:{client_id}")


class HealthView(APIView):
    def get(self, request):
        return Response({"status": "ok"})


class FlightSearchView(APIView):
    def post(self, request):
        serializer = FlightSearchRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        params = serializer.validated_data
        query = serializer.to_query()

        try:
            provider = get_flight_provider()
        except ProviderError as exc:
            return _provider_unavailable(exc)

        errors: list[ProviderError] = []
        offers = search(
            query,
            provider,
            max_results=getattr(settings, "FLIGHTS_SEARCH_MAX_RESULTS", 50),
            on_error=errors.append,
        )
        recent = get_recent_search_log(request)
        if recent is not None and not errors:
            recent.add(query)

        defaults = default_filter_state(offers)
        applied = merge_filter_state(defaults, params.get("filters"))
        visible = filter_and_rank(offers, applied, params["sort"])

        limit = params.get("limit")
        if limit:
            visible = visible[:limit]

        prices = [metrics.price_of(o) for o in offers]
        meta = {
            "minPrice": min(prices) if prices else None,
            "maxPrice": max(prices) if prices else None,
            "airlines": [{"code": code, "name": code} for code in metrics.unique_airlines(offers)],
            "stopsCounts": metrics.stops_breakdown(offers),
            "connectingAirports": metrics.all_connecting_airports(offers),
            "defaultFilters": FilterStateSerializer(defaults).data,
            "appliedFilters": FilterStateSerializer(applied).data,
            "sort": params["sort"],
            "totalOffers": len(offers),
            "visibleOffers": len(visible),
            "error": "Flight search failed." if errors else None,
        }

        return Response(
            {
                "query": FlightSearchSerializer(query).data,
                "offers": FlightOfferSerializer(visible, many=True).data,
                "meta": meta,
            }
        )


class PriceSeriesView(APIView):
    def post(self, request):
        serializer = PriceSeriesRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        params = serializer.validated_data
        query = serializer.to_query()
        client_id = _client_id(request, params.get("client_id"))

        try:
            provider = get_flight_provider()
        except ProviderError as exc:
            return _provider_unavailable(exc)

        aggregator = CalendarAggregator(provider, generation=_build_generation("series", client_id))
        series = aggregator.build_price_series(query, trip_duration_days=params.get("trip_duration_days"))
        if series is None:
            return Response({"message": SUPERSEDED_MESSAGE}, status=status.HTTP_409_CONFLICT)

        if params.get("filters"):
            offers = search(query, provider)
            state = merge_filter_state(default_filter_state(offers), params["filters"])
            filtered = filter_offers(offers, state)
            if offers and len(filtered) != len(offers):
                series = apply_filtered_prices(series, filtered)

        return Response(
            {
                "query": FlightSearchSerializer(query).data,
                "data": PriceSeriesSerializer(series).data,
            }
        )


class PriceGridView(APIView):
    def post(self, request):
        serializer = PriceGridRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        params = serializer.validated_data
        query = serializer.to_query()
        client_id = _client_id(request, params.get("client_id"))

        try:
            provider = get_flight_provider()
        except ProviderError as exc:
            return _provider_unavailable(exc)

        aggregator = CalendarAggregator(provider, generation=_build_generation("grid", client_id))
        grid = aggregator.build_price_grid(
            query,
            col_offset=params["col_offset"],
            row_offset=params["row_offset"],
        )
        if grid is None:
            return Response({"message": SUPERSEDED_MESSAGE}, status=status.HTTP_409_CONFLICT)

        return Response(
            {
                "query": FlightSearchSerializer(query).data,
                "data": PriceGridSerializer(grid).data,
            }
        )


class RecentSearchesView(APIView):
    def get(self, request):
        recent = get_recent_search_log(request)
        return Response({"data": recent.entries() if recent is not None else []})

    def delete(self, request):
        recent = get_recent_search_log(request)
        if recent is not None:
            recent.clear()
        return Response(status=status.HTTP_204_NO_CONTENT)
