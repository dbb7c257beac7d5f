import logging
from typing import Callable, Sequence

from django.conf import settings

from flights.domain import Airport, FilterState, FlightOffer, SearchQuery
from flights.providers.base import FlightProvider, ProviderError
from flights.services.filters import filter_offers
from flights.services.normalize import normalize_airport, normalize_offers
from flights.services.ranking import ScoreBaseline, SortStrategy, rank_offers

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 50
AIRPORT_RESULTS_LIMIT = 8


class QueryValidationError(ValueError):
    def __init__(self, message, fields=None):
        super().__init__(message)
        self.fields = fields or []


def validate_query(query: SearchQuery) -> None:
    missing = []
    if not query.origin or not query.origin.iata_code:
        missing.append("origin")
    if not query.destination or not query.destination.iata_code:
        missing.append("destination")
    if not query.departure_date:
        missing.append("departureDate")
    if query.passengers is None or query.passengers.adults is None:
        missing.append("adults")
    if missing:
        raise QueryValidationError("Missing required parameters", fields=missing)


def search(
    query: SearchQuery,
    provider: FlightProvider,
    max_results: int = DEFAULT_MAX_RESULTS,
    on_error: Callable[[ProviderError], None] | None = None,
) -> list[FlightOffer]:
    """Primary offer search.

    Provider failures are logged and yield no offers; ``on_error`` is told
    about the failure so callers can surface it.
    """
    validate_query(query)

    passengers = query.passengers
    return_date = query.effective_return_date
    try:
        raw = provider.search_offers(
            origin=query.origin.iata_code,
            destination=query.destination.iata_code,
            departure_date=query.departure_date.isoformat(),
            return_date=return_date.isoformat() if return_date else None,
            adults=passengers.adults,
            children=passengers.children,
            infants=passengers.infants,
            cabin_class=query.cabin_class,
            currency=query.currency,
            max_results=max_results,
        )
    except ProviderError as exc:
        logger.error(
            "Flight search failed",
            extra={"status_code": exc.status_code, "details": exc.details},
        )
        if on_error is not None:
            on_error(exc)
        return []

    offers = normalize_offers(raw)
    logger.info(
        "Flight search completed",
        extra={
            "origin": query.origin.iata_code,
            "destination": query.destination.iata_code,
            "offers": len(offers),
        },
    )
    return offers


def filter_and_rank(
    offers: Sequence[FlightOffer],
    filter_state: FilterState,
    sort_strategy: SortStrategy | str = SortStrategy.BEST,
    baseline_policy: ScoreBaseline | str | None = None,
) -> list[FlightOffer]:
    if baseline_policy is None:
        baseline_policy = getattr(settings, "FLIGHTS_BEST_SCORE_BASELINE", ScoreBaseline.FILTERED)
    baseline = offers if ScoreBaseline(baseline_policy) == ScoreBaseline.ALL else None

    visible = filter_offers(offers, filter_state)
    return rank_offers(visible, sort_strategy, baseline=baseline)


def search_airports(
    keyword: str,
    provider: FlightProvider,
    exclude: str | None = None,
    limit: int = AIRPORT_RESULTS_LIMIT,
) -> list[Airport]:
    keyword = (keyword or "").strip()
    if not keyword:
        raise QueryValidationError("Keyword is required", fields=["keyword"])

    excluded = (exclude or "").strip().upper()
    airports = []
    for raw in provider.search_airports(keyword):
        airport = normalize_airport(raw)
        if not airport.iata_code or airport.iata_code == excluded:
            continue
        airports.append(airport)
        if len(airports) >= limit:
            break
    return airports
