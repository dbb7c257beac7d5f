"""Conjunctive filter pipeline over normalized offers.

Each predicate is built from one ``FilterState`` field and returns ``None``
when that field is at its unset sentinel, so inactive filters cost nothing.
Predicates commute; they are listed cheapest first.
"""
import dataclasses
import math
from typing import Callable, Sequence

from flights.domain import DEFAULT_FILTERS, FilterState, FlightOffer
from flights.services import metrics

Predicate = Callable[[FlightOffer], bool]

FULL_DAY = (0, 24)
STOPS_OR_MORE = 2


def _full_day(time_range) -> bool:
    return time_range[0] <= FULL_DAY[0] and time_range[1] >= FULL_DAY[1]


def _price_predicate(state: FilterState) -> Predicate | None:
    low, high = state.price_range
    if low <= 0 and high == math.inf:
        return None
    return lambda offer: low <= metrics.price_of(offer) <= high


def _stops_predicate(state: FilterState) -> Predicate | None:
    if not state.stops:
        return None
    wanted = set(state.stops)

    def predicate(offer):
        stops = metrics.stops_count(offer.outbound)
        return any(stops >= STOPS_OR_MORE if w == STOPS_OR_MORE else stops == w for w in wanted)

    return predicate


def _carry_on_predicate(state: FilterState) -> Predicate | None:
    if not state.carry_on:
        return None
    return lambda offer: offer.baggage_info is not None and offer.baggage_info.carry_on.included is True


def _checked_bags_predicate(state: FilterState) -> Predicate | None:
    if state.checked_bags <= 0:
        return None

    def predicate(offer):
        quantity = offer.baggage_info.checked.quantity if offer.baggage_info else 0
        return quantity >= state.checked_bags

    return predicate


def _duration_predicate(state: FilterState) -> Predicate | None:
    if state.duration <= 0:
        return None
    return lambda offer: metrics.outbound_duration_minutes(offer) <= state.duration


def _departure_time_predicate(state: FilterState) -> Predicate | None:
    if _full_day(state.departure_time_range):
        return None
    low, high = state.departure_time_range

    def predicate(offer):
        hour = metrics.departure_hour_fraction(offer.outbound.segments[0].departure.at)
        return low <= hour <= high

    return predicate


def _arrival_time_predicate(state: FilterState) -> Predicate | None:
    if _full_day(state.arrival_time_range):
        return None
    low, high = state.arrival_time_range

    def predicate(offer):
        hour = metrics.arrival_hour_fraction(offer.outbound.segments[-1].arrival.at)
        return low <= hour <= high

    return predicate


def _airlines_predicate(state: FilterState) -> Predicate | None:
    if not state.airlines:
        return None
    wanted = set(state.airlines)
    return lambda offer: any(
        segment.carrier_code in wanted
        for itinerary in offer.itineraries
        for segment in itinerary.segments
    )


def _connecting_airports_predicate(state: FilterState) -> Predicate | None:
    if not state.connecting_airports:
        return None
    selected = set(state.connecting_airports)

    def predicate(offer):
        connections = metrics.connecting_airports(offer)
        if not connections:
            return True
        has_selected = not connections.isdisjoint(selected)
        # exclude: selected airports are to be avoided; include: at least one is required
        return not has_selected if state.exclude_connecting_airports else has_selected

    return predicate


PREDICATE_BUILDERS = (
    _price_predicate,
    _stops_predicate,
    _carry_on_predicate,
    _checked_bags_predicate,
    _duration_predicate,
    _departure_time_predicate,
    _arrival_time_predicate,
    _airlines_predicate,
    _connecting_airports_predicate,
)


def build_predicates(state: FilterState) -> list[Predicate]:
    predicates = (builder(state) for builder in PREDICATE_BUILDERS)
    return [p for p in predicates if p is not None]


def filter_offers(offers: Sequence[FlightOffer], state: FilterState = DEFAULT_FILTERS) -> list[FlightOffer]:
    predicates = build_predicates(state)
    return [offer for offer in offers if all(p(offer) for p in predicates)]


def default_filter_state(offers: Sequence[FlightOffer]) -> FilterState:
    """Filters reset after a search: price and duration bounds come from the results."""
    return dataclasses.replace(
        DEFAULT_FILTERS,
        price_range=metrics.price_range(offers),
        duration=metrics.duration_range(offers)[1],
    )
