"""Canonical flight-search types.

Offers coming back from the provider are normalized into these dataclasses
once (see ``flights.services.normalize``); everything downstream (metrics,
filters, ranking, calendar) reads them and never mutates them.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date
from typing import Literal

TripType = Literal["one-way", "round-trip"]
CabinClass = Literal["ECONOMY", "PREMIUM_ECONOMY", "BUSINESS", "FIRST"]

CABIN_CLASSES = ("ECONOMY", "PREMIUM_ECONOMY", "BUSINESS", "FIRST")
TRIP_TYPES = ("one-way", "round-trip")


@dataclass(frozen=True, slots=True)
class Airport:
    iata_code: str
    name: str = ""
    city_name: str = ""
    country_code: str = ""

    def __post_init__(self):
        object.__setattr__(self, "iata_code", (self.iata_code or "").strip().upper())


@dataclass(frozen=True, slots=True)
class SegmentEndpoint:
    iata_code: str
    at: str
    terminal: str | None = None


@dataclass(frozen=True, slots=True)
class FlightSegment:
    departure: SegmentEndpoint
    arrival: SegmentEndpoint
    carrier_code: str
    number: str
    aircraft_code: str | None
    duration: str
    number_of_stops: int = 0
    carrier_name: str | None = None


@dataclass(frozen=True, slots=True)
class FlightItinerary:
    """One direction of travel; ``duration`` includes layovers."""
    duration: str
    segments: tuple[FlightSegment, ...]


@dataclass(frozen=True, slots=True)
class Price:
    """Upstream decimal strings plus ``amount``, the parsed ``grandTotal``."""
    currency: str
    total: str
    base: str
    grand_total: str
    amount: float


@dataclass(frozen=True, slots=True)
class BaggageAllowance:
    included: bool
    quantity: int
    weight: str | None = None
    # True when the value was not reported upstream and was filled in by a heuristic.
    assumed: bool = False


@dataclass(frozen=True, slots=True)
class BaggageInfo:
    carry_on: BaggageAllowance
    checked: BaggageAllowance


@dataclass(frozen=True, slots=True)
class FlightOffer:
    id: str
    price: Price
    itineraries: tuple[FlightItinerary, ...]
    validating_airline_codes: tuple[str, ...] = ()
    number_of_bookable_seats: int | None = None
    baggage_info: BaggageInfo | None = None
    source: str = "GDS"
    instant_ticketing_required: bool = False

    @property
    def outbound(self) -> FlightItinerary:
        return self.itineraries[0]

    @property
    def inbound(self) -> FlightItinerary | None:
        return self.itineraries[1] if len(self.itineraries) > 1 else None

    @property
    def is_round_trip(self) -> bool:
        return len(self.itineraries) == 2


@dataclass(frozen=True, slots=True)
class Passengers:
    adults: int | None = 1
    children: int = 0
    infants: int = 0


@dataclass(frozen=True, slots=True)
class SearchQuery:
    origin: Airport | None
    destination: Airport | None
    departure_date: date | None
    return_date: date | None = None
    trip_type: TripType = "round-trip"
    passengers: Passengers = field(default_factory=Passengers)
    cabin_class: CabinClass = "ECONOMY"
    currency: str | None = None

    @property
    def is_round_trip(self) -> bool:
        return self.trip_type == "round-trip"

    @property
    def effective_return_date(self) -> date | None:
        """Return date actually sent upstream (one-way trips never send one)."""
        return self.return_date if self.is_round_trip else None


@dataclass(frozen=True, slots=True)
class FilterState:
    """Snapshot of the user-facing filters.

    Every field has an "unset" sentinel (empty tuple, full range, zero) at which
    its predicate lets every offer through. ``stops`` uses 2 for "2 or more" and
    a ``duration`` of 0 means no ceiling.
    """
    stops: tuple[int, ...] = ()
    price_range: tuple[float, float] = (0, math.inf)
    airlines: tuple[str, ...] = ()
    departure_time_range: tuple[float, float] = (0, 24)
    arrival_time_range: tuple[float, float] = (0, 24)
    duration: int = 0
    carry_on: bool = False
    checked_bags: int = 0
    connecting_airports: tuple[str, ...] = ()
    exclude_connecting_airports: bool = True


DEFAULT_FILTERS = FilterState()
