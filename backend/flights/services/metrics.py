import logging
import math
import re
from datetime import datetime
from typing import Iterable, NamedTuple, Sequence

from flights.domain import FlightItinerary, FlightOffer, FlightSegment

logger = logging.getLogger(__name__)

DURATION_RE = re.compile(r"PT(?:(\d+)H)?(?:(\d+)M)?")

DEFAULT_PRICE_RANGE = (0, 5000)
DEFAULT_DURATION_RANGE = (0, 2880)

# Aircraft code to name mapping for common aircraft
AIRCRAFT_NAMES = {
    # Boeing
    "738": "Boeing 737-800",
    "73H": "Boeing 737-800",
    "739": "Boeing 737-900",
    "737": "Boeing 737",
    "7M8": "Boeing 737 MAX 8",
    "7M9": "Boeing 737 MAX 9",
    "744": "Boeing 747-400",
    "748": "Boeing 747-8",
    "752": "Boeing 757-200",
    "753": "Boeing 757-300",
    "763": "Boeing 767-300",
    "764": "Boeing 767-400",
    "772": "Boeing 777-200",
    "773": "Boeing 777-300",
    "77W": "Boeing 777-300ER",
    "788": "Boeing 787-8",
    "789": "Boeing 787-9",
    "78X": "Boeing 787-10",
    # Airbus
    "319": "Airbus A319",
    "320": "Airbus A320",
    "32N": "Airbus A320neo",
    "321": "Airbus A321",
    "32Q": "Airbus A321neo",
    "332": "Airbus A330-200",
    "333": "Airbus A330-300",
    "339": "Airbus A330-900neo",
    "359": "Airbus A350-900",
    "35K": "Airbus A350-1000",
    "388": "Airbus A380-800",
    # Regional
    "E75": "Embraer E175",
    "E90": "Embraer E190",
    "E95": "Embraer E195",
    "CR7": "Bombardier CRJ-700",
    "CR9": "Bombardier CRJ-900",
    "AT7": "ATR 72",
    "DH4": "Dash 8-400",
}


class DataQualityFault(ValueError):
    """Upstream data that violates an invariant the model relies on."""


class Layover(NamedTuple):
    hours: int
    minutes: int

    @property
    def total_minutes(self) -> int:
        return self.hours * 60 + self.minutes


def _segments(itinerary: FlightItinerary | Sequence[FlightSegment]) -> Sequence[FlightSegment]:
    return itinerary.segments if isinstance(itinerary, FlightItinerary) else itinerary


def _parse_timestamp(value) -> datetime | None:
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def stops_count(itinerary: FlightItinerary | Sequence[FlightSegment]) -> int:
    return max(len(_segments(itinerary)) - 1, 0)


def duration_minutes(value) -> int:
    """Minutes in a ``PT#H#M`` duration; anything unparseable counts as 0."""
    if not value or not isinstance(value, str):
        return 0
    match = DURATION_RE.match(value)
    if not match:
        logger.debug("Unparseable duration %r", value)
        return 0
    hours = int(match.group(1) or 0)
    minutes = int(match.group(2) or 0)
    return hours * 60 + minutes


def outbound_duration_minutes(offer: FlightOffer) -> int:
    return duration_minutes(offer.outbound.duration)


def departure_hour_fraction(timestamp) -> float:
    parsed = _parse_timestamp(timestamp)
    if parsed is None:
        return 0.0
    return parsed.hour + parsed.minute / 60


def arrival_hour_fraction(timestamp) -> float:
    return departure_hour_fraction(timestamp)


def connecting_airports(offer: FlightOffer) -> set[str]:
    """Intermediate airports across all itineraries (first departure and last arrival excluded)."""
    airports = set()
    for itinerary in offer.itineraries:
        last = len(itinerary.segments) - 1
        for idx, segment in enumerate(itinerary.segments):
            if idx > 0:
                airports.add(segment.departure.iata_code)
            if idx < last:
                airports.add(segment.arrival.iata_code)
    return airports


def layover_duration(prev_arrival, next_departure, strict: bool = False) -> Layover:
    arrival = _parse_timestamp(prev_arrival)
    departure = _parse_timestamp(next_departure)
    if arrival is None or departure is None:
        if strict:
            raise DataQualityFault(f"Unparseable layover timestamps {prev_arrival!r} -> {next_departure!r}")
        return Layover(0, 0)

    total_seconds = (departure - arrival).total_seconds()
    if total_seconds < 0:
        if strict:
            raise DataQualityFault(f"Negative layover {prev_arrival} -> {next_departure}")
        logger.warning(
            "Negative layover replaced with zero",
            extra={"arrival": prev_arrival, "departure": next_departure},
        )
        return Layover(0, 0)

    total_minutes = int(total_seconds // 60)
    return Layover(total_minutes // 60, total_minutes % 60)


def itinerary_layovers(itinerary: FlightItinerary) -> list[Layover]:
    segments = itinerary.segments
    return [
        layover_duration(segments[i].arrival.at, segments[i + 1].departure.at)
        for i in range(len(segments) - 1)
    ]


def price_of(offer: FlightOffer) -> float:
    return offer.price.amount


# --- Collection-level helpers (filter defaults and response meta) ---

def unique_airlines(offers: Iterable[FlightOffer]) -> list[str]:
    airlines = set()
    for offer in offers:
        for itinerary in offer.itineraries:
            for segment in itinerary.segments:
                if segment.carrier_code:
                    airlines.add(segment.carrier_code)
    return sorted(airlines)


def all_connecting_airports(offers: Iterable[FlightOffer]) -> list[str]:
    airports = set()
    for offer in offers:
        airports |= connecting_airports(offer)
    return sorted(airports)


def price_range(offers: Sequence[FlightOffer]) -> tuple[int, int]:
    if not offers:
        return DEFAULT_PRICE_RANGE
    prices = [price_of(o) for o in offers]
    return math.floor(min(prices)), math.ceil(max(prices))


def duration_range(offers: Sequence[FlightOffer]) -> tuple[int, int]:
    if not offers:
        return DEFAULT_DURATION_RANGE
    durations = [outbound_duration_minutes(o) for o in offers]
    return min(durations), max(durations)


def stops_breakdown(offers: Iterable[FlightOffer]) -> dict[str, int]:
    counts = {"0": 0, "1": 0, "2+": 0}
    for offer in offers:
        stops = stops_count(offer.outbound)
        if stops == 0:
            counts["0"] += 1
        elif stops == 1:
            counts["1"] += 1
        else:
            counts["2+"] += 1
    return counts


# --- Display helpers ---

def stops_label(stops: int) -> str:
    if stops == 0:
        return "Nonstop"
    if stops == 1:
        return "1 stop"
    return f"{stops} stops"


def format_duration(minutes: int) -> str:
    hours, mins = divmod(int(minutes), 60)
    if hours == 0:
        return f"{mins}m"
    if mins == 0:
        return f"{hours}h"
    return f"{hours}h {mins}m"


def aircraft_name(code: str | None) -> str | None:
    if not code:
        return code
    return AIRCRAFT_NAMES.get(code, code)
