import logging
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from django.conf import settings

from flights.domain import (
    Airport,
    BaggageAllowance,
    BaggageInfo,
    FlightItinerary,
    FlightOffer,
    FlightSegment,
    Price,
    SegmentEndpoint,
)

logger = logging.getLogger(__name__)

PRICE_RE = re.compile(r"[^0-9.\-]")
MINOR_UNIT = Decimal("0.01")

# Estimated weight per checked bag; upstream rarely reports it.
CHECKED_BAG_KG = 23


def parse_money(value) -> float:
    """Decimal price string (or number) -> float rounded to the currency minor unit."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        raw = str(value)
    elif isinstance(value, str):
        raw = PRICE_RE.sub("", value)
    else:
        return 0.0
    try:
        amount = Decimal(raw)
    except InvalidOperation:
        return 0.0
    if not amount.is_finite():
        return 0.0
    return float(amount.quantize(MINOR_UNIT, rounding=ROUND_HALF_UP))


def _as_dict(value) -> dict:
    return value if isinstance(value, dict) else {}


def _as_list(value) -> list:
    return value if isinstance(value, list) else []


def _endpoint(raw) -> SegmentEndpoint:
    raw = _as_dict(raw)
    return SegmentEndpoint(
        iata_code=raw.get("iataCode") or "",
        at=raw.get("at") or "",
        terminal=raw.get("terminal"),
    )


def _segment(raw: dict) -> FlightSegment:
    operating = _as_dict(raw.get("operating"))
    stops = raw.get("numberOfStops")
    return FlightSegment(
        departure=_endpoint(raw.get("departure")),
        arrival=_endpoint(raw.get("arrival")),
        carrier_code=operating.get("carrierCode") or raw.get("carrierCode") or "",
        carrier_name=operating.get("carrierName"),
        number=str(raw.get("number") or ""),
        aircraft_code=_as_dict(raw.get("aircraft")).get("code"),
        duration=raw.get("duration") or "",
        number_of_stops=int(stops) if isinstance(stops, (int, float)) else 0,
    )


def _itinerary(raw: dict) -> FlightItinerary:
    segments = tuple(_segment(s) for s in _as_list(raw.get("segments")) if isinstance(s, dict))
    return FlightItinerary(duration=raw.get("duration") or "", segments=segments)


def extract_baggage_info(raw: dict) -> BaggageInfo | None:
    """Best-effort baggage allowance from the first traveler's fare details.

    Carry-on is reported as included (``assumed=True``) because the upstream
    almost never states it; treat it as an approximation, not a guarantee.
    """
    traveler_pricings = _as_list(raw.get("travelerPricings"))
    if not traveler_pricings:
        return None
    fare_details = _as_list(_as_dict(traveler_pricings[0]).get("fareDetailsBySegment"))
    if not fare_details:
        return None

    checked_included = False
    checked_quantity = 0
    for fare_detail in fare_details:
        bags = _as_dict(fare_detail).get("includedCheckedBags")
        if not isinstance(bags, dict):
            continue
        quantity = bags.get("quantity")
        if not isinstance(quantity, int):
            # A weight-only allowance still means one bag.
            quantity = 1 if bags.get("weight") else 0
        if quantity > 0:
            checked_included = True
            checked_quantity = max(checked_quantity, quantity)

    return BaggageInfo(
        carry_on=BaggageAllowance(included=True, quantity=1, assumed=True),
        checked=BaggageAllowance(
            included=checked_included,
            quantity=checked_quantity,
            weight=f"{checked_quantity * CHECKED_BAG_KG}kg",
        ),
    )


def normalize_offer(raw: dict) -> FlightOffer:
    price = _as_dict(raw.get("price"))
    grand_total = price.get("grandTotal") or price.get("total") or "0"
    validating = raw.get("validatingAirlineCodes")
    if not isinstance(validating, list):
        validating = [raw["validatingAirlineCode"]] if raw.get("validatingAirlineCode") else []
    seats = raw.get("numberOfBookableSeats")

    return FlightOffer(
        id=str(raw.get("id") or ""),
        source=raw.get("source") or "GDS",
        instant_ticketing_required=bool(raw.get("instantTicketingRequired")),
        price=Price(
            currency=price.get("currency") or getattr(settings, "DEFAULT_CURRENCY", "USD"),
            total=str(price.get("total") or grand_total),
            base=str(price.get("base") or ""),
            grand_total=str(grand_total),
            amount=parse_money(grand_total),
        ),
        itineraries=tuple(_itinerary(i) for i in _as_list(raw.get("itineraries")) if isinstance(i, dict)),
        validating_airline_codes=tuple(str(code) for code in validating if code),
        number_of_bookable_seats=int(seats) if isinstance(seats, (int, float)) else None,
        baggage_info=extract_baggage_info(raw),
    )


def _is_well_formed(raw) -> bool:
    if not isinstance(raw, dict) or not isinstance(raw.get("price"), dict):
        return False
    itineraries = _as_list(raw.get("itineraries"))
    return bool(itineraries) and all(_as_list(_as_dict(i).get("segments")) for i in itineraries)


def normalize_offers(raw_offers) -> list[FlightOffer]:
    offers = []
    skipped = 0
    for raw in _as_list(raw_offers):
        if not _is_well_formed(raw):
            skipped += 1
            continue
        offers.append(normalize_offer(raw))
    if skipped:
        logger.warning("Skipped malformed offers", extra={"skipped": skipped})
    return offers


def normalize_airport(raw: dict) -> Airport:
    address = _as_dict(raw.get("address"))
    name = raw.get("name") or ""
    return Airport(
        iata_code=raw.get("iataCode") or "",
        name=name,
        city_name=address.get("cityName") or name,
        country_code=address.get("countryCode") or "",
    )
