import dataclasses
import re

from rest_framework import serializers

from flights.domain import (
    CABIN_CLASSES,
    TRIP_TYPES,
    Airport,
    FilterState,
    Passengers,
    SearchQuery,
)
from flights.services import metrics
from flights.services.ranking import SortStrategy

IATA_RE = re.compile(r"^[A-Z]{3}$")


# ---------------- Query input -----------------

class AirportField(serializers.Field):
    """Accepts a bare IATA code ("JFK") or an airport object; yields ``Airport``."""

    default_error_messages = {
        "invalid": "Expected an IATA code or an airport object.",
        "code": "Airport code must be three letters.",
    }

    def to_internal_value(self, data):
        if isinstance(data, str):
            data = {"iataCode": data}
        if not isinstance(data, dict):
            self.fail("invalid")
        code = str(data.get("iataCode") or "").strip().upper()
        if not IATA_RE.match(code):
            self.fail("code")
        return Airport(
            iata_code=code,
            name=str(data.get("name") or ""),
            city_name=str(data.get("cityName") or data.get("name") or ""),
            country_code=str(data.get("countryCode") or ""),
        )

    def to_representation(self, value):
        return {
            "iataCode": value.iata_code,
            "name": value.name,
            "cityName": value.city_name,
            "countryCode": value.country_code,
        }


class PassengersSerializer(serializers.Serializer):
    adults = serializers.IntegerField(min_value=1, max_value=9)
    children = serializers.IntegerField(min_value=0, max_value=8, default=0)
    infants = serializers.IntegerField(min_value=0, max_value=8, default=0)

    def validate(self, attrs):
        if attrs.get("infants", 0) > attrs["adults"]:
            raise serializers.ValidationError({"infants": "Each infant must travel with an adult."})
        return attrs


class FlightSearchSerializer(serializers.Serializer):
    origin = AirportField()
    destination = AirportField()
    departureDate = serializers.DateField(source="departure_date")
    returnDate = serializers.DateField(source="return_date", required=False, allow_null=True)
    tripType = serializers.ChoiceField(source="trip_type", choices=TRIP_TYPES, default="round-trip")
    passengers = PassengersSerializer()
    cabinClass = serializers.ChoiceField(source="cabin_class", choices=CABIN_CLASSES, default="ECONOMY")

    # Optional: provider falls back to DEFAULT_CURRENCY
    currency = serializers.CharField(required=False, allow_null=True, min_length=3, max_length=3)

    def validate(self, attrs):
        origin = attrs["origin"]
        destination = attrs["destination"]
        if origin.iata_code == destination.iata_code:
            raise serializers.ValidationError({"destination": "Destination must be different from origin."})

        currency = attrs.get("currency")
        if currency is not None:
            attrs["currency"] = currency.strip().upper() or None

        return_date = attrs.get("return_date")
        if attrs["trip_type"] == "round-trip":
            if not return_date:
                raise serializers.ValidationError({"returnDate": "Return date is required for round trips."})
            if return_date < attrs["departure_date"]:
                raise serializers.ValidationError({"returnDate": "Return date must be on or after departure date."})
        else:
            attrs["return_date"] = None

        return attrs

    def to_query(self) -> SearchQuery:
        data = dict(self.validated_data)
        data["passengers"] = Passengers(**data["passengers"])
        return SearchQuery(
            origin=data["origin"],
            destination=data["destination"],
            departure_date=data["departure_date"],
            return_date=data.get("return_date"),
            trip_type=data["trip_type"],
            passengers=data["passengers"],
            cabin_class=data["cabin_class"],
            currency=data.get("currency"),
        )


# ---------------- Filters -----------------

def _range_field(**kwargs):
    return serializers.ListField(child=serializers.FloatField(), min_length=2, max_length=2, **kwargs)


class BagsSerializer(serializers.Serializer):
    carryOn = serializers.BooleanField(source="carry_on", required=False)
    checked = serializers.IntegerField(source="checked_bags", min_value=0, max_value=3, required=False)


class FilterStateSerializer(serializers.Serializer):
    stops = serializers.ListField(child=serializers.IntegerField(min_value=0, max_value=2), required=False)
    priceRange = _range_field(source="price_range", required=False)
    airlines = serializers.ListField(child=serializers.CharField(max_length=3), required=False)
    departureTimeRange = _range_field(source="departure_time_range", required=False)
    arrivalTimeRange = _range_field(source="arrival_time_range", required=False)
    duration = serializers.IntegerField(min_value=0, required=False)
    bags = BagsSerializer(source="*", required=False)
    connectingAirports = serializers.ListField(
        source="connecting_airports", child=serializers.CharField(max_length=3), required=False
    )
    excludeConnectingAirports = serializers.BooleanField(source="exclude_connecting_airports", required=False)

    def validate(self, attrs):
        for name in ("price_range", "departure_time_range", "arrival_time_range"):
            if name in attrs:
                low, high = attrs[name]
                if low > high:
                    raise serializers.ValidationError({name: "Range minimum must not exceed maximum."})
                attrs[name] = (low, high)
        for name in ("stops", "airlines", "connecting_airports"):
            if name in attrs:
                values = attrs[name]
                if name != "stops":
                    values = [v.strip().upper() for v in values if v.strip()]
                attrs[name] = tuple(values)
        return attrs


def merge_filter_state(base: FilterState, changes: dict | None) -> FilterState:
    """Apply submitted filter fields on top of ``base``; omitted fields keep base values."""
    return dataclasses.replace(base, **changes) if changes else base


# ---------------- Offers -----------------

class SegmentEndpointSerializer(serializers.Serializer):
    iataCode = serializers.CharField(source="iata_code")
    terminal = serializers.CharField(allow_null=True)
    at = serializers.CharField()


class FlightSegmentSerializer(serializers.Serializer):
    departure = SegmentEndpointSerializer()
    arrival = SegmentEndpointSerializer()
    carrierCode = serializers.CharField(source="carrier_code")
    carrierName = serializers.CharField(source="carrier_name", allow_null=True)
    number = serializers.CharField()
    aircraft = serializers.SerializerMethodField()
    duration = serializers.CharField()
    durationMinutes = serializers.SerializerMethodField()
    numberOfStops = serializers.IntegerField(source="number_of_stops")

    def get_aircraft(self, segment):
        return {"code": segment.aircraft_code, "name": metrics.aircraft_name(segment.aircraft_code)}

    def get_durationMinutes(self, segment):
        return metrics.duration_minutes(segment.duration)


class FlightItinerarySerializer(serializers.Serializer):
    duration = serializers.CharField()
    durationMinutes = serializers.SerializerMethodField()
    stops = serializers.SerializerMethodField()
    layovers = serializers.SerializerMethodField()
    segments = FlightSegmentSerializer(many=True)

    def get_durationMinutes(self, itinerary):
        return metrics.duration_minutes(itinerary.duration)

    def get_stops(self, itinerary):
        return metrics.stops_count(itinerary)

    def get_layovers(self, itinerary):
        return [
            {"airport": segment.arrival.iata_code, "minutes": layover.total_minutes}
            for segment, layover in zip(itinerary.segments, metrics.itinerary_layovers(itinerary))
        ]


class PriceSerializer(serializers.Serializer):
    currency = serializers.CharField()
    total = serializers.CharField()
    base = serializers.CharField()
    grandTotal = serializers.CharField(source="grand_total")
    amount = serializers.FloatField()


class BaggageAllowanceSerializer(serializers.Serializer):
    included = serializers.BooleanField()
    quantity = serializers.IntegerField()
    weight = serializers.CharField(allow_null=True)
    assumed = serializers.BooleanField()


class BaggageInfoSerializer(serializers.Serializer):
    carryOn = BaggageAllowanceSerializer(source="carry_on")
    checked = BaggageAllowanceSerializer()


class FlightOfferSerializer(serializers.Serializer):
    id = serializers.CharField()
    source = serializers.CharField()
    instantTicketingRequired = serializers.BooleanField(source="instant_ticketing_required")
    price = PriceSerializer()
    itineraries = FlightItinerarySerializer(many=True)
    validatingAirlineCodes = serializers.ListField(source="validating_airline_codes", child=serializers.CharField())
    numberOfBookableSeats = serializers.IntegerField(source="number_of_bookable_seats", allow_null=True)
    baggageInfo = BaggageInfoSerializer(source="baggage_info", allow_null=True)
    connectingAirports = serializers.SerializerMethodField()

    def get_connectingAirports(self, offer):
        return sorted(metrics.connecting_airports(offer))


class FlightSearchRequestSerializer(FlightSearchSerializer):
    filters = FilterStateSerializer(required=False)
    sort = serializers.ChoiceField(choices=[s.value for s in SortStrategy], default=SortStrategy.BEST.value)
    limit = serializers.IntegerField(min_value=1, max_value=100, required=False)


# ---------------- Calendar -----------------

class CalendarRequestSerializer(FlightSearchSerializer):
    # Builds from the same client supersede each other.
    clientId = serializers.CharField(source="client_id", required=False, allow_blank=True, max_length=64)


class PriceSeriesRequestSerializer(CalendarRequestSerializer):
    tripDurationDays = serializers.IntegerField(source="trip_duration_days", min_value=1, max_value=30, required=False)
    filters = FilterStateSerializer(required=False)


class PriceGridRequestSerializer(CalendarRequestSerializer):
    colOffset = serializers.IntegerField(source="col_offset", min_value=0, max_value=7, default=0)
    rowOffset = serializers.IntegerField(source="row_offset", min_value=0, max_value=7, default=0)

    def validate(self, attrs):
        attrs = super().validate(attrs)
        if attrs["trip_type"] != "round-trip":
            raise serializers.ValidationError({"tripType": "The price grid is only available for round trips."})
        return attrs


class PricePointSerializer(serializers.Serializer):
    date = serializers.DateField()
    displayDate = serializers.SerializerMethodField()
    returnDate = serializers.DateField(source="return_date", allow_null=True)
    tripDuration = serializers.IntegerField(source="trip_duration_days", allow_null=True)
    price = serializers.FloatField(allow_null=True)
    available = serializers.BooleanField()
    isWeekend = serializers.BooleanField(source="is_weekend")
    isSelected = serializers.BooleanField(source="is_selected")
    isLowest = serializers.BooleanField(source="is_lowest")
    filteredOut = serializers.BooleanField(source="filtered_out")

    def get_displayDate(self, point):
        return f"{point.date:%b} {point.date.day}"


class PriceSeriesSerializer(serializers.Serializer):
    points = PricePointSerializer(many=True)
    tripDurationDays = serializers.IntegerField(source="trip_duration_days", allow_null=True)
    lowestPrice = serializers.FloatField(source="lowest_price", allow_null=True)
    requestsMade = serializers.IntegerField(source="requests_made")
    errors = serializers.IntegerField()
    rateLimited = serializers.BooleanField(source="rate_limited")
    stats = serializers.SerializerMethodField()
    error = serializers.SerializerMethodField()

    def get_stats(self, series):
        return series.stats()

    def get_error(self, series):
        return calendar_error(series)


class GridCellSerializer(serializers.Serializer):
    departureDate = serializers.DateField(source="departure_date")
    returnDate = serializers.DateField(source="return_date")
    tripDuration = serializers.IntegerField(source="trip_duration_days")
    price = serializers.FloatField(allow_null=True)
    available = serializers.BooleanField()
    isSelected = serializers.BooleanField(source="is_selected")
    isLowest = serializers.BooleanField(source="is_lowest")


class PriceGridSerializer(serializers.Serializer):
    departureDates = serializers.ListField(source="departure_dates", child=serializers.DateField())
    returnDates = serializers.ListField(source="return_dates", child=serializers.DateField())
    visibleDepartureDates = serializers.ListField(source="visible_departure_dates", child=serializers.DateField())
    visibleReturnDates = serializers.ListField(source="visible_return_dates", child=serializers.DateField())
    colOffset = serializers.IntegerField(source="col_offset")
    rowOffset = serializers.IntegerField(source="row_offset")
    cells = serializers.SerializerMethodField()
    lowestPrice = serializers.FloatField(source="lowest_price", allow_null=True)
    highestPrice = serializers.FloatField(source="highest_price", allow_null=True)
    requestsMade = serializers.IntegerField(source="requests_made")
    errors = serializers.IntegerField()
    rateLimited = serializers.BooleanField(source="rate_limited")
    error = serializers.SerializerMethodField()

    def get_cells(self, grid):
        return [GridCellSerializer(column, many=True).data for column in grid.cells]

    def get_error(self, grid):
        return calendar_error(grid)


def calendar_error(build) -> str | None:
    if build.rate_limited:
        return "Price data is temporarily limited by the provider."
    if build.requests_made and build.errors == build.requests_made:
        return "Failed to load price data."
    return None
