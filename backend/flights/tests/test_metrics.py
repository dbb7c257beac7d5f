from django.test import SimpleTestCase

from flights.services import metrics
from flights.tests.factories import connecting_segments, make_offer, raw_segment


class DurationTests(SimpleTestCase):
    def test_hours_and_minutes(self):
        self.assertEqual(metrics.duration_minutes("PT2H30M"), 150)

    def test_hours_only(self):
        self.assertEqual(metrics.duration_minutes("PT10H"), 600)

    def test_minutes_only(self):
        self.assertEqual(metrics.duration_minutes("PT45M"), 45)

    def test_malformed_is_zero(self):
        self.assertEqual(metrics.duration_minutes("2 hours"), 0)
        self.assertEqual(metrics.duration_minutes(""), 0)
        self.assertEqual(metrics.duration_minutes(None), 0)

    def test_format_duration(self):
        self.assertEqual(metrics.format_duration(150), "2h 30m")
        self.assertEqual(metrics.format_duration(120), "2h")
        self.assertEqual(metrics.format_duration(45), "45m")


class StopsTests(SimpleTestCase):
    def test_nonstop(self):
        offer = make_offer()
        self.assertEqual(metrics.stops_count(offer.outbound), 0)
        self.assertEqual(metrics.connecting_airports(offer), set())

    def test_one_stop(self):
        offer = make_offer(segments=connecting_segments("ORD"))
        self.assertEqual(metrics.stops_count(offer.outbound), 1)
        self.assertEqual(metrics.connecting_airports(offer), {"ORD"})

    def test_empty_segments(self):
        self.assertEqual(metrics.stops_count(()), 0)

    def test_connecting_airports_span_both_directions(self):
        back = [
            raw_segment("LAX", "DEN", "2030-03-17T08:00:00", "2030-03-17T11:00:00"),
            raw_segment("DEN", "JFK", "2030-03-17T12:00:00", "2030-03-17T18:00:00"),
        ]
        offer = make_offer(segments=connecting_segments("ORD"), return_segments=back)
        self.assertEqual(metrics.connecting_airports(offer), {"ORD", "DEN"})

    def test_labels(self):
        self.assertEqual(metrics.stops_label(0), "Nonstop")
        self.assertEqual(metrics.stops_label(1), "1 stop")
        self.assertEqual(metrics.stops_label(3), "3 stops")

    def test_stops_breakdown(self):
        offers = [
            make_offer(offer_id="1"),
            make_offer(offer_id="2", segments=connecting_segments("ORD")),
            make_offer(offer_id="3", segments=connecting_segments("ORD") + [
                raw_segment("LAX", "SFO", "2030-03-10T16:00:00", "2030-03-10T17:30:00"),
            ]),
        ]
        self.assertEqual(metrics.stops_breakdown(offers), {"0": 1, "1": 1, "2+": 1})


class TimeOfDayTests(SimpleTestCase):
    def test_hour_fraction_uses_local_wall_clock(self):
        self.assertEqual(metrics.departure_hour_fraction("2030-03-10T14:30:00"), 14.5)

    def test_malformed_timestamp_is_zero(self):
        self.assertEqual(metrics.departure_hour_fraction("not-a-date"), 0.0)
        self.assertEqual(metrics.arrival_hour_fraction(None), 0.0)


class LayoverTests(SimpleTestCase):
    def test_layover(self):
        layover = metrics.layover_duration("2030-03-10T10:00:00", "2030-03-10T11:30:00")
        self.assertEqual(layover, metrics.Layover(1, 30))
        self.assertEqual(layover.total_minutes, 90)

    def test_negative_layover_is_clamped(self):
        with self.assertLogs("flights.services.metrics", level="WARNING"):
            layover = metrics.layover_duration("2030-03-10T12:00:00", "2030-03-10T11:00:00")
        self.assertEqual(layover, metrics.Layover(0, 0))

    def test_negative_layover_strict(self):
        with self.assertRaises(metrics.DataQualityFault):
            metrics.layover_duration("2030-03-10T12:00:00", "2030-03-10T11:00:00", strict=True)

    def test_itinerary_layovers(self):
        offer = make_offer(segments=connecting_segments("ORD"))
        self.assertEqual(metrics.itinerary_layovers(offer.outbound), [metrics.Layover(1, 30)])


class CollectionTests(SimpleTestCase):
    def test_price_range_rounds_outward(self):
        offers = [make_offer(offer_id="1", price="99.40"), make_offer(offer_id="2", price="250.10")]
        self.assertEqual(metrics.price_range(offers), (99, 251))

    def test_empty_ranges_use_defaults(self):
        self.assertEqual(metrics.price_range([]), metrics.DEFAULT_PRICE_RANGE)
        self.assertEqual(metrics.duration_range([]), metrics.DEFAULT_DURATION_RANGE)

    def test_unique_airlines_sorted(self):
        offers = [
            make_offer(offer_id="1", segments=connecting_segments("ORD", carrier="UA")),
            make_offer(offer_id="2"),
        ]
        self.assertEqual(metrics.unique_airlines(offers), ["AA", "UA"])

    def test_aircraft_name(self):
        self.assertEqual(metrics.aircraft_name("789"), "Boeing 787-9")
        self.assertEqual(metrics.aircraft_name("XYZ"), "XYZ")
