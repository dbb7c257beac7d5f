import dataclasses

from django.test import SimpleTestCase

from flights.domain import DEFAULT_FILTERS, FilterState
from flights.services.filters import build_predicates, default_filter_state, filter_offers
from flights.tests.factories import connecting_segments, make_offer, raw_segment


def _ids(offers):
    return [o.id for o in offers]


class FilterPipelineTests(SimpleTestCase):
    def setUp(self):
        self.nonstop = make_offer(offer_id="nonstop", price="300.00", duration="PT5H", checked_bags=1)
        self.via_ord = make_offer(
            offer_id="ord", price="150.00", duration="PT7H", segments=connecting_segments("ORD", carrier="UA")
        )
        self.via_den = make_offer(
            offer_id="den",
            price="120.00",
            duration="PT9H",
            segments=[
                raw_segment("JFK", "DEN", "2030-03-10T18:00:00", "2030-03-10T21:00:00", carrier="DL"),
                raw_segment("DEN", "SLC", "2030-03-10T22:00:00", "2030-03-10T23:00:00", carrier="DL"),
                raw_segment("SLC", "LAX", "2030-03-11T01:00:00", "2030-03-11T03:00:00", carrier="DL"),
            ],
        )
        self.offers = [self.nonstop, self.via_ord, self.via_den]

    def test_default_filters_are_identity(self):
        self.assertEqual(build_predicates(DEFAULT_FILTERS), [])
        self.assertEqual(filter_offers(self.offers), self.offers)

    def test_defaults_from_results_keep_everything(self):
        state = default_filter_state(self.offers)
        self.assertEqual(state.price_range, (120, 300))
        self.assertEqual(state.duration, 540)
        self.assertEqual(filter_offers(self.offers, state), self.offers)

    def test_price_range_inclusive(self):
        state = FilterState(price_range=(120, 150))
        self.assertEqual(_ids(filter_offers(self.offers, state)), ["ord", "den"])

    def test_stops_two_means_two_or_more(self):
        self.assertEqual(_ids(filter_offers(self.offers, FilterState(stops=(2,)))), ["den"])
        self.assertEqual(_ids(filter_offers(self.offers, FilterState(stops=(0, 1)))), ["nonstop", "ord"])

    def test_airlines(self):
        self.assertEqual(_ids(filter_offers(self.offers, FilterState(airlines=("UA", "DL")))), ["ord", "den"])

    def test_duration_ceiling(self):
        self.assertEqual(_ids(filter_offers(self.offers, FilterState(duration=420))), ["nonstop", "ord"])

    def test_departure_window_uses_first_segment(self):
        state = FilterState(departure_time_range=(12, 24))
        self.assertEqual(_ids(filter_offers(self.offers, state)), ["den"])

    def test_arrival_window_uses_last_segment(self):
        state = FilterState(arrival_time_range=(0, 6))
        self.assertEqual(_ids(filter_offers(self.offers, state)), ["den"])

    def test_checked_bags(self):
        self.assertEqual(_ids(filter_offers(self.offers, FilterState(checked_bags=1))), ["nonstop"])

    def test_carry_on_requires_baggage_info(self):
        self.assertEqual(_ids(filter_offers(self.offers, FilterState(carry_on=True))), ["nonstop"])

    def test_exclude_connecting_airports(self):
        state = FilterState(connecting_airports=("ORD",), exclude_connecting_airports=True)
        self.assertEqual(_ids(filter_offers(self.offers, state)), ["nonstop", "den"])

    def test_include_connecting_airports(self):
        state = FilterState(connecting_airports=("ORD",), exclude_connecting_airports=False)
        self.assertEqual(_ids(filter_offers(self.offers, state)), ["nonstop", "ord"])

    def test_nonstop_survives_any_connecting_airport_filter(self):
        for exclude in (True, False):
            for airports in (("ORD",), ("DEN", "SLC"), ("XXX",)):
                state = FilterState(connecting_airports=airports, exclude_connecting_airports=exclude)
                self.assertIn(self.nonstop, filter_offers(self.offers, state))

    def test_filters_combine_conjunctively(self):
        state = dataclasses.replace(DEFAULT_FILTERS, stops=(1, 2), price_range=(130, 500))
        self.assertEqual(_ids(filter_offers(self.offers, state)), ["ord"])

    def test_order_is_preserved(self):
        reversed_offers = list(reversed(self.offers))
        self.assertEqual(filter_offers(reversed_offers, FilterState(stops=(1, 2))), [self.via_den, self.via_ord])

    def test_empty_input(self):
        self.assertEqual(filter_offers([], FilterState(stops=(0,))), [])
