from django.test import SimpleTestCase, override_settings

from flights.domain import DEFAULT_FILTERS, FilterState
from flights.services.ranking import SortStrategy, best_scores, rank_offers
from flights.services.search import filter_and_rank
from flights.tests.factories import make_offer


class RankingTests(SimpleTestCase):
    def test_price_sort_is_non_decreasing(self):
        offers = [
            make_offer(offer_id="1", price="300.00"),
            make_offer(offer_id="2", price="100.00"),
            make_offer(offer_id="3", price="200.00"),
        ]
        ranked = rank_offers(offers, SortStrategy.PRICE)
        prices = [o.price.amount for o in ranked]
        self.assertEqual(prices, sorted(prices))

    def test_duration_sort_is_stable(self):
        offers = [
            make_offer(offer_id="a", duration="PT4H"),
            make_offer(offer_id="b", duration="PT3H"),
            make_offer(offer_id="c", duration="PT4H"),
        ]
        self.assertEqual([o.id for o in rank_offers(offers, "duration")], ["b", "a", "c"])

    def test_best_weighs_price_and_duration(self):
        cheap_slow = make_offer(offer_id="1", price="100.00", duration="PT5H")
        dear_fast = make_offer(offer_id="2", price="120.00", duration="PT3H")

        scores = best_scores([cheap_slow, dear_fast])
        self.assertAlmostEqual(scores[0], 0.4)
        self.assertAlmostEqual(scores[1], 0.6)
        self.assertEqual([o.id for o in rank_offers([cheap_slow, dear_fast], "best")], ["1", "2"])

    def test_zero_spread_does_not_divide_by_zero(self):
        offers = [make_offer(offer_id="1"), make_offer(offer_id="2")]
        self.assertEqual(best_scores(offers), [0.0, 0.0])
        self.assertEqual([o.id for o in rank_offers(offers)], ["1", "2"])

    def test_best_is_not_monotonic_under_subset_removal(self):
        a = make_offer(offer_id="a", price="100.00", duration="PT10H")
        b = make_offer(offer_id="b", price="150.00", duration="PT6H")
        c = make_offer(offer_id="c", price="400.00", duration="PT5H")

        full = [o.id for o in rank_offers([a, b, c])]
        subset = [o.id for o in rank_offers([a, b])]

        # With c present the price spread is wide, so b's duration edge wins.
        self.assertEqual(full[:2], ["b", "a"])
        self.assertEqual(subset, ["a", "b"])

    def test_empty(self):
        self.assertEqual(rank_offers([], "best"), [])


class FilterAndRankTests(SimpleTestCase):
    def setUp(self):
        self.a = make_offer(offer_id="a", price="100.00", duration="PT10H")
        self.b = make_offer(offer_id="b", price="150.00", duration="PT6H")
        self.c = make_offer(offer_id="c", price="400.00", duration="PT5H")
        self.offers = [self.a, self.b, self.c]
        self.state = FilterState(price_range=(0, 200))

    @override_settings(FLIGHTS_BEST_SCORE_BASELINE="filtered")
    def test_filtered_baseline(self):
        ranked = filter_and_rank(self.offers, self.state, "best")
        self.assertEqual([o.id for o in ranked], ["a", "b"])

    @override_settings(FLIGHTS_BEST_SCORE_BASELINE="all")
    def test_all_offers_baseline(self):
        ranked = filter_and_rank(self.offers, self.state, "best")
        self.assertEqual([o.id for o in ranked], ["b", "a"])

    def test_default_filters_keep_everything(self):
        self.assertEqual(len(filter_and_rank(self.offers, DEFAULT_FILTERS, "price")), 3)
