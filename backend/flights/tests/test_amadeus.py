from unittest.mock import Mock, patch

import requests
from django.core.cache import cache
from django.test import SimpleTestCase, override_settings

from flights.providers import get_flight_provider, get_token_cache
from flights.providers.amadeus import AccessTokenCache, AmadeusProvider
from flights.providers.base import ProviderError
from flights.tests.factories import raw_offer


def _response(status_code=200, payload=None):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = payload if payload is not None else {}
    response.text = ""
    return response


class Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class AccessTokenCacheTests(SimpleTestCase):
    def setUp(self):
        self.clock = Clock()
        self.tokens = AccessTokenCache("id", "secret", clock=self.clock)

    @patch("flights.providers.amadeus.requests.post")
    def test_token_reused_until_margin(self, mock_post):
        mock_post.return_value = _response(payload={"access_token": "abc", "expires_in": 1799})

        self.assertEqual(self.tokens.get_token(), "abc")
        self.clock.now += 1700
        self.assertEqual(self.tokens.get_token(), "abc")
        mock_post.assert_called_once()

        # 60 second safety margin before the advertised expiry
        self.clock.now += 40
        mock_post.return_value = _response(payload={"access_token": "def", "expires_in": 1799})
        self.assertEqual(self.tokens.get_token(), "def")
        self.assertEqual(mock_post.call_count, 2)

    @patch("flights.providers.amadeus.requests.post")
    def test_sends_client_credentials(self, mock_post):
        mock_post.return_value = _response(payload={"access_token": "abc", "expires_in": 1799})
        self.tokens.get_token()

        url = mock_post.call_args.args[0]
        data = mock_post.call_args.kwargs["data"]
        self.assertEqual(url, "https://test.api.amadeus.com/v1/security/oauth2/token")
        self.assertEqual(data["grant_type"], "client_credentials")
        self.assertEqual(data["client_id"], "id")

    def test_missing_credentials(self):
        with self.assertRaises(ProviderError) as ctx:
            AccessTokenCache(None, None).get_token()
        self.assertEqual(ctx.exception.status_code, 500)

    @patch("flights.providers.amadeus.requests.post")
    def test_token_error(self, mock_post):
        mock_post.return_value = _response(status_code=401, payload={"error": "invalid_client"})
        with self.assertRaises(ProviderError) as ctx:
            self.tokens.get_token()
        self.assertEqual(ctx.exception.status_code, 401)
        self.assertFalse(self.tokens.is_valid)


class AmadeusProviderTests(SimpleTestCase):
    def setUp(self):
        cache.clear()
        self.tokens = Mock()
        self.tokens.base_url = "https://test.api.amadeus.com"
        self.tokens.get_token.return_value = "abc"
        self.provider = AmadeusProvider(self.tokens)

    @override_settings(DEFAULT_CURRENCY="EUR")
    @patch("flights.providers.amadeus.requests.get")
    def test_search_offers_params(self, mock_get):
        mock_get.return_value = _response(payload={"data": [raw_offer()]})

        offers = self.provider.search_offers(
            "JFK", "LAX", "2030-03-10", return_date="2030-03-17", adults=2, infants=1,
            cabin_class="BUSINESS", max_results=500,
        )

        self.assertEqual(len(offers), 1)
        params = mock_get.call_args.kwargs["params"]
        self.assertEqual(params["originLocationCode"], "JFK")
        self.assertEqual(params["returnDate"], "2030-03-17")
        self.assertEqual(params["adults"], 2)
        self.assertEqual(params["infants"], 1)
        self.assertNotIn("children", params)
        self.assertEqual(params["travelClass"], "BUSINESS")
        self.assertEqual(params["currencyCode"], "EUR")
        self.assertEqual(params["max"], 250)
        headers = mock_get.call_args.kwargs["headers"]
        self.assertEqual(headers["Authorization"], "Bearer abc")

    @patch("flights.providers.amadeus.requests.get")
    def test_responses_are_cached(self, mock_get):
        mock_get.return_value = _response(payload={"data": [raw_offer()]})
        first = self.provider.search_offers("JFK", "LAX", "2030-03-10")
        second = self.provider.search_offers("JFK", "LAX", "2030-03-10")
        self.assertEqual(first, second)
        mock_get.assert_called_once()

    @patch("flights.providers.amadeus.requests.get")
    def test_rate_limit_is_reported(self, mock_get):
        mock_get.return_value = _response(status_code=429, payload={"errors": [{"code": 38194}]})
        with self.assertRaises(ProviderError) as ctx:
            self.provider.search_offers("JFK", "LAX", "2030-03-10")
        self.assertTrue(ctx.exception.rate_limited)

    @patch("flights.providers.amadeus.requests.get")
    def test_unauthorized_invalidates_token(self, mock_get):
        mock_get.return_value = _response(status_code=401)
        with self.assertRaises(ProviderError):
            self.provider.search_offers("JFK", "LAX", "2030-03-10")
        self.tokens.invalidate.assert_called_once()

    @patch("flights.providers.amadeus.requests.get")
    def test_network_error(self, mock_get):
        mock_get.side_effect = requests.ConnectionError("down")
        with self.assertRaises(ProviderError) as ctx:
            self.provider.search_offers("JFK", "LAX", "2030-03-10")
        self.assertEqual(ctx.exception.status_code, 502)

    @patch("flights.providers.amadeus.requests.get")
    def test_search_airports(self, mock_get):
        mock_get.return_value = _response(payload={"data": [{"iataCode": "LHR"}, "junk"]})
        self.assertEqual(self.provider.search_airports("lon"), [{"iataCode": "LHR"}])
        params = mock_get.call_args.kwargs["params"]
        self.assertEqual(params, {"subType": "AIRPORT", "keyword": "lon"})


class ProviderFactoryTests(SimpleTestCase):
    def tearDown(self):
        get_token_cache.cache_clear()

    @override_settings(FLIGHTS_PROVIDER="gds")
    def test_alias(self):
        self.assertIsInstance(get_flight_provider(), AmadeusProvider)

    @override_settings(FLIGHTS_PROVIDER="nope")
    def test_unknown_provider(self):
        with self.assertRaises(ProviderError) as ctx:
            get_flight_provider()
        self.assertEqual(ctx.exception.status_code, 500)
