import json
import logging
import time
from datetime import date
from typing import Callable

from flights.domain import SearchQuery
from flights.services.dates import local_today, parse_local_date, to_local_date_string

logger = logging.getLogger(__name__)

RECENT_SEARCHES_KEY = "skysearch_recent_searches"
MAX_SEARCHES = 5
MAX_AGE_DAYS = 30
DAY_MS = 24 * 60 * 60 * 1000


def _airport_payload(airport) -> dict:
    return {
        "iataCode": airport.iata_code,
        "name": airport.name,
        "cityName": airport.city_name,
        "countryCode": airport.country_code,
    }


def search_id(origin: str, destination: str, departure_date: str, return_date: str | None, trip_type: str) -> str:
    return f"{origin}-{destination}-{departure_date}-{return_date or ''}-{trip_type}"


class RecentSearchLog:
    """Last few searches, newest first, stored as one JSON array.

    ``store`` is anything with Django's cache ``get``/``set``/``delete``.
    Expiry is applied on read only; nothing is evicted in the background.
    """

    def __init__(
        self,
        store,
        key: str = RECENT_SEARCHES_KEY,
        capacity: int = MAX_SEARCHES,
        max_age_days: int = MAX_AGE_DAYS,
        clock: Callable[[], float] = time.time,
        today: Callable[[], date] = local_today,
    ):
        self.store = store
        self.key = key
        self.capacity = capacity
        self.max_age_ms = max_age_days * DAY_MS
        self.clock = clock
        self.today = today

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def _load(self) -> list[dict]:
        stored = self.store.get(self.key)
        if not stored:
            return []
        try:
            searches = json.loads(stored)
        except (TypeError, ValueError):
            logger.warning("Discarding unreadable recent searches", extra={"key": self.key})
            return []
        return [s for s in searches if isinstance(s, dict)] if isinstance(searches, list) else []

    def _save(self, searches: list[dict]) -> None:
        self.store.set(self.key, json.dumps(searches), timeout=None)

    def add(self, query: SearchQuery) -> dict | None:
        if not query.origin or not query.destination or not query.departure_date:
            return None

        departure = to_local_date_string(query.departure_date)
        return_date = query.effective_return_date
        returning = to_local_date_string(return_date) if return_date else None
        entry = {
            "id": search_id(
                query.origin.iata_code, query.destination.iata_code, departure, returning, query.trip_type
            ),
            "origin": _airport_payload(query.origin),
            "destination": _airport_payload(query.destination),
            "departureDate": departure,
            "tripType": query.trip_type,
            "passengers": {
                "adults": query.passengers.adults,
                "children": query.passengers.children,
                "infants": query.passengers.infants,
            },
            "timestamp": self._now_ms(),
        }
        if returning:
            entry["returnDate"] = returning

        searches = [s for s in self._load() if s.get("id") != entry["id"]]
        searches.insert(0, entry)
        self._save(searches[: self.capacity])
        return entry

    def _is_live(self, search: dict, now_ms: int, today: date) -> bool:
        timestamp = search.get("timestamp")
        if not isinstance(timestamp, (int, float)) or now_ms - timestamp >= self.max_age_ms:
            return False
        try:
            return parse_local_date(str(search.get("departureDate") or "")) >= today
        except ValueError:
            return False

    def entries(self) -> list[dict]:
        now_ms = self._now_ms()
        today = self.today()
        return [s for s in self._load() if self._is_live(s, now_ms, today)]

    def clear(self) -> None:
        self.store.delete(self.key)
