"""Price graph (one axis) and price grid (departure x return) builders.

Both shapes are harvested from many single-offer searches, issued one at a
time in date order with pacing between them, under a per-build request
budget. Individual failures only blank their own cell; a rate-limit response
blanks every cell that has not been requested yet. A build that has been
superseded by a newer one (same generation scope) stops and returns ``None``
without applying anything further.
"""
import dataclasses
import logging
import time
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Callable, Sequence

from django.conf import settings

from flights.domain import FlightOffer, SearchQuery
from flights.providers.base import FlightProvider, ProviderError
from flights.services.dates import date_range, local_today, parse_local_date
from flights.services.metrics import price_of
from flights.services.normalize import normalize_offers
from flights.services.search import validate_query

logger = logging.getLogger(__name__)

SERIES_WINDOW_DAYS = 11
GRID_WINDOW = (7, 7)
GRID_RANGE_DAYS = 14
DEFAULT_TRIP_DAYS = 7
GENERATION_TTL = 60 * 60


@dataclass(frozen=True)
class CalendarPolicy:
    """Request budget and pacing; timings only shape load on the provider."""
    max_requests: int = 15
    max_grid_cells: int = 28
    request_delay: float = 0.05
    pause_every: int = 3
    pause_seconds: float = 0.3

    @classmethod
    def from_settings(cls) -> "CalendarPolicy":
        defaults = cls()
        return cls(
            max_requests=getattr(settings, "CALENDAR_MAX_REQUESTS", defaults.max_requests),
            max_grid_cells=getattr(settings, "CALENDAR_MAX_GRID_CELLS", defaults.max_grid_cells),
            request_delay=getattr(settings, "CALENDAR_REQUEST_DELAY", defaults.request_delay),
            pause_every=getattr(settings, "CALENDAR_PAUSE_EVERY", defaults.pause_every),
            pause_seconds=getattr(settings, "CALENDAR_PAUSE_SECONDS", defaults.pause_seconds),
        )


@dataclass
class PricePoint:
    date: date
    return_date: date | None = None
    trip_duration_days: int | None = None
    price: float | None = None
    available: bool = False
    is_selected: bool = False
    is_lowest: bool = False
    filtered_out: bool = False

    @property
    def is_weekend(self) -> bool:
        return self.date.weekday() >= 5


@dataclass
class PriceSeries:
    points: list[PricePoint] = field(default_factory=list)
    trip_duration_days: int | None = None
    lowest_price: float | None = None
    requests_made: int = 0
    errors: int = 0
    rate_limited: bool = False

    def point(self, day: date) -> PricePoint | None:
        return next((p for p in self.points if p.date == day), None)

    def stats(self) -> dict | None:
        prices = [p.price for p in self.points if p.available and not p.filtered_out]
        if not prices:
            return None
        return {"min": min(prices), "max": max(prices), "avg": round(sum(prices) / len(prices))}


@dataclass
class GridCell:
    departure_date: date
    return_date: date
    trip_duration_days: int = 0
    price: float | None = None
    available: bool = False
    is_selected: bool = False
    is_lowest: bool = False


@dataclass
class PriceGrid:
    """``cells[i][j]`` is visible departure date ``i`` against visible return date ``j``."""
    departure_dates: list[date]
    return_dates: list[date]
    col_offset: int = 0
    row_offset: int = 0
    cells: list[list[GridCell]] = field(default_factory=list)
    lowest_price: float | None = None
    highest_price: float | None = None
    requests_made: int = 0
    errors: int = 0
    rate_limited: bool = False

    @property
    def visible_departure_dates(self) -> list[date]:
        return [column[0].departure_date for column in self.cells if column]

    @property
    def visible_return_dates(self) -> list[date]:
        return [cell.return_date for cell in self.cells[0]] if self.cells else []

    def cell(self, departure: date, returning: date) -> GridCell | None:
        try:
            i = self.visible_departure_dates.index(departure)
            j = self.visible_return_dates.index(returning)
        except ValueError:
            return None
        return self.cells[i][j]

    def iter_cells(self):
        for column in self.cells:
            yield from column


class BuildGeneration:
    """Counter deciding which build is current; newest token wins.

    With a cache ``store`` the counter is shared by every process using that
    cache, so a later request for the same ``key`` supersedes an earlier one.
    """

    def __init__(self, store=None, key: str | None = None):
        self.store = store
        self.key = key
        self._value = 0

    def advance(self) -> int:
        if self.store is None:
            self._value += 1
            return self._value
        self.store.add(self.key, 0, timeout=GENERATION_TTL)
        value = self.store.incr(self.key)
        # incr keeps the original expiry; every build restarts the TTL
        self.store.touch(self.key, GENERATION_TTL)
        return value

    def current(self) -> int | None:
        if self.store is None:
            return self._value
        return self.store.get(self.key)

    def is_current(self, token: int) -> bool:
        return self.current() == token


def default_trip_duration(query: SearchQuery) -> int:
    if query.is_round_trip and query.departure_date and query.return_date:
        return max(1, (query.return_date - query.departure_date).days)
    return DEFAULT_TRIP_DAYS


class CalendarAggregator:
    def __init__(
        self,
        provider: FlightProvider,
        policy: CalendarPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        today: Callable[[], date] = local_today,
        generation: BuildGeneration | None = None,
    ):
        self.provider = provider
        self.policy = policy or CalendarPolicy.from_settings()
        self.sleep = sleep
        self.today = today
        self.generation = generation or BuildGeneration()

    # ---------------- Scheduling -----------------
    def _pace(self, issued: int) -> None:
        """Yield between requests; ``issued`` is how many went out so far in this build."""
        if issued == 0:
            return
        if self.policy.request_delay:
            self.sleep(self.policy.request_delay)
        if self.policy.pause_every and issued % self.policy.pause_every == 0:
            self.sleep(self.policy.pause_seconds)

    def _fetch_cheapest(self, query: SearchQuery, departure: date, returning: date | None) -> float | None:
        passengers = query.passengers
        raw = self.provider.search_offers(
            origin=query.origin.iata_code,
            destination=query.destination.iata_code,
            departure_date=departure.isoformat(),
            return_date=returning.isoformat() if returning else None,
            adults=passengers.adults,
            children=passengers.children,
            infants=passengers.infants,
            cabin_class=query.cabin_class,
            currency=query.currency,
            max_results=1,
        )
        offers = normalize_offers(raw)
        if not offers:
            return None
        return min(price_of(o) for o in offers)

    def _resolve(self, token, query, departure, returning, build, target) -> bool:
        """Fetch one date combination into ``target``. False once the build is stale."""
        try:
            price = self._fetch_cheapest(query, departure, returning)
        except ProviderError as exc:
            if not self.generation.is_current(token):
                return False
            if exc.rate_limited:
                build.rate_limited = True
                logger.warning(
                    "Calendar build rate limited; remaining dates marked unavailable",
                    extra={"departure": departure.isoformat(), "status_code": exc.status_code},
                )
            else:
                build.errors += 1
                logger.info(
                    "Calendar date fetch failed",
                    extra={"departure": departure.isoformat(), "status_code": exc.status_code},
                )
            return True

        if not self.generation.is_current(token):
            return False
        if price is not None:
            target.price = price
            target.available = True
        return True

    def _superseded(self, kind: str, token: int) -> None:
        logger.info("Dropping superseded %s build", kind, extra={"generation": token})
        return None

    # ---------------- Builders -----------------
    def build_price_series(
        self,
        query: SearchQuery,
        window_days: int = SERIES_WINDOW_DAYS,
        trip_duration_days: int | None = None,
    ) -> PriceSeries | None:
        validate_query(query)
        token = self.generation.advance()

        selected = query.departure_date
        start = max(self.today(), selected - timedelta(days=window_days // 2))
        round_trip = query.is_round_trip
        trip_days = trip_duration_days if trip_duration_days is not None else default_trip_duration(query)

        series = PriceSeries(trip_duration_days=trip_days if round_trip else None)

        for day in date_range(start, window_days):
            if not self.generation.is_current(token):
                return self._superseded("series", token)

            returning = day + timedelta(days=trip_days) if round_trip else None
            point = PricePoint(
                date=day,
                return_date=returning,
                trip_duration_days=trip_days if round_trip else None,
                is_selected=day == selected,
            )
            series.points.append(point)

            if returning is not None and returning <= day:
                continue
            if series.rate_limited or series.requests_made >= self.policy.max_requests:
                continue

            self._pace(series.requests_made)
            if not self.generation.is_current(token):
                return self._superseded("series", token)
            series.requests_made += 1
            if not self._resolve(token, query, day, returning, series, point):
                return self._superseded("series", token)

        available = [p for p in series.points if p.available]
        if available:
            series.lowest_price = min(p.price for p in available)
            for p in available:
                p.is_lowest = p.price == series.lowest_price

        logger.info(
            "Price series built",
            extra={
                "requests": series.requests_made,
                "available": len(available),
                "errors": series.errors,
                "rate_limited": series.rate_limited,
            },
        )
        return series

    def build_price_grid(
        self,
        query: SearchQuery,
        window: tuple[int, int] = GRID_WINDOW,
        col_offset: int = 0,
        row_offset: int = 0,
        range_days: int = GRID_RANGE_DAYS,
    ) -> PriceGrid | None:
        validate_query(query)
        token = self.generation.advance()

        cols, rows = window
        today = self.today()
        selected_departure = query.departure_date
        selected_return = query.return_date if query.is_round_trip else None
        return_anchor = selected_return or selected_departure + timedelta(days=DEFAULT_TRIP_DAYS)

        dep_start = max(today, selected_departure - timedelta(days=cols // 2))
        ret_start = max(dep_start + timedelta(days=1), return_anchor - timedelta(days=rows // 2))
        col_offset = max(0, min(col_offset, range_days - cols))
        row_offset = max(0, min(row_offset, range_days - rows))

        grid = PriceGrid(
            departure_dates=date_range(dep_start, range_days),
            return_dates=date_range(ret_start, range_days),
            col_offset=col_offset,
            row_offset=row_offset,
        )
        visible_departures = grid.departure_dates[col_offset:col_offset + cols]
        visible_returns = grid.return_dates[row_offset:row_offset + rows]

        for departure in visible_departures:
            column = []
            grid.cells.append(column)
            for returning in visible_returns:
                if not self.generation.is_current(token):
                    return self._superseded("grid", token)

                cell = GridCell(
                    departure_date=departure,
                    return_date=returning,
                    trip_duration_days=max(0, (returning - departure).days),
                    is_selected=departure == selected_departure and returning == selected_return,
                )
                column.append(cell)

                if returning <= departure:
                    continue
                if grid.rate_limited or grid.requests_made >= self.policy.max_grid_cells:
                    continue

                self._pace(grid.requests_made)
                if not self.generation.is_current(token):
                    return self._superseded("grid", token)
                grid.requests_made += 1
                if not self._resolve(token, query, departure, returning, grid, cell):
                    return self._superseded("grid", token)

        prices = [c.price for c in grid.iter_cells() if c.available]
        if prices:
            grid.lowest_price = min(prices)
            grid.highest_price = max(prices)
            for c in grid.iter_cells():
                c.is_lowest = c.available and c.price == grid.lowest_price

        logger.info(
            "Price grid built",
            extra={
                "requests": grid.requests_made,
                "available": len(prices),
                "errors": grid.errors,
                "rate_limited": grid.rate_limited,
            },
        )
        return grid


def _offer_departure_date(offer: FlightOffer) -> date | None:
    depart_at = offer.outbound.segments[0].departure.at if offer.outbound.segments else ""
    try:
        return parse_local_date(depart_at.split("T")[0])
    except ValueError:
        return None


def apply_filtered_prices(series: PriceSeries, filtered_offers: Sequence[FlightOffer]) -> PriceSeries:
    """Overlay the cheapest surviving offer per departure date onto a copy of ``series``.

    Dates with no surviving offer keep their calendar price but are flagged
    ``filtered_out``. The lowest price is recomputed over the dates that survive.
    """
    cheapest: dict[date, float] = {}
    for offer in filtered_offers:
        day = _offer_departure_date(offer)
        if day is None:
            continue
        price = price_of(offer)
        if day not in cheapest or price < cheapest[day]:
            cheapest[day] = price

    points = []
    for point in series.points:
        if point.date in cheapest:
            points.append(
                dataclasses.replace(point, price=cheapest[point.date], available=True, filtered_out=False)
            )
        else:
            points.append(dataclasses.replace(point, filtered_out=True))

    lowest_price = min((p.price for p in points if p.available and not p.filtered_out), default=None)
    for p in points:
        p.is_lowest = p.available and not p.filtered_out and p.price == lowest_price
    return dataclasses.replace(series, points=points, lowest_price=lowest_price)
