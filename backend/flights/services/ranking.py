from enum import Enum
from typing import Sequence

from flights.domain import FlightOffer
from flights.services.metrics import outbound_duration_minutes, price_of

PRICE_WEIGHT = 0.6
DURATION_WEIGHT = 0.4


class SortStrategy(str, Enum):
    BEST = "best"
    PRICE = "price"
    DURATION = "duration"


class ScoreBaseline(str, Enum):
    """Which offers set the min/max used to normalize the ``best`` score."""
    FILTERED = "filtered"
    ALL = "all"


def _normalizer(values: Sequence[float]):
    low = min(values)
    spread = (max(values) - low) or 1
    return lambda value: (value - low) / spread


def best_scores(offers: Sequence[FlightOffer], baseline: Sequence[FlightOffer] | None = None) -> list[float]:
    """Weighted price/duration score per offer; lower is better.

    Min and max come from ``baseline`` when given, otherwise from ``offers``
    themselves, so scores shift whenever the candidate set changes.
    """
    if not offers:
        return []
    reference = baseline or offers
    norm_price = _normalizer([price_of(o) for o in reference])
    norm_duration = _normalizer([outbound_duration_minutes(o) for o in reference])
    return [
        PRICE_WEIGHT * norm_price(price_of(o)) + DURATION_WEIGHT * norm_duration(outbound_duration_minutes(o))
        for o in offers
    ]


def rank_offers(
    offers: Sequence[FlightOffer],
    strategy: SortStrategy | str = SortStrategy.BEST,
    baseline: Sequence[FlightOffer] | None = None,
) -> list[FlightOffer]:
    strategy = SortStrategy(strategy)
    if strategy == SortStrategy.PRICE:
        return sorted(offers, key=price_of)
    if strategy == SortStrategy.DURATION:
        return sorted(offers, key=outbound_duration_minutes)

    scores = best_scores(offers, baseline)
    order = sorted(range(len(offers)), key=scores.__getitem__)
    return [offers[i] for i in order]
