from django.urls import path

from flights.views import (
    FlightSearchView,
    HealthView,
    PriceGridView,
    PriceSeriesView,
    RecentSearchesView,
)
from flights.views_airports import airports_search

urlpatterns = [
    path("health", HealthView.as_view(), name="health"),
    path("flights/search", FlightSearchView.as_view(), name="flight-search"),
    path("flights/price-series", PriceSeriesView.as_view(), name="price-series"),
    path("flights/price-grid", PriceGridView.as_view(), name="price-grid"),
    path("airports/search", airports_search, name="airports-search"),
    path("recent-searches", RecentSearchesView.as_view(), name="recent-searches"),
]
