RATE_LIMIT_STATUS = 429


class ProviderError(Exception):
    def __init__(self, message, status_code=502, details=None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details or {}

    @property
    def rate_limited(self) -> bool:
        return self.status_code == RATE_LIMIT_STATUS


class FlightProvider:
    def search_offers(
        self,
        origin,
        destination,
        departure_date,
        return_date=None,
        adults=1,
        children=0,
        infants=0,
        cabin_class=None,
        currency=None,
        max_results=None,
    ) -> list[dict]:
        """
        Returns raw upstream offer records; callers normalize them.
        Raises ProviderError on any non-success response.
        """
        raise NotImplementedError

    def search_airports(self, keyword) -> list[dict]:
        """
        Returns raw upstream airport/location records matching ``keyword``.
        """
        raise NotImplementedError
