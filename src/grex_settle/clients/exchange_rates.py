"""Exchange rate API client (Frankfurter-compatible)."""

import logging
from datetime import date
from decimal import Decimal, InvalidOperation

import httpx

from ..exceptions import ExchangeRateAPIError

logger = logging.getLogger(__name__)


class ExchangeRateClient:
    """Client for a Frankfurter-style exchange rate API.

    Instances are callable with the ``RateLookup`` signature so they can be
    passed straight to the balance calculator or wrapped in a cache.
    """

    BASE_URL = "https://api.frankfurter.app"

    def __init__(self, base_url: str | None = None):
        """Initialize the exchange rate client."""
        self.client = httpx.Client(base_url=base_url or self.BASE_URL, timeout=15.0)

    def close(self):
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    def get_rate(
        self, from_currency: str, to_currency: str, on_date: date | None = None
    ) -> Decimal | None:
        """
        Get the rate converting one unit of ``from_currency`` to ``to_currency``.

        Args:
            from_currency: Source currency code
            to_currency: Target currency code
            on_date: Date of the rate, or None for the latest rate

        Returns:
            The rate, or None if the API does not quote this pair

        Raises:
            ExchangeRateAPIError: If the request fails
        """
        path = f"/{on_date.isoformat()}" if on_date else "/latest"

        try:
            response = self.client.get(
                path, params={"from": from_currency, "to": to_currency}
            )
            if response.status_code == 404:
                logger.info(f"No rate quoted for {from_currency}/{to_currency}")
                return None
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Error fetching rate {from_currency}/{to_currency}: {e}")
            raise ExchangeRateAPIError(str(e)) from e

        try:
            rate = response.json().get("rates", {}).get(to_currency)
            if rate is None:
                return None
            parsed = Decimal(str(rate))
        except (ValueError, AttributeError, InvalidOperation) as e:
            logger.warning(f"Malformed rate response for {from_currency}/{to_currency}: {e}")
            raise ExchangeRateAPIError(
                f"Malformed rate response for {from_currency}/{to_currency}"
            ) from e

        logger.debug(f"Rate {from_currency}/{to_currency} on {on_date or 'latest'}: {parsed}")
        return parsed

    __call__ = get_rate
