"""Exchange rate lookups used to net foreign-currency transactions."""

import logging
from collections.abc import Callable, Mapping
from datetime import date
from decimal import Decimal, InvalidOperation

from .currency import normalize_currency_code
from .db import Database
from .exceptions import ExchangeRateAPIError

logger = logging.getLogger(__name__)

# (from_currency, to_currency, on_date) -> rate, or None when unavailable.
# on_date is None when the latest known rate should be used.
RateLookup = Callable[[str, str, date | None], Decimal | None]


def parse_rate_pairs(rates: Mapping[str, str | float | Decimal]) -> dict[tuple[str, str], Decimal]:
    """
    Parse ``{"USD/VND": "25000"}`` style mappings into currency pairs.

    Raises:
        ValueError: If a key is not of the form ``FROM/TO`` or a rate is not
                    a positive number
    """
    parsed: dict[tuple[str, str], Decimal] = {}
    for pair, raw_rate in rates.items():
        parts = pair.split("/")
        if len(parts) != 2 or not all(part.strip() for part in parts):
            raise ValueError(f"Invalid currency pair {pair!r}, expected FROM/TO")

        try:
            rate = Decimal(str(raw_rate))
        except InvalidOperation as e:
            raise ValueError(f"Invalid rate for {pair}: {raw_rate!r}") from e
        if rate <= 0:
            raise ValueError(f"Rate for {pair} must be positive, got {rate}")

        from_code, to_code = (normalize_currency_code(part) for part in parts)
        parsed[(from_code, to_code)] = rate
    return parsed


class StaticRateTable:
    """Fixed exchange rates, e.g. from a snapshot file or settings.

    The inverse of a configured pair is derived automatically. Dates are
    ignored: a static table has one rate per pair.
    """

    def __init__(self, rates: Mapping[str, str | float | Decimal] | None = None):
        self._rates = parse_rate_pairs(rates or {})

    def set_rate(self, from_currency: str, to_currency: str, rate: Decimal):
        """Set the rate for one currency pair."""
        key = (normalize_currency_code(from_currency), normalize_currency_code(to_currency))
        self._rates[key] = rate

    def __len__(self) -> int:
        return len(self._rates)

    def __call__(
        self, from_currency: str, to_currency: str, on_date: date | None = None
    ) -> Decimal | None:
        from_code = normalize_currency_code(from_currency)
        to_code = normalize_currency_code(to_currency)
        if from_code == to_code:
            return Decimal(1)

        direct = self._rates.get((from_code, to_code))
        if direct is not None:
            return direct

        inverse = self._rates.get((to_code, from_code))
        if inverse is not None:
            return Decimal(1) / inverse

        return None


class ChainedRateLookup:
    """Try several lookups in order and return the first rate found."""

    def __init__(self, *lookups: RateLookup):
        self.lookups = lookups

    def __call__(
        self, from_currency: str, to_currency: str, on_date: date | None = None
    ) -> Decimal | None:
        for lookup in self.lookups:
            rate = lookup(from_currency, to_currency, on_date)
            if rate is not None:
                return rate
        return None


class CachedRateLookup:
    """
    Cache-first rate lookup backed by the local database.

    API failures in the wrapped source are logged and reported as an
    unavailable rate, which the balance calculator turns into a
    mixed-currency warning.
    """

    def __init__(self, source: RateLookup, database: Database):
        self.source = source
        self.db = database

    def __call__(
        self, from_currency: str, to_currency: str, on_date: date | None = None
    ) -> Decimal | None:
        from_code = normalize_currency_code(from_currency)
        to_code = normalize_currency_code(to_currency)

        cached = self.db.get_exchange_rate(from_code, to_code, on_date)
        if cached is not None:
            logger.debug(f"Rate cache hit for {from_code}/{to_code} on {on_date}")
            return cached

        try:
            rate = self.source(from_code, to_code, on_date)
        except ExchangeRateAPIError as e:
            logger.warning(f"Exchange rate unavailable for {from_code}/{to_code}: {e}")
            return None

        # "latest" rates go stale, only dated rates are cached
        if rate is not None and on_date is not None:
            self.db.save_exchange_rate(from_code, to_code, on_date, rate)

        return rate
