"""Custom exceptions for grex-settle."""


class GrexSettleError(Exception):
    """Base exception for all grex-settle errors."""

    pass


class ConfigurationError(GrexSettleError):
    """Raised when configuration is invalid or missing."""

    pass


class CurrencyError(GrexSettleError):
    """Raised when a currency code is unknown or unsupported."""

    pass


class InvalidExpenseError(GrexSettleError):
    """Raised when an expense fails validation before it is recorded."""

    pass


class SettlementInvariantError(GrexSettleError):
    """Raised when the planner is left with balances it cannot settle.

    This only happens when the input balances do not sum to zero, which
    points at inconsistent data upstream of the planner.
    """

    def __init__(self, residuals: dict[str, int], message: str | None = None):
        self.residuals = residuals
        super().__init__(
            message
            or f"Settlement plan left unsettled balances: {residuals} "
            f"(net {sum(residuals.values())})"
        )


class APIError(GrexSettleError):
    """Base class for API-related errors."""

    pass


class StoreAPIError(APIError):
    """Raised when a request to the group data store fails."""

    pass


class ExchangeRateAPIError(APIError):
    """Raised when the exchange rate API request fails."""

    pass
