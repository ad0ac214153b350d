class LedgerError(ValueError):
    """Base class for ledger computation errors."""


class InvalidRate(LedgerError):
    """A stored exchange rate is non-positive or otherwise unusable."""


class RateUnavailable(LedgerError):
    """No direct or inverse rate exists for a required currency pair."""

    def __init__(self, from_currency, to_currency, as_of=None):
        self.from_currency = from_currency
        self.to_currency = to_currency
        self.as_of = as_of
        message = f"No exchange rate available for {_code(from_currency)}->{_code(to_currency)}"
        if as_of is not None:
            message += f" as of {as_of.isoformat()}"
        super().__init__(message)


class InvalidDateRange(LedgerError):
    pass


class InvalidCurrency(LedgerError):
    pass


class MalformedRecord(LedgerError):
    pass


def _code(currency) -> str:
    return getattr(currency, "value", str(currency))
