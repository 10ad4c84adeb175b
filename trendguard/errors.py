"""Error taxonomy.

Missing data is not an error: indicators return ``None`` below their
minimum history.  The exceptions here cover the remaining cases.
"""


class TrendGuardError(Exception):
    """Base class for all TrendGuard errors."""


class InvariantViolation(TrendGuardError, ValueError):
    """An argument or state change would break a position invariant."""


class UnavailablePrice(TrendGuardError):
    """No current price is known for a symbol."""

    def __init__(self, symbol: str) -> None:
        super().__init__(f"No current price available for {symbol}")
        self.symbol = symbol


class ExternalCallFailure(TrendGuardError):
    """A market-data or execution collaborator call failed."""

    def __init__(self, operation: str, symbol: str | None, cause: Exception) -> None:
        target = f" for {symbol}" if symbol else ""
        super().__init__(f"{operation} failed{target}: {cause}")
        self.operation = operation
        self.symbol = symbol
        self.cause = cause
