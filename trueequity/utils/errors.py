"""
TRUEEQUITY — Error Types
Absent data is never an exception; these cover logic and upstream failures only.
"""


class TrueEquityError(Exception):
    """Base class for pipeline errors."""


class ValidationFailure(TrueEquityError):
    """A write was attempted without its identity fields (symbol, name)."""


class ProviderError(TrueEquityError):
    """An upstream answered with an error payload, a rate-limit note or a bad status."""

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(f"{source}: {message}")
