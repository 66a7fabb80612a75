"""
Ledger exceptions

Failures raised by the core. The API layer maps InvalidInputError to 400,
NotFoundError to 404 and any other LedgerError to 500.
"""

from typing import Any, Dict, Optional


class LedgerError(Exception):
    """Base exception for all ledger errors"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class InvalidInputError(LedgerError, ValueError):
    """A required field is missing or malformed"""

    pass


class InvalidAmountError(InvalidInputError):
    """An amount is not a positive, finite number"""

    pass


class NotFoundError(LedgerError, LookupError):
    """An account, or a card within an account, does not exist"""

    pass
