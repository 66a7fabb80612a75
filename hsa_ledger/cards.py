"""
Card Issuance Module

Generates synthetic payment cards bound to an account. Numbers are a fixed
network prefix followed by 12 random digits; uniqueness is probabilistic
here and checked by the ledger when a card is accepted.
"""

import random
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from .storage import StorageRecord


DEFAULT_CARD_PREFIX = "4000"
DEFAULT_VALIDITY_YEARS = 3

# 12 random digits with no leading zero
_SERIAL_MIN = 100_000_000_000
_SERIAL_MAX = 999_999_999_999


@dataclass
class Card(StorageRecord):
    """
    Payment card owned by one account. Never modified after issuance.
    """
    card_number: str
    expiry_month: int
    expiry_year: int
    cvv: str
    account_id: str

    @property
    def expiry(self) -> str:
        """Expiry as MM/YYYY"""
        return f"{self.expiry_month:02d}/{self.expiry_year}"

    @property
    def last4(self) -> str:
        return self.card_number[-4:]

    @property
    def masked_number(self) -> str:
        return f"•••• {self.last4}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Card':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            card_number=data['card_number'],
            expiry_month=int(data['expiry_month']),
            expiry_year=int(data['expiry_year']),
            cvv=data['cvv'],
            account_id=data['account_id']
        )


class CardIssuer:
    """
    Produces new Card values. Has no side effects.

    Args:
        prefix: Network prefix placed before the random serial
        validity_years: Years added to the current year for the expiry
        rng: Random source, injectable for deterministic tests
        clock: Returns the current time, injectable for tests
    """

    def __init__(
        self,
        prefix: str = DEFAULT_CARD_PREFIX,
        validity_years: int = DEFAULT_VALIDITY_YEARS,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        if not prefix.isdigit():
            raise ValueError("Card prefix must be numeric")
        self.prefix = prefix
        self.validity_years = validity_years
        self._rng = rng or random.SystemRandom()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def number_length(self) -> int:
        return len(self.prefix) + len(str(_SERIAL_MAX))

    def issue(self, account_id: str) -> Card:
        now = self._clock()
        serial = self._rng.randint(_SERIAL_MIN, _SERIAL_MAX)

        return Card(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            card_number=f"{self.prefix}{serial}",
            expiry_month=self._rng.randint(1, 12),
            expiry_year=now.year + self.validity_years,
            cvv=str(self._rng.randint(100, 999)),
            account_id=account_id
        )
