"""
Transaction Records Module

An account's transaction history is append-only: one record per card
authorization attempt (approved or declined) and one per interest credit.
Deposits change the balance without creating a record here.
"""

from datetime import datetime
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional
from enum import Enum

from .currency import Money, Currency
from .storage import StorageRecord


INTEREST_DESCRIPTION = "Interest applied"


class TransactionStatus(Enum):
    """Outcome of a transaction"""
    APPROVED = "approved"    # Card debit, balance reduced
    DECLINED = "declined"    # Card debit refused, balance untouched
    CREDITED = "credited"    # Interest credit, balance increased


@dataclass
class Transaction(StorageRecord):
    """
    Immutable transaction record.

    card_id and card_number are None for interest credits. sequence is the
    record's position in its account's history.
    """
    account_id: str
    sequence: int
    amount: Money
    description: str
    status: TransactionStatus
    balance_after: Money
    card_id: Optional[str] = None
    card_number: Optional[str] = None

    def __post_init__(self):
        if self.amount.is_negative():
            raise ValueError("Transaction amount must not be negative")

        # A zero-balance account still records its (zero) interest credit
        if self.amount.is_zero() and self.status != TransactionStatus.CREDITED:
            raise ValueError("Card transaction amount must be positive")

        if self.status == TransactionStatus.CREDITED and self.card_id:
            raise ValueError("Credits are not made against a card")

    @property
    def is_approved(self) -> bool:
        return self.status == TransactionStatus.APPROVED

    @property
    def is_credit(self) -> bool:
        return self.status == TransactionStatus.CREDITED

    @property
    def balance_effect(self) -> Money:
        """Signed change this record made to the balance"""
        if self.is_credit:
            return self.amount
        if self.is_approved:
            return -self.amount
        return Money.zero(self.amount.currency)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'account_id': self.account_id,
            'sequence': self.sequence,
            'amount': str(self.amount.amount),
            'currency': self.amount.currency.code,
            'description': self.description,
            'status': self.status.value,
            'balance_after': str(self.balance_after.amount),
            'card_id': self.card_id,
            'card_number': self.card_number
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Transaction':
        currency = Currency[data['currency']]
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            account_id=data['account_id'],
            sequence=data['sequence'],
            amount=Money(Decimal(data['amount']), currency),
            description=data['description'],
            status=TransactionStatus(data['status']),
            balance_after=Money(Decimal(data['balance_after']), currency),
            card_id=data.get('card_id'),
            card_number=data.get('card_number')
        )
