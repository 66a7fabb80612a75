"""
Account Directory Module

Creates accounts and resolves them by id or by email. The email index
guarantees at most one account per email; it is written in the same atomic
block as the account it points to.

The directory also owns the per-account locks. Every read and every
mutation of an account runs under that account's lock, so a snapshot never
shows a balance out of step with the transaction list.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
import threading
import uuid

from .currency import Money, Currency
from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .cards import Card
from .transactions import Transaction
from .exceptions import InvalidInputError, NotFoundError
from .logging_config import get_logger, log_action


@dataclass
class Account(StorageRecord):
    """
    Balance-holding account identified by id and by email.

    cards and transactions are kept in issue/record order. total_deposited
    is the running sum of deposits, which are not part of the transaction
    history.
    """
    name: str
    email: str
    currency: Currency
    balance: Money
    total_deposited: Money
    cards: List[Card] = field(default_factory=list)
    transactions: List[Transaction] = field(default_factory=list)

    def __post_init__(self):
        if self.balance.currency != self.currency:
            raise ValueError("Balance currency must match account currency")
        if self.total_deposited.currency != self.currency:
            raise ValueError("Deposit total currency must match account currency")

    def find_card(self, card_id: str) -> Optional[Card]:
        for card in self.cards:
            if card.id == card_id:
                return card
        return None


class AccountDirectory:
    """
    Email-to-account index and account loader
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail, currency: Currency = Currency.USD):
        self.storage = storage
        self.audit_trail = audit_trail
        self.currency = currency
        self.accounts_table = "accounts"
        self.email_index_table = "email_index"
        self.cards_table = "cards"
        self.transactions_table = "transactions"
        self.logger = get_logger("hsa_ledger.accounts")

        self._create_lock = threading.Lock()
        self._locks_guard = threading.Lock()
        self._account_locks: Dict[str, threading.RLock] = {}

    def account_lock(self, account_id: str) -> threading.RLock:
        """
        Lock serializing all access to one account

        Raises:
            NotFoundError: If the account does not exist
        """
        # Accounts are never deleted, so an existence check outside the lock holds
        if not account_id or not self.storage.exists(self.accounts_table, account_id):
            raise NotFoundError("Account not found", {"account_id": account_id})

        with self._locks_guard:
            lock = self._account_locks.get(account_id)
            if lock is None:
                lock = threading.RLock()
                self._account_locks[account_id] = lock
            return lock

    def resolve_or_create(self, name: str, email: str) -> Tuple[Account, bool]:
        """
        Return the account registered for email, creating it on first use

        The name is only used when the account is created; a later call
        with a different name returns the stored account unchanged.

        Returns:
            (account, created) where created is False for an existing email

        Raises:
            InvalidInputError: If name or email is empty
        """
        if not name or not isinstance(name, str) or not email or not isinstance(email, str):
            raise InvalidInputError("Name and email are required")

        with self._create_lock:
            existing_id = self._account_id_for_email(email)
            if existing_id:
                return self.lookup_by_id(existing_id), False

            now = datetime.now(timezone.utc)
            account = Account(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                name=name,
                email=email,
                currency=self.currency,
                balance=Money.zero(self.currency),
                total_deposited=Money.zero(self.currency)
            )

            with self.storage.atomic():
                self.save_account(account)
                self.storage.save(self.email_index_table, email, {
                    "email": email,
                    "account_id": account.id
                })
                self.audit_trail.log_event(
                    event_type=AuditEventType.ACCOUNT_CREATED,
                    entity_type="account",
                    entity_id=account.id,
                    metadata={"name": name, "email": email, "currency": self.currency.code}
                )

        log_action(
            self.logger, "info", "Account created",
            action="create_account", resource=f"account:{account.id}",
            extra={"account_id": account.id}
        )
        return account, True

    def lookup_by_email(self, email: str) -> Account:
        """
        Raises:
            NotFoundError: If no account is registered for email
        """
        account_id = self._account_id_for_email(email) if email else None
        if not account_id:
            raise NotFoundError("Account not found", {"email": email})
        return self.lookup_by_id(account_id)

    def lookup_by_id(self, account_id: str) -> Account:
        """
        Load a consistent snapshot of an account with its cards and transactions

        Raises:
            NotFoundError: If the account does not exist
        """
        with self.account_lock(account_id):
            data = self.storage.load(self.accounts_table, account_id)
            if data is None:
                raise NotFoundError("Account not found", {"account_id": account_id})
            return self._account_from_dict(data)

    def count(self) -> int:
        return self.storage.count(self.accounts_table)

    def save_account(self, account: Account) -> None:
        """Persist the account row. Cards and transactions live in their own tables."""
        self.storage.save(self.accounts_table, account.id, self._account_to_dict(account))

    def _account_id_for_email(self, email: str) -> Optional[str]:
        entry = self.storage.load(self.email_index_table, email)
        return entry["account_id"] if entry else None

    def _account_to_dict(self, account: Account) -> Dict[str, Any]:
        return {
            'id': account.id,
            'created_at': account.created_at.isoformat(),
            'updated_at': account.updated_at.isoformat(),
            'name': account.name,
            'email': account.email,
            'currency': account.currency.code,
            'balance': str(account.balance.amount),
            'total_deposited': str(account.total_deposited.amount)
        }

    def _account_from_dict(self, data: Dict[str, Any]) -> Account:
        currency = Currency[data['currency']]

        # find() returns insertion order, which is issue order for cards
        cards = [Card.from_dict(item) for item in self.storage.find(self.cards_table, {"account_id": data['id']})]

        transactions = [
            Transaction.from_dict(item)
            for item in self.storage.find(self.transactions_table, {"account_id": data['id']})
        ]
        transactions.sort(key=lambda txn: txn.sequence)

        return Account(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            name=data['name'],
            email=data['email'],
            currency=currency,
            balance=Money(Decimal(data['balance']), currency),
            total_deposited=Money(Decimal(data['total_deposited']), currency),
            cards=cards,
            transactions=transactions
        )
