"""
Ledger Module

The authoritative owner of account balances. Every balance change goes
through one of four operations:

- deposit: balance only, no transaction record
- issue_card: appends a card, balance untouched
- authorize_transaction: records an approved or declined card transaction
- apply_interest: records a credited interest transaction

Each operation validates everything before it writes anything, runs under
the account's lock, and commits its writes in one storage.atomic() block.
A failed operation leaves the ledger exactly as it was.
"""

from decimal import Decimal
from datetime import datetime, timezone
from contextlib import contextmanager
from typing import Any, List, Optional
import threading
import uuid

from .currency import Money, parse_money, parse_rate
from .storage import StorageInterface
from .audit import AuditTrail, AuditEventType
from .accounts import Account, AccountDirectory
from .cards import Card, CardIssuer
from .merchants import MerchantQualifier
from .transactions import Transaction, TransactionStatus, INTEREST_DESCRIPTION
from .exceptions import InvalidInputError, LedgerError, NotFoundError
from .logging_config import get_logger, log_action


DEFAULT_INTEREST_RATE = Decimal('0.01')


class Ledger:
    """
    Balance-mutating operations over the accounts of an AccountDirectory
    """

    def __init__(
        self,
        storage: StorageInterface,
        directory: AccountDirectory,
        audit_trail: AuditTrail,
        card_issuer: Optional[CardIssuer] = None,
        qualifier: Optional[MerchantQualifier] = None,
        default_interest_rate: Decimal = DEFAULT_INTEREST_RATE,
        card_issue_max_attempts: int = 5
    ):
        self.storage = storage
        self.directory = directory
        self.audit_trail = audit_trail
        self.card_issuer = card_issuer or CardIssuer()
        self.qualifier = qualifier or MerchantQualifier()
        self.default_interest_rate = default_interest_rate
        self.card_issue_max_attempts = card_issue_max_attempts
        self.logger = get_logger("hsa_ledger.ledger")

        # Card numbers are unique across accounts, not just within one
        self._card_number_lock = threading.Lock()

    @contextmanager
    def _atomic(self):
        try:
            with self.storage.atomic():
                yield
        except Exception:
            # The rollback may have dropped an audit event the chain head already counts
            self.audit_trail.resync()
            raise

    def get_account(self, account_id: str) -> Account:
        """Snapshot of an account with its cards and transactions"""
        return self.directory.lookup_by_id(account_id)

    def get_transactions(self, account_id: str) -> List[Transaction]:
        return self.directory.lookup_by_id(account_id).transactions

    def deposit(self, account_id: str, amount: Any) -> Money:
        """
        Add funds to an account

        Deposits change the balance without creating a transaction record;
        they are reconciled through total_deposited and the audit trail.

        Returns:
            The new balance

        Raises:
            NotFoundError: If the account does not exist
            InvalidAmountError: If amount is not a positive finite number
        """
        with self.directory.account_lock(account_id):
            account = self.directory.lookup_by_id(account_id)
            deposit_amount = parse_money(amount, account.currency, "Deposit amount")

            account.balance = account.balance + deposit_amount
            account.total_deposited = account.total_deposited + deposit_amount
            account.updated_at = datetime.now(timezone.utc)

            with self._atomic():
                self.directory.save_account(account)
                self.audit_trail.log_event(
                    event_type=AuditEventType.DEPOSIT_RECEIVED,
                    entity_type="account",
                    entity_id=account.id,
                    metadata={
                        "amount": deposit_amount.amount,
                        "new_balance": account.balance.amount
                    }
                )

        log_action(
            self.logger, "info", "Deposit received",
            action="deposit", resource=f"account:{account.id}",
            extra={"amount": str(deposit_amount.amount), "new_balance": str(account.balance.amount)}
        )
        return account.balance

    def issue_card(self, account_id: str) -> Card:
        """
        Issue a new card to an account

        Raises:
            NotFoundError: If the account does not exist
            LedgerError: If no unused card number could be generated
        """
        with self.directory.account_lock(account_id):
            account = self.directory.lookup_by_id(account_id)

            with self._card_number_lock:
                card = self._generate_unique_card(account.id)
                account.updated_at = datetime.now(timezone.utc)

                with self._atomic():
                    self.storage.save(self.directory.cards_table, card.id, card.to_dict())
                    self.directory.save_account(account)
                    self.audit_trail.log_event(
                        event_type=AuditEventType.CARD_ISSUED,
                        entity_type="card",
                        entity_id=card.id,
                        metadata={
                            "account_id": account.id,
                            "last4": card.last4,
                            "expiry": card.expiry
                        }
                    )

        log_action(
            self.logger, "info", "Card issued",
            action="issue_card", resource=f"account:{account.id}",
            extra={"card_id": card.id, "last4": card.last4}
        )
        return card

    def _generate_unique_card(self, account_id: str) -> Card:
        for attempt in range(1, self.card_issue_max_attempts + 1):
            card = self.card_issuer.issue(account_id)
            if not self.storage.find(self.directory.cards_table, {"card_number": card.card_number}):
                return card
            self.logger.warning(
                "Generated card number collides with an issued card, retrying (attempt %d)", attempt
            )

        raise LedgerError(
            "Could not generate a unique card number",
            {"account_id": account_id, "attempts": self.card_issue_max_attempts}
        )

    def authorize_transaction(
        self,
        account_id: str,
        card_id: str,
        amount: Any,
        description: str
    ) -> Transaction:
        """
        Authorize a card transaction

        The transaction is declined when the description names no qualified
        merchant, or when the balance is lower than the amount. Otherwise it
        is approved and the balance is reduced by the amount. Either way the
        attempt is appended to the account's history.

        Returns:
            The recorded Transaction, carrying the card number

        Raises:
            NotFoundError: If the account, or the card within it, does not exist
            InvalidInputError: If amount, description or card_id is missing,
                or amount is not a positive finite number
        """
        with self.directory.account_lock(account_id):
            account = self.directory.lookup_by_id(account_id)

            if (
                amount is None or amount == ""
                or not description or not isinstance(description, str)
                or not isinstance(card_id, str) or not card_id
            ):
                raise InvalidInputError("Amount, description, and cardId are required")

            txn_amount = parse_money(amount, account.currency, "Transaction amount")

            card = account.find_card(card_id)
            if card is None:
                raise NotFoundError("Card not found", {"account_id": account_id, "card_id": card_id})

            matched_terms = self.qualifier.matching_terms(description)
            if not matched_terms:
                status = TransactionStatus.DECLINED
                reason = "merchant_not_qualified"
            elif account.balance < txn_amount:
                status = TransactionStatus.DECLINED
                reason = "insufficient_funds"
            else:
                status = TransactionStatus.APPROVED
                reason = None
                account.balance = account.balance - txn_amount

            now = datetime.now(timezone.utc)
            account.updated_at = now
            transaction = Transaction(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                account_id=account.id,
                sequence=len(account.transactions),
                amount=txn_amount,
                description=description,
                status=status,
                balance_after=account.balance,
                card_id=card.id,
                card_number=card.card_number
            )

            with self._atomic():
                self.storage.save(self.directory.transactions_table, transaction.id, transaction.to_dict())
                self.directory.save_account(account)
                self.audit_trail.log_event(
                    event_type=(
                        AuditEventType.TRANSACTION_APPROVED if transaction.is_approved
                        else AuditEventType.TRANSACTION_DECLINED
                    ),
                    entity_type="transaction",
                    entity_id=transaction.id,
                    metadata={
                        "account_id": account.id,
                        "card_id": card.id,
                        "amount": txn_amount.amount,
                        "matched_terms": matched_terms,
                        "decline_reason": reason,
                        "balance_after": account.balance.amount
                    }
                )
            account.transactions.append(transaction)

        log_action(
            self.logger, "info", f"Transaction {status.value}",
            action="authorize_transaction", resource=f"transaction:{transaction.id}",
            extra={
                "account_id": account.id,
                "last4": card.last4,
                "amount": str(txn_amount.amount),
                "status": status.value,
                "decline_reason": reason
            }
        )
        return transaction

    def apply_interest(self, account_id: str, rate: Any = None) -> Transaction:
        """
        Credit interest on the current balance

        interest = balance * rate, rounded to the currency precision. The
        credit is recorded even when it is zero.

        Args:
            account_id: Account to credit
            rate: Interest rate; defaults to the configured rate (0.01)

        Returns:
            The credited Transaction

        Raises:
            NotFoundError: If the account does not exist
            InvalidAmountError: If rate is negative or not a finite number
        """
        with self.directory.account_lock(account_id):
            account = self.directory.lookup_by_id(account_id)
            interest_rate = self.default_interest_rate if rate is None else parse_rate(rate)

            interest = account.balance * interest_rate
            account.balance = account.balance + interest

            now = datetime.now(timezone.utc)
            account.updated_at = now
            transaction = Transaction(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                account_id=account.id,
                sequence=len(account.transactions),
                amount=interest,
                description=INTEREST_DESCRIPTION,
                status=TransactionStatus.CREDITED,
                balance_after=account.balance
            )

            with self._atomic():
                self.storage.save(self.directory.transactions_table, transaction.id, transaction.to_dict())
                self.directory.save_account(account)
                self.audit_trail.log_event(
                    event_type=AuditEventType.INTEREST_CREDITED,
                    entity_type="transaction",
                    entity_id=transaction.id,
                    metadata={
                        "account_id": account.id,
                        "rate": interest_rate,
                        "amount": interest.amount,
                        "balance_after": account.balance.amount
                    }
                )
            account.transactions.append(transaction)

        log_action(
            self.logger, "info", "Interest credited",
            action="apply_interest", resource=f"transaction:{transaction.id}",
            extra={"account_id": account.id, "rate": str(interest_rate), "amount": str(interest.amount)}
        )
        return transaction

    def verify_balance(self, account_id: str) -> bool:
        """
        Reconcile an account's balance against its history

        The balance must equal total deposits plus interest credits minus
        approved debits, and must not be negative.
        """
        account = self.directory.lookup_by_id(account_id)

        expected = account.total_deposited
        for transaction in account.transactions:
            expected = expected + transaction.balance_effect

        return expected == account.balance and not account.balance.is_negative()
