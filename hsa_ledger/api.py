"""
FastAPI REST API Module

Thin HTTP adapter over the ledger. Routes mirror the account service the
web client talks to; every rule lives in the core, this module only maps
requests to ledger calls and ledger errors to status codes
(InvalidInputError -> 400, NotFoundError -> 404).
"""

from typing import Any, Dict, Optional
from fastapi import FastAPI, HTTPException, Depends, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
import uvicorn

from . import __version__
from .config import LedgerConfig, get_config
from .currency import Currency, Money
from .storage import StorageInterface, InMemoryStorage, SQLiteStorage
from .audit import AuditTrail
from .accounts import Account, AccountDirectory
from .cards import Card, CardIssuer
from .merchants import MerchantQualifier
from .transactions import Transaction
from .ledger import Ledger
from .exceptions import InvalidInputError, LedgerError, NotFoundError
from .logging_config import get_logger, setup_logging


logger = get_logger("hsa_ledger.api")


# Request models. Fields are untyped so that missing or malformed values reach
# the ledger's own validation and come back as 400 rather than 422.
class CreateAccountRequest(BaseModel):
    name: Any = None
    email: Any = None


class DepositRequest(BaseModel):
    amount: Any = None


class AuthorizeTransactionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount: Any = None
    description: Any = None
    card_id: Any = Field(None, alias="cardId")


class InterestRequest(BaseModel):
    rate: Any = None


# Ledger System Context
class LedgerSystem:
    """All ledger components wired over one storage backend"""

    def __init__(self, config: Optional[LedgerConfig] = None, storage: Optional[StorageInterface] = None):
        self.config = config or get_config()

        if storage is not None:
            self.storage = storage
        elif self.config.storage_backend == "sqlite":
            self.storage = SQLiteStorage(self.config.database_path)
        elif self.config.storage_backend == "memory":
            self.storage = InMemoryStorage()
        else:
            raise ValueError(f"Unknown storage backend: {self.config.storage_backend}")

        currency = Currency[self.config.currency]
        self.audit_trail = AuditTrail(self.storage)
        self.directory = AccountDirectory(self.storage, self.audit_trail, currency=currency)
        self.card_issuer = CardIssuer(
            prefix=self.config.card_number_prefix,
            validity_years=self.config.card_validity_years
        )
        self.qualifier = MerchantQualifier()
        self.ledger = Ledger(
            self.storage, self.directory, self.audit_trail,
            card_issuer=self.card_issuer,
            qualifier=self.qualifier,
            default_interest_rate=self.config.interest_rate,
            card_issue_max_attempts=self.config.card_issue_max_attempts
        )

    def close(self) -> None:
        self.storage.close()


_system: Optional[LedgerSystem] = None


# Dependency to get the ledger system
def get_ledger_system() -> LedgerSystem:
    global _system
    if _system is None:
        _system = LedgerSystem()
    return _system


# Response serialization
def money_to_str(money: Money) -> str:
    return str(money.amount)


def card_to_response(card: Card) -> Dict[str, Any]:
    return {
        "id": card.id,
        "cardNumber": card.card_number,
        "maskedNumber": card.masked_number,
        "expiry": card.expiry,
        "cvv": card.cvv,
        "accountId": card.account_id
    }


def transaction_to_response(transaction: Transaction) -> Dict[str, Any]:
    return {
        "id": transaction.id,
        "amount": money_to_str(transaction.amount),
        "description": transaction.description,
        "status": transaction.status.value,
        "cardId": transaction.card_id,
        "cardNumber": transaction.card_number,
        "balanceAfter": money_to_str(transaction.balance_after),
        "createdAt": transaction.created_at.isoformat()
    }


def account_to_response(account: Account) -> Dict[str, Any]:
    return {
        "id": account.id,
        "name": account.name,
        "email": account.email,
        "currency": account.currency.code,
        "balance": money_to_str(account.balance),
        "cards": [card_to_response(card) for card in account.cards],
        "transactions": [transaction_to_response(txn) for txn in account.transactions]
    }


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="HSA Ledger API",
        description="Custodial ledger with qualified-merchant card authorization",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_config().cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request, exc: LedgerError):
        # InvalidInputError and NotFoundError are mapped in the routes; anything else is ours
        logger.error("Unhandled ledger error: %s", exc.message)
        return JSONResponse(status_code=500, content={"detail": exc.message})

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy", "service": "hsa_ledger", "version": __version__}

    @app.post("/account", status_code=status.HTTP_201_CREATED)
    async def create_account(
        request: CreateAccountRequest,
        system: LedgerSystem = Depends(get_ledger_system)
    ):
        """Create an account, or return the one already registered for the email"""
        try:
            account, created = system.directory.resolve_or_create(request.name, request.email)
        except InvalidInputError as e:
            raise HTTPException(status_code=400, detail=e.message)

        body = {
            "accountId": account.id,
            "message": "Account created successfully" if created else "Account already exists",
            "account": account_to_response(account)
        }
        if not created:
            return JSONResponse(status_code=status.HTTP_200_OK, content=body)
        return body

    @app.get("/account/by-email/{email}")
    async def get_account_by_email(
        email: str,
        system: LedgerSystem = Depends(get_ledger_system)
    ):
        """Look up an account by email"""
        try:
            account = system.directory.lookup_by_email(email)
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=e.message)

        return {"accountId": account.id, "account": account_to_response(account)}

    @app.get("/account/{account_id}")
    async def get_account(
        account_id: str,
        system: LedgerSystem = Depends(get_ledger_system)
    ):
        """Get account snapshot"""
        try:
            account = system.ledger.get_account(account_id)
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=e.message)

        return account_to_response(account)

    @app.post("/account/{account_id}/deposit")
    async def deposit(
        account_id: str,
        request: DepositRequest,
        system: LedgerSystem = Depends(get_ledger_system)
    ):
        """Deposit funds"""
        try:
            new_balance = system.ledger.deposit(account_id, request.amount)
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=e.message)
        except InvalidInputError as e:
            raise HTTPException(status_code=400, detail=e.message)

        return {"message": "Deposit successful", "newBalance": money_to_str(new_balance)}

    @app.post("/account/{account_id}/card", status_code=status.HTTP_201_CREATED)
    async def issue_card(
        account_id: str,
        system: LedgerSystem = Depends(get_ledger_system)
    ):
        """Issue a card"""
        try:
            card = system.ledger.issue_card(account_id)
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=e.message)

        return {"message": "Card issued successfully", "card": card_to_response(card)}

    @app.post("/account/{account_id}/transaction")
    async def authorize_transaction(
        account_id: str,
        request: AuthorizeTransactionRequest,
        system: LedgerSystem = Depends(get_ledger_system)
    ):
        """Authorize a card transaction; declines are recorded, not rejected"""
        try:
            # The returned snapshot must be the state right after this transaction
            with system.directory.account_lock(account_id):
                transaction = system.ledger.authorize_transaction(
                    account_id=account_id,
                    card_id=request.card_id,
                    amount=request.amount,
                    description=request.description
                )
                account = system.ledger.get_account(account_id)
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=e.message)
        except InvalidInputError as e:
            raise HTTPException(status_code=400, detail=e.message)

        return {
            "message": "Transaction processed",
            "account": account_to_response(account),
            "transaction": transaction_to_response(transaction)
        }

    @app.post("/account/{account_id}/interest")
    async def apply_interest(
        account_id: str,
        request: Optional[InterestRequest] = None,
        system: LedgerSystem = Depends(get_ledger_system)
    ):
        """Apply interest (1% unless a rate is given)"""
        rate = request.rate if request else None
        try:
            transaction = system.ledger.apply_interest(account_id, rate=rate)
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=e.message)
        except InvalidInputError as e:
            raise HTTPException(status_code=400, detail=e.message)

        return {
            "message": "Interest applied",
            "newBalance": money_to_str(transaction.balance_after),
            "transaction": transaction_to_response(transaction)
        }

    @app.get("/audit/integrity")
    async def verify_audit_integrity(system: LedgerSystem = Depends(get_ledger_system)):
        """Verify the audit hash chain"""
        return system.audit_trail.verify_integrity()

    return app


app = create_app()


# Run server function
def run_server(host: Optional[str] = None, port: Optional[int] = None, debug: bool = False):
    """Run the FastAPI server"""
    config = get_config()
    setup_logging(config.log_level, fmt=config.log_format)
    uvicorn.run(
        "hsa_ledger.api:app",
        host=host or config.api_host,
        port=port or config.api_port,
        reload=debug,
        log_level=config.log_level.lower()
    )
