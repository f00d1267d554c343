"""
Points Ledger

This module provides:
- Per-user wallets with a non-negative points balance
- Immutable, append-only wallet transactions
- Credit and debit paired with exactly one transaction row
- An in-memory store with atomic conditional updates and transactions
- The shared service error taxonomy
"""

from .errors import (
    AuthenticationError,
    DuplicateKeyError,
    InsufficientFundsError,
    InvalidAmountError,
    InvalidStateTransitionError,
    NotFoundError,
    ServiceError,
    TransientDependencyError,
    ValidationError,
)
from .models import LedgerReconciliation, Wallet, WalletSummary, WalletTransaction
from .service import LedgerService
from .storage import InMemoryStorage

__all__ = [
    "AuthenticationError",
    "DuplicateKeyError",
    "InMemoryStorage",
    "InsufficientFundsError",
    "InvalidAmountError",
    "InvalidStateTransitionError",
    "LedgerReconciliation",
    "LedgerService",
    "NotFoundError",
    "ServiceError",
    "TransientDependencyError",
    "ValidationError",
    "Wallet",
    "WalletSummary",
    "WalletTransaction",
]
