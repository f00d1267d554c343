import logging
from datetime import datetime, timezone
from uuid import UUID, uuid4

from .errors import InsufficientFundsError, InvalidAmountError
from .models import LedgerReconciliation, Wallet, WalletSummary, WalletTransaction
from .storage import WALLET_TRANSACTIONS, WALLETS, InMemoryStorage

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _check_amount(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmountError(f"Amount must be a positive integer, got {amount!r}")
    return amount


class LedgerService:
    """Single authority for wallet balance mutation.

    Every balance change is paired with exactly one WalletTransaction row,
    written inside the same storage transaction.
    """

    def __init__(self, storage: InMemoryStorage):
        self.storage = storage

    def ensure_wallet(self, user_id: UUID) -> Wallet:
        now = _now()
        record, created = self.storage.insert_if_absent(WALLETS, {
            "id": uuid4(),
            "user_id": user_id,
            "points_balance": 0,
            "created_at": now,
            "updated_at": now,
        })
        if created:
            logger.info("Created wallet %s for user %s", record["id"], user_id)
        return Wallet(**record)

    def credit(self, user_id: UUID, amount: int, reason: str) -> Wallet:
        amount = _check_amount(amount)
        with self.storage.transaction():
            self.ensure_wallet(user_id)
            updated = self.storage.update_if(
                WALLETS, user_id,
                lambda w: True,
                lambda w: {**w, "points_balance": w["points_balance"] + amount, "updated_at": _now()},
            )
            self._append(updated, amount, reason)
        logger.info("Credited %s points to user %s (%s), balance %s",
                    amount, user_id, reason, updated["points_balance"])
        return Wallet(**updated)

    def debit(self, user_id: UUID, amount: int, reason: str) -> Wallet:
        amount = _check_amount(amount)
        with self.storage.transaction():
            updated = self.storage.update_if(
                WALLETS, user_id,
                lambda w: w["points_balance"] >= amount,
                lambda w: {**w, "points_balance": w["points_balance"] - amount, "updated_at": _now()},
            )
            if updated is None:
                balance = self.get_wallet(user_id).points_balance
                raise InsufficientFundsError(
                    f"Insufficient points. Required: {amount}, available: {balance}"
                )
            self._append(updated, -amount, reason)
        logger.info("Debited %s points from user %s (%s), balance %s",
                    amount, user_id, reason, updated["points_balance"])
        return Wallet(**updated)

    def get_wallet(self, user_id: UUID) -> Wallet:
        record = self.storage.get(WALLETS, user_id)
        if record is None:
            return Wallet(user_id=user_id, points_balance=0)
        return Wallet(**record)

    def list_transactions(self, user_id: UUID, limit: int = 50) -> list[WalletTransaction]:
        entries = [
            WalletTransaction(**e)
            for e in reversed(self.storage.find(WALLET_TRANSACTIONS, lambda e: e["user_id"] == user_id))
        ]
        entries.sort(key=lambda e: e.created_at, reverse=True)
        return entries[:limit]

    def get_summary(self, user_id: UUID, limit: int = 50) -> WalletSummary:
        return WalletSummary(
            user_id=user_id,
            balance=self.get_wallet(user_id).points_balance,
            transactions=self.list_transactions(user_id, limit),
        )

    def reconcile(self, user_id: UUID) -> LedgerReconciliation:
        with self.storage.transaction():
            balance = self.get_wallet(user_id).points_balance
            deltas = [
                e["delta_points"]
                for e in self.storage.find(WALLET_TRANSACTIONS, lambda e: e["user_id"] == user_id)
            ]
        result = LedgerReconciliation(
            user_id=user_id,
            balance=balance,
            ledger_total=sum(deltas),
            transaction_count=len(deltas),
        )
        if not result.consistent:
            logger.error("Ledger mismatch for user %s: balance %s, ledger total %s",
                         user_id, result.balance, result.ledger_total)
        return result

    def _append(self, wallet: dict, delta: int, reason: str) -> WalletTransaction:
        entry = self.storage.insert(WALLET_TRANSACTIONS, {
            "id": uuid4(),
            "wallet_id": wallet["id"],
            "user_id": wallet["user_id"],
            "delta_points": delta,
            "reason": reason,
            "created_at": _now(),
        })
        return WalletTransaction(**entry)
