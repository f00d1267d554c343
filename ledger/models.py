from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field


class Wallet(BaseModel):
    id: Optional[UUID] = None
    user_id: UUID
    points_balance: int = Field(default=0, ge=0)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class WalletTransaction(BaseModel):
    id: UUID
    wallet_id: UUID
    user_id: UUID
    delta_points: int
    reason: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class WalletSummary(BaseModel):
    user_id: UUID
    balance: int
    transactions: list[WalletTransaction]


class LedgerReconciliation(BaseModel):
    user_id: UUID
    balance: int
    ledger_total: int
    transaction_count: int

    @computed_field
    @property
    def consistent(self) -> bool:
        return self.balance == self.ledger_total and self.balance >= 0
