import logging
from datetime import datetime, timezone
from typing import Union
from uuid import UUID, uuid4

from ledger.errors import InsufficientFundsError, NotFoundError
from ledger.service import LedgerService
from ledger.storage import REDEMPTION_REQUESTS, InMemoryStorage
from ledger.validation import parse_or_raise

from .models import CreateRedemptionRequest, RedemptionMethod, RedemptionRequest, RedemptionStatus

logger = logging.getLogger(__name__)

REDEMPTION_REASON = "Redemption request"


class RedemptionService:
    """Cash-out requests against the points wallet.

    The wallet is debited before the request is recorded, and both happen in
    one storage transaction: a lost debit never leaves a request behind, and a
    failed insert rolls the debit back.
    """

    def __init__(self, storage: InMemoryStorage, ledger: LedgerService):
        self.storage = storage
        self.ledger = ledger

    def request_redemption(
        self, user_id: UUID, method: Union[RedemptionMethod, str], points: int
    ) -> RedemptionRequest:
        request = parse_or_raise(CreateRedemptionRequest, {"method": method, "points": points})

        balance = self.ledger.get_wallet(user_id).points_balance
        if request.points > balance:
            raise InsufficientFundsError(
                f"Insufficient points. Required: {request.points}, available: {balance}"
            )

        now = datetime.now(timezone.utc)
        with self.storage.transaction():
            self.ledger.debit(user_id, request.points, REDEMPTION_REASON)
            record = self.storage.insert(REDEMPTION_REQUESTS, {
                "id": uuid4(),
                "user_id": user_id,
                "points": request.points,
                "status": RedemptionStatus.PENDING.value,
                "method": request.method.value,
                "payout_ref": None,
                "created_at": now,
                "updated_at": now,
            })
        logger.info("Redemption %s: user %s requested %s points via %s",
                    record["id"], user_id, request.points, request.method.value)
        return RedemptionRequest(**record)

    def list_for_user(self, user_id: UUID) -> list[RedemptionRequest]:
        rows = [
            RedemptionRequest(**r)
            for r in reversed(self.storage.find(REDEMPTION_REQUESTS, lambda r: r["user_id"] == user_id))
        ]
        rows.sort(key=lambda r: r.created_at, reverse=True)
        return rows

    def get(self, redemption_id: UUID) -> RedemptionRequest:
        record = self.storage.get(REDEMPTION_REQUESTS, redemption_id)
        if not record:
            raise NotFoundError(f"Redemption {redemption_id} not found")
        return RedemptionRequest(**record)
