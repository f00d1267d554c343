import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from ledger.errors import NotFoundError
from ledger.storage import BANK_DETAILS, USERS, InMemoryStorage
from ledger.validation import parse_or_raise

from .crypto import encrypt_pii, mask_account
from .models import (
    BankDetailsRequest,
    BankDetailsView,
    Identity,
    UpdateProfileRequest,
    User,
)

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class AccountService:
    def __init__(self, storage: InMemoryStorage, pii_key: str):
        self.storage = storage
        self.pii_key = pii_key

    def find_or_create(self, identity: Identity) -> User:
        email = identity.email.lower()
        with self.storage.transaction():
            existing = self.storage.find_one(USERS, lambda u: u["email"] == email)
            if existing:
                return User(**existing)
            now = _now()
            record = self.storage.insert(USERS, {
                "id": uuid4(),
                "email": email,
                "name": identity.name,
                "image": identity.image,
                "profile": {"expertise": None, "bio": None},
                "created_at": now,
                "updated_at": now,
            })
        logger.info("Created user %s for %s", record["id"], email)
        return User(**record)

    def get_user(self, user_id: UUID) -> User:
        record = self.storage.get(USERS, user_id)
        if not record:
            raise NotFoundError(f"User {user_id} not found")
        return User(**record)

    def get_by_email(self, email: str) -> User:
        email = email.lower()
        record = self.storage.find_one(USERS, lambda u: u["email"] == email)
        if not record:
            raise NotFoundError(f"User {email} not found")
        return User(**record)

    def update_profile(self, user_id: UUID, expertise: str, bio: Optional[str] = None) -> User:
        request = parse_or_raise(UpdateProfileRequest, {"expertise": expertise, "bio": bio})
        updated = self.storage.update_if(
            USERS, user_id,
            lambda u: True,
            lambda u: {
                **u,
                "profile": {
                    "expertise": request.expertise,
                    "bio": request.bio if request.bio is not None else u["profile"].get("bio"),
                },
                "updated_at": _now(),
            },
        )
        if updated is None:
            raise NotFoundError(f"User {user_id} not found")
        return User(**updated)

    def save_bank_details(
        self,
        user_id: UUID,
        account_holder: Optional[str] = None,
        account_number: Optional[str] = None,
        ifsc: Optional[str] = None,
        upi_id: Optional[str] = None,
    ) -> BankDetailsView:
        request = parse_or_raise(BankDetailsRequest, {
            "account_holder": account_holder,
            "account_number": account_number,
            "ifsc": ifsc,
            "upi_id": upi_id,
        })
        self.get_user(user_id)

        fields = {
            "account_holder": request.account_holder,
            "account_number": encrypt_pii(request.account_number, self.pii_key) if request.account_number else None,
            "ifsc": request.ifsc,
            "upi_id": request.upi_id,
            "updated_at": _now(),
        }
        with self.storage.transaction():
            self.storage.insert_if_absent(BANK_DETAILS, {"id": uuid4(), "user_id": user_id, **fields})
            record = self.storage.update_if(BANK_DETAILS, user_id, lambda b: True, lambda b: {**b, **fields})
        logger.info("Saved payout details for user %s", user_id)
        return self._to_view(record)

    def get_bank_details(self, user_id: UUID) -> BankDetailsView:
        record = self.storage.get(BANK_DETAILS, user_id)
        if not record:
            return BankDetailsView(user_id=user_id)
        return self._to_view(record)

    def _to_view(self, record: dict) -> BankDetailsView:
        return BankDetailsView(
            user_id=record["user_id"],
            account_holder=record.get("account_holder"),
            account_number_masked=mask_account(record.get("account_number"), self.pii_key),
            ifsc=record.get("ifsc"),
            upi_id=record.get("upi_id"),
            updated_at=record.get("updated_at"),
        )
