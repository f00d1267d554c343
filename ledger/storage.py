"""
In-memory document store shared by every service.

All mutations go through the store lock. ``update_if`` is the atomic
conditional update used for both the wallet balance guard and the submission
status guard; ``transaction`` groups several primitives into one unit that is
rolled back when the block raises.
"""

import copy
import threading
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional

from .errors import DuplicateKeyError

Record = dict[str, Any]
Predicate = Callable[[Record], bool]
Mutation = Callable[[Record], Record]

USERS = "users"
SUBMISSIONS = "submissions"
WALLETS = "wallets"
WALLET_TRANSACTIONS = "wallet_transactions"
REDEMPTION_REQUESTS = "redemption_requests"
BANK_DETAILS = "bank_details"
WEBHOOK_EVENTS = "webhook_events"

COLLECTIONS = (
    USERS,
    SUBMISSIONS,
    WALLETS,
    WALLET_TRANSACTIONS,
    REDEMPTION_REQUESTS,
    BANK_DETAILS,
    WEBHOOK_EVENTS,
)

# one wallet / one bank-details row per user, so those are keyed on user_id
_KEY_FIELDS = {WALLETS: "user_id", BANK_DETAILS: "user_id"}
_UNIQUE_FIELDS = {USERS: ("email",)}


class InMemoryStorage:
    def __init__(self):
        self._lock = threading.RLock()
        self._collections: dict[str, dict[Any, Record]] = {name: {} for name in COLLECTIONS}
        # one frame per open transaction: collection name -> rows before its first write
        self._undo: list[dict[str, dict[Any, Record]]] = []

    @staticmethod
    def key_field(collection: str) -> str:
        return _KEY_FIELDS.get(collection, "id")

    def _table(self, collection: str) -> dict[Any, Record]:
        try:
            return self._collections[collection]
        except KeyError:
            raise KeyError(f"Unknown collection: {collection}") from None

    def _touch(self, collection: str) -> dict[Any, Record]:
        """Return the writable table, saving its pre-image for each open transaction."""
        table = self._table(collection)
        for frame in self._undo:
            if collection not in frame:
                # stored records are replaced, never mutated in place
                frame[collection] = dict(table)
        return table

    def _check_unique(self, collection: str, record: Record) -> None:
        table = self._table(collection)
        key = record[self.key_field(collection)]
        if key in table:
            raise DuplicateKeyError(f"{collection}: duplicate key {key}")
        for field_name in _UNIQUE_FIELDS.get(collection, ()):
            value = record.get(field_name)
            if any(existing.get(field_name) == value for existing in table.values()):
                raise DuplicateKeyError(f"{collection}: duplicate {field_name} {value!r}")

    def insert(self, collection: str, record: Record) -> Record:
        with self._lock:
            self._check_unique(collection, record)
            stored = copy.deepcopy(record)
            self._touch(collection)[record[self.key_field(collection)]] = stored
            return copy.deepcopy(stored)

    def insert_if_absent(self, collection: str, record: Record) -> tuple[Record, bool]:
        with self._lock:
            existing = self._table(collection).get(record[self.key_field(collection)])
            if existing is not None:
                return copy.deepcopy(existing), False
            return self.insert(collection, record), True

    def get(self, collection: str, key: Any) -> Optional[Record]:
        with self._lock:
            record = self._table(collection).get(key)
            return copy.deepcopy(record) if record is not None else None

    def find(self, collection: str, predicate: Optional[Predicate] = None) -> list[Record]:
        with self._lock:
            return [
                copy.deepcopy(r) for r in self._table(collection).values()
                if predicate is None or predicate(r)
            ]

    def find_one(self, collection: str, predicate: Predicate) -> Optional[Record]:
        with self._lock:
            for record in self._table(collection).values():
                if predicate(record):
                    return copy.deepcopy(record)
            return None

    def update_if(self, collection: str, key: Any, predicate: Predicate, mutation: Mutation) -> Optional[Record]:
        """Apply ``mutation`` iff the record exists and satisfies ``predicate``.

        Returns the updated record, or ``None`` when nothing matched.
        """
        with self._lock:
            table = self._table(collection)
            current = table.get(key)
            if current is None or not predicate(current):
                return None
            updated = mutation(copy.deepcopy(current))
            if updated[self.key_field(collection)] != key:
                raise ValueError(f"{collection}: mutation must not change the record key")
            self._touch(collection)[key] = updated
            return copy.deepcopy(updated)

    def count(self, collection: str) -> int:
        with self._lock:
            return len(self._table(collection))

    @contextmanager
    def transaction(self) -> Iterator["InMemoryStorage"]:
        with self._lock:
            frame: dict[str, dict[Any, Record]] = {}
            self._undo.append(frame)
            try:
                yield self
            except BaseException:
                self._collections.update(frame)
                raise
            finally:
                self._undo.pop()
