from concurrent.futures import Executor
from dataclasses import dataclass
from typing import Optional

import httpx

from accounts.service import AccountService
from config import Settings
from ledger.service import LedgerService
from ledger.storage import InMemoryStorage
from redemptions.service import RedemptionService
from submissions.dispatcher import ReviewDispatcher
from submissions.service import SubmissionService


@dataclass
class Services:
    settings: Settings
    storage: InMemoryStorage
    ledger: LedgerService
    accounts: AccountService
    submissions: SubmissionService
    dispatcher: ReviewDispatcher
    redemptions: RedemptionService

    def shutdown(self) -> None:
        self.dispatcher.shutdown()


def build_services(
    settings: Settings,
    storage: Optional[InMemoryStorage] = None,
    client: Optional[httpx.Client] = None,
    executor: Optional[Executor] = None,
) -> Services:
    """Wire the store and every service once at process start."""
    storage = storage or InMemoryStorage()
    ledger = LedgerService(storage)
    accounts = AccountService(storage, settings.PII_ENC_KEY)
    submissions = SubmissionService(storage, ledger, accounts)
    dispatcher = ReviewDispatcher(settings, storage, submissions, accounts, client=client, executor=executor)
    submissions.set_dispatcher(dispatcher.dispatch)
    return Services(
        settings=settings,
        storage=storage,
        ledger=ledger,
        accounts=accounts,
        submissions=submissions,
        dispatcher=dispatcher,
        redemptions=RedemptionService(storage, ledger),
    )
