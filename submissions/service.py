import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Union
from uuid import UUID, uuid4

from accounts.service import AccountService
from ledger.errors import InvalidStateTransitionError, NotFoundError, ValidationError
from ledger.service import LedgerService
from ledger.storage import SUBMISSIONS, InMemoryStorage
from ledger.validation import parse_or_raise

from .models import CreateSubmissionRequest, Submission, SubmissionStatus

logger = logging.getLogger(__name__)

DispatchHook = Callable[[Submission], Any]

_ALLOWED_TRANSITIONS = {
    SubmissionStatus.PENDING: {
        SubmissionStatus.PROCESSING, SubmissionStatus.ACCEPTED, SubmissionStatus.REJECTED,
    },
    SubmissionStatus.PROCESSING: {SubmissionStatus.ACCEPTED, SubmissionStatus.REJECTED},
    SubmissionStatus.ACCEPTED: set(),
    SubmissionStatus.REJECTED: set(),
}

_MAX_CAS_ATTEMPTS = 3


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_id(submission_id: Union[UUID, str]) -> UUID:
    if isinstance(submission_id, UUID):
        return submission_id
    try:
        return UUID(str(submission_id))
    except ValueError:
        raise NotFoundError(f"Submission {submission_id} not found") from None


def _parse_status(status: Union[SubmissionStatus, str]) -> SubmissionStatus:
    try:
        return SubmissionStatus(status)
    except ValueError:
        raise ValidationError(
            "Invalid status",
            [{"field": "status", "message": f"Unknown status {status!r}"}],
        ) from None


def _parse_points(points: Optional[int]) -> int:
    if points is None:
        return 0
    if isinstance(points, bool) or not isinstance(points, int) or points < 0:
        raise ValidationError(
            "Invalid points",
            [{"field": "pointsAwarded", "message": "Must be a non-negative integer"}],
        )
    return points


class SubmissionService:
    """Submission lifecycle: PENDING -> PROCESSING -> ACCEPTED | REJECTED.

    PENDING may also move straight to a terminal status. Every status change
    goes through ``apply_verdict``, which uses a compare-and-set on the stored
    status so that a given terminal verdict credits the wallet at most once.
    """

    def __init__(
        self,
        storage: InMemoryStorage,
        ledger: LedgerService,
        accounts: AccountService,
        dispatch: Optional[DispatchHook] = None,
    ):
        self.storage = storage
        self.ledger = ledger
        self.accounts = accounts
        self._dispatch = dispatch

    def set_dispatcher(self, dispatch: DispatchHook) -> None:
        self._dispatch = dispatch

    def create(
        self,
        user_id: UUID,
        question: str,
        answer: str,
        artifact_url: Optional[str] = None,
        image_data: Optional[str] = None,
        translated_question: Optional[str] = None,
        translated_answer: Optional[str] = None,
    ) -> Submission:
        request = parse_or_raise(CreateSubmissionRequest, {
            "artifact_url": artifact_url,
            "image_data": image_data,
            "question": question,
            "answer": answer,
            "translated_question": translated_question,
            "translated_answer": translated_answer,
        })
        self.accounts.get_user(user_id)

        now = _now()
        with self.storage.transaction():
            record = self.storage.insert(SUBMISSIONS, {
                "id": uuid4(),
                "user_id": user_id,
                "artifact_url": request.artifact_reference(),
                "question": request.question,
                "answer": request.answer,
                "translated_question": request.translated_question,
                "translated_answer": request.translated_answer,
                "status": SubmissionStatus.PENDING.value,
                "points_awarded": 0,
                "workflow_id": None,
                "run_id": None,
                "reviewer_notes": None,
                "created_at": now,
                "updated_at": now,
            })
            self.ledger.ensure_wallet(user_id)

        submission = Submission(**record)
        logger.info("Created submission %s for user %s", submission.id, user_id)
        self._trigger_dispatch(submission)
        return submission

    def _trigger_dispatch(self, submission: Submission) -> None:
        if self._dispatch is None:
            logger.warning("No review dispatcher configured; submission %s stays PENDING", submission.id)
            return
        try:
            self._dispatch(submission)
        except Exception:
            # dispatch never rolls back creation
            logger.exception("Could not schedule review for submission %s", submission.id)

    def apply_verdict(
        self,
        submission_id: Union[UUID, str],
        status: Union[SubmissionStatus, str],
        points_awarded: Optional[int] = 0,
        notes: Optional[str] = None,
        run_id: Optional[str] = None,
        workflow_id: Optional[str] = None,
    ) -> Submission:
        target = _parse_status(status)
        points = _parse_points(points_awarded)
        if target != SubmissionStatus.ACCEPTED and points:
            logger.warning("Ignoring %s points on %s verdict for submission %s", points, target.value, submission_id)
            points = 0
        key = _parse_id(submission_id)

        def with_metadata(record: dict) -> dict:
            if notes is not None:
                record["reviewer_notes"] = notes
            if run_id is not None:
                record["run_id"] = run_id
            if workflow_id is not None:
                record["workflow_id"] = workflow_id
            record["updated_at"] = _now()
            return record

        def transition(record: dict) -> dict:
            record["status"] = target.value
            record["points_awarded"] = points
            return with_metadata(record)

        with self.storage.transaction():
            for _ in range(_MAX_CAS_ATTEMPTS):
                current = self.storage.get(SUBMISSIONS, key)
                if current is None:
                    raise NotFoundError(f"Submission {key} not found")
                observed = SubmissionStatus(current["status"])

                if observed == target:
                    updated = self.storage.update_if(
                        SUBMISSIONS, key, lambda s: s["status"] == target.value, with_metadata,
                    )
                    if updated is None:
                        continue
                    logger.info("Duplicate %s verdict for submission %s; ledger untouched", target.value, key)
                    return Submission(**updated)

                if target not in _ALLOWED_TRANSITIONS[observed]:
                    if observed.is_terminal and target.is_terminal:
                        raise InvalidStateTransitionError(
                            f"Submission {key} is already {observed.value}; cannot change to {target.value}"
                        )
                    logger.warning("Ignoring stale %s verdict for submission %s in %s",
                                   target.value, key, observed.value)
                    return Submission(**current)

                updated = self.storage.update_if(
                    SUBMISSIONS, key, lambda s: s["status"] == observed.value, transition,
                )
                if updated is None:
                    continue
                logger.info("Submission %s: %s -> %s", key, observed.value, target.value)
                if target == SubmissionStatus.ACCEPTED and points > 0:
                    self.ledger.credit(updated["user_id"], points, f"Submission {key} accepted")
                return Submission(**updated)

        raise InvalidStateTransitionError(f"Submission {key} changed concurrently; verdict not applied")

    def get(self, submission_id: Union[UUID, str]) -> Submission:
        key = _parse_id(submission_id)
        record = self.storage.get(SUBMISSIONS, key)
        if not record:
            raise NotFoundError(f"Submission {key} not found")
        return Submission(**record)

    def list_for_user(self, user_id: UUID, limit: int = 50) -> list[Submission]:
        return self._newest_first(lambda s: s["user_id"] == user_id, limit)

    def list_recent(self, limit: int = 50) -> list[Submission]:
        return self._newest_first(None, limit)

    def _newest_first(self, predicate, limit: int) -> list[Submission]:
        rows = [Submission(**s) for s in reversed(self.storage.find(SUBMISSIONS, predicate))]
        rows.sort(key=lambda s: s.created_at, reverse=True)
        return rows[:limit]
