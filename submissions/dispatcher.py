"""
Bridge to the external review workflow.

Outbound: ``dispatch`` hands a submission to a worker thread which POSTs it to
the workflow with a bounded timeout. Success moves the submission to
PROCESSING; a transport failure rejects it with a system note. There are no
automatic retries.

Inbound: ``receive_verdict`` authenticates the callback (HMAC-SHA256 of the raw
body in the ``x-signature`` header), validates it, records a WebhookEvent and
applies the verdict through ``SubmissionService.apply_verdict``.
"""

import hashlib
import hmac
import json
import logging
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

import httpx

from accounts.service import AccountService
from config import Settings
from ledger.errors import (
    AuthenticationError,
    NotFoundError,
    ServiceError,
    TransientDependencyError,
    ValidationError,
)
from ledger.storage import WEBHOOK_EVENTS, InMemoryStorage
from ledger.validation import safe_parse

from .models import Submission, SubmissionStatus, VerdictPayload, WebhookEvent
from .service import SubmissionService

logger = logging.getLogger(__name__)

WEBHOOK_SOURCE = "n8n"
DISPATCH_FAILURE_NOTE = "System: review dispatch failed"


def compute_signature(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def verify_signature(secret: str, body: bytes, signature: Optional[str]) -> bool:
    if not secret or not signature:
        return False
    expected = compute_signature(secret, body).encode()
    return hmac.compare_digest(expected, signature.strip().lower().encode())


class ReviewDispatcher:
    def __init__(
        self,
        settings: Settings,
        storage: InMemoryStorage,
        submissions: SubmissionService,
        accounts: AccountService,
        client: Optional[httpx.Client] = None,
        executor: Optional[Executor] = None,
    ):
        self.settings = settings
        self.storage = storage
        self.submissions = submissions
        self.accounts = accounts
        self.client = client or httpx.Client(timeout=settings.REVIEW_TIMEOUT_SECONDS)
        self.executor = executor or ThreadPoolExecutor(
            max_workers=settings.DISPATCH_MAX_WORKERS, thread_name_prefix="ReviewDispatch",
        )

    def dispatch(self, submission: Submission) -> Optional[Future]:
        if not self.settings.REVIEW_WORKFLOW_URL:
            logger.warning("REVIEW_WORKFLOW_URL not configured; submission %s not sent for review", submission.id)
            return None
        future = self.executor.submit(self._deliver, submission)
        future.add_done_callback(lambda f: self._log_failure(f, submission))
        return future

    @staticmethod
    def _log_failure(future: Future, submission: Submission) -> None:
        error = future.exception()
        if error is not None:
            logger.error(
                "Dispatch of submission %s crashed; it stays %s until reviewed manually",
                submission.id, submission.status.value, exc_info=error,
            )

    def build_payload(self, submission: Submission) -> dict:
        payload = {
            "submissionId": str(submission.id),
            "question": submission.question,
            "answer": submission.answer,
            "userId": str(submission.user_id),
        }
        if submission.has_inline_image:
            payload["imageData"] = submission.artifact_url
        else:
            payload["artifactUrl"] = submission.artifact_url
        if submission.translated_question:
            payload["englishQuestion"] = submission.translated_question
        if submission.translated_answer:
            payload["englishAnswer"] = submission.translated_answer
        try:
            expertise = self.accounts.get_user(submission.user_id).profile.expertise
        except NotFoundError:
            expertise = None
        if expertise:
            payload["expertise"] = expertise
        return payload

    def _post(self, submission: Submission) -> dict:
        """POST the submission and return the JSON object the workflow answered with.

        httpx timeouts apply per network operation, so the body is streamed and
        checked against an overall deadline of REVIEW_TIMEOUT_SECONDS.
        """
        limit = self.settings.REVIEW_TIMEOUT_SECONDS
        deadline = time.monotonic() + limit
        chunks = []
        try:
            with self.client.stream(
                "POST",
                self.settings.REVIEW_WORKFLOW_URL,
                json=self.build_payload(submission),
                headers={"x-api-key": self.settings.REVIEW_API_KEY},
                timeout=limit,
            ) as response:
                response.raise_for_status()
                for chunk in response.iter_bytes():
                    if time.monotonic() > deadline:
                        raise TransientDependencyError(f"Review workflow exceeded the {limit}s deadline")
                    chunks.append(chunk)
        except httpx.HTTPError as e:
            raise TransientDependencyError(f"Review workflow unreachable: {e}") from e
        try:
            body = json.loads(b"".join(chunks))
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    def _deliver(self, submission: Submission) -> Optional[Submission]:
        try:
            body = self._post(submission)
        except TransientDependencyError as e:
            logger.error("Dispatch of submission %s failed, needs manual follow-up: %s", submission.id, e)
            return self._reject(submission, f"{DISPATCH_FAILURE_NOTE}: {e}")

        workflow_id = body.get("workflowId")
        run_id = body.get("runId")
        logger.info("Submission %s sent for review (workflow=%s run=%s)", submission.id, workflow_id, run_id)
        try:
            return self.submissions.apply_verdict(
                submission.id,
                SubmissionStatus.PROCESSING,
                workflow_id=str(workflow_id) if workflow_id else None,
                run_id=str(run_id) if run_id else None,
            )
        except ServiceError as e:
            logger.warning("Could not mark submission %s PROCESSING: %s", submission.id, e)
            return None

    def _reject(self, submission: Submission, note: str) -> Optional[Submission]:
        try:
            return self.submissions.apply_verdict(submission.id, SubmissionStatus.REJECTED, notes=note)
        except ServiceError as e:
            logger.warning("Could not reject submission %s after dispatch failure: %s", submission.id, e)
            return None

    def receive_verdict(self, raw_body: bytes, signature: Optional[str]) -> Submission:
        if not self.settings.WEBHOOK_SECRET:
            logger.error("WEBHOOK_SECRET not configured; rejecting verdict callback")
            raise AuthenticationError("Webhook secret not configured")
        if not verify_signature(self.settings.WEBHOOK_SECRET, raw_body, signature):
            logger.warning("Rejected verdict callback with invalid signature")
            raise AuthenticationError("Invalid signature")

        try:
            data = json.loads(raw_body)
        except ValueError:
            raise ValidationError("Invalid payload", [{"field": "__root__", "message": "Body is not valid JSON"}]) from None
        verdict = safe_parse(VerdictPayload, data).unwrap()

        self.record_event(verdict.submissionId, data, signature)
        return self.submissions.apply_verdict(
            verdict.submissionId,
            verdict.status,
            points_awarded=verdict.pointsAwarded or 0,
            notes=verdict.notes,
            run_id=verdict.n8nRunId,
            workflow_id=verdict.workflowId,
        )

    def record_event(self, submission_id: str, payload, signature: Optional[str]) -> WebhookEvent:
        record = self.storage.insert(WEBHOOK_EVENTS, {
            "id": uuid4(),
            "submission_id": submission_id,
            "payload": payload,
            "source": WEBHOOK_SOURCE,
            "signature": signature,
            "created_at": datetime.now(timezone.utc),
        })
        return WebhookEvent(**record)

    def list_webhook_events(self, submission_id: str) -> list[WebhookEvent]:
        key = str(submission_id)
        return [WebhookEvent(**e) for e in self.storage.find(WEBHOOK_EVENTS, lambda e: e["submission_id"] == key)]

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)
        self.client.close()
