"""
Unit Tests for the submission state machine

Tests cover:
1. Creation and input validation
2. Verdict transitions and ledger credits
3. Duplicate and stale verdicts
4. Conflicting terminal verdicts
"""

from concurrent.futures import ThreadPoolExecutor
from uuid import uuid4

import pytest

from ledger.errors import InvalidStateTransitionError, NotFoundError, ValidationError
from ledger.storage import SUBMISSIONS, WALLET_TRANSACTIONS
from submissions.models import SubmissionStatus

QUESTION = "What plant is shown in this photo?"
ANSWER = "A neem tree"
ARTIFACT = "https://files.example.com/artifact_1.jpg"


class TestCreateSubmission:
    """Tests for submission creation."""

    def test_create_starts_pending_with_wallet(self, offline_services, offline_user_id):
        """Test that a new submission is PENDING and the wallet exists."""
        submission = offline_services.submissions.create(offline_user_id, QUESTION, ANSWER, artifact_url=ARTIFACT)

        assert submission.status == SubmissionStatus.PENDING
        assert submission.points_awarded == 0
        assert submission.artifact_url == ARTIFACT
        assert offline_services.ledger.ensure_wallet(offline_user_id).points_balance == 0

    def test_short_question_rejected(self, offline_services, offline_user_id):
        """Question of length 5 fails and nothing is persisted."""
        with pytest.raises(ValidationError) as exc:
            offline_services.submissions.create(offline_user_id, "Why?!", ANSWER, artifact_url=ARTIFACT)

        assert exc.value.errors[0]["field"] == "question"
        assert offline_services.storage.count(SUBMISSIONS) == 0

    @pytest.mark.parametrize("question, answer", [
        ("q" * 281, ANSWER),
        (QUESTION, ""),
        (QUESTION, "a" * 1001),
    ])
    def test_length_bounds(self, offline_services, offline_user_id, question, answer):
        """Test question and answer length limits."""
        with pytest.raises(ValidationError):
            offline_services.submissions.create(offline_user_id, question, answer, artifact_url=ARTIFACT)

    def test_boundary_lengths_accepted(self, offline_services, offline_user_id):
        """Test the inclusive limits."""
        submission = offline_services.submissions.create(
            offline_user_id, "q" * 8, "a" * 1000, artifact_url=ARTIFACT,
        )

        assert submission.status == SubmissionStatus.PENDING

    def test_requires_exactly_one_artifact(self, offline_services, offline_user_id):
        """Test that either a URL or inline image data is required, not both."""
        with pytest.raises(ValidationError):
            offline_services.submissions.create(offline_user_id, QUESTION, ANSWER)
        with pytest.raises(ValidationError):
            offline_services.submissions.create(
                offline_user_id, QUESTION, ANSWER, artifact_url=ARTIFACT, image_data="aGVsbG8=",
            )

    def test_inline_image_stored_as_data_uri(self, offline_services, offline_user_id):
        """Test that raw base64 is normalised to a data URI."""
        submission = offline_services.submissions.create(offline_user_id, QUESTION, ANSWER, image_data="aGVsbG8=")

        assert submission.artifact_url == "data:image/jpeg;base64,aGVsbG8="
        assert submission.has_inline_image

    def test_translations_kept(self, offline_services, offline_user_id):
        """Test that both text variants are stored."""
        submission = offline_services.submissions.create(
            offline_user_id, "इस फोटो में कौन सा पौधा है?", "नीम का पेड़",
            artifact_url=ARTIFACT,
            translated_question=QUESTION,
            translated_answer=ANSWER,
        )

        assert submission.translated_question == QUESTION
        assert submission.translated_answer == ANSWER

    def test_unknown_user(self, offline_services):
        """Test that a submission needs an existing user."""
        with pytest.raises(NotFoundError):
            offline_services.submissions.create(uuid4(), QUESTION, ANSWER, artifact_url=ARTIFACT)

    def test_list_for_user_newest_first(self, offline_services, offline_user_id):
        """Test listing a user's submissions."""
        first = offline_services.submissions.create(offline_user_id, QUESTION, ANSWER, artifact_url=ARTIFACT)
        second = offline_services.submissions.create(offline_user_id, QUESTION, ANSWER, artifact_url=ARTIFACT)

        listed = offline_services.submissions.list_for_user(offline_user_id)

        assert [s.id for s in listed] == [second.id, first.id]


class TestApplyVerdict:
    """Tests for verdict transitions."""

    def _create(self, services, user_id):
        return services.submissions.create(user_id, QUESTION, ANSWER, artifact_url=ARTIFACT)

    def test_accept_credits_wallet(self, offline_services, offline_user_id):
        """PENDING -> ACCEPTED with 20 points credits +20."""
        submission = self._create(offline_services, offline_user_id)

        result = offline_services.submissions.apply_verdict(submission.id, "ACCEPTED", points_awarded=20)

        assert result.status == SubmissionStatus.ACCEPTED
        assert result.points_awarded == 20
        assert offline_services.ledger.get_wallet(offline_user_id).points_balance == 20
        [entry] = offline_services.ledger.list_transactions(offline_user_id)
        assert entry.reason == f"Submission {submission.id} accepted"

    def test_duplicate_accept_credits_once(self, offline_services, offline_user_id):
        """A second identical ACCEPTED verdict leaves the wallet at +20."""
        submission = self._create(offline_services, offline_user_id)

        offline_services.submissions.apply_verdict(submission.id, "ACCEPTED", points_awarded=20)
        again = offline_services.submissions.apply_verdict(
            submission.id, "ACCEPTED", points_awarded=20, notes="re-delivered",
        )

        assert again.status == SubmissionStatus.ACCEPTED
        assert again.reviewer_notes == "re-delivered"
        assert offline_services.ledger.get_wallet(offline_user_id).points_balance == 20
        assert offline_services.storage.count(WALLET_TRANSACTIONS) == 1

    def test_concurrent_duplicates_credit_once(self, offline_services, offline_user_id):
        """Racing identical verdicts transition exactly once."""
        submission = self._create(offline_services, offline_user_id)

        def deliver(_):
            return offline_services.submissions.apply_verdict(submission.id, "ACCEPTED", points_awarded=15)

        with ThreadPoolExecutor(max_workers=8) as executor:
            results = list(executor.map(deliver, range(16)))

        assert all(r.status == SubmissionStatus.ACCEPTED for r in results)
        assert offline_services.ledger.get_wallet(offline_user_id).points_balance == 15
        assert offline_services.ledger.reconcile(offline_user_id).transaction_count == 1

    def test_processing_then_accepted(self, offline_services, offline_user_id):
        """Test the full PENDING -> PROCESSING -> ACCEPTED path."""
        submission = self._create(offline_services, offline_user_id)

        processing = offline_services.submissions.apply_verdict(submission.id, "PROCESSING", run_id="run-7")
        accepted = offline_services.submissions.apply_verdict(submission.id, "ACCEPTED", points_awarded=5)

        assert processing.status == SubmissionStatus.PROCESSING
        assert accepted.status == SubmissionStatus.ACCEPTED
        assert accepted.run_id == "run-7"
        assert offline_services.ledger.get_wallet(offline_user_id).points_balance == 5

    def test_reject_never_touches_ledger(self, offline_services, offline_user_id):
        """Test that points on a non-accepting verdict are dropped."""
        submission = self._create(offline_services, offline_user_id)

        result = offline_services.submissions.apply_verdict(submission.id, "REJECTED", points_awarded=50, notes="blurry")

        assert result.status == SubmissionStatus.REJECTED
        assert result.points_awarded == 0
        assert result.reviewer_notes == "blurry"
        assert offline_services.storage.count(WALLET_TRANSACTIONS) == 0

    def test_accept_with_zero_points(self, offline_services, offline_user_id):
        """Test that an accepted submission worth 0 points writes no ledger entry."""
        submission = self._create(offline_services, offline_user_id)

        result = offline_services.submissions.apply_verdict(submission.id, "ACCEPTED")

        assert result.status == SubmissionStatus.ACCEPTED
        assert offline_services.storage.count(WALLET_TRANSACTIONS) == 0

    def test_terminal_not_reopened(self, offline_services, offline_user_id):
        """Test that a late PROCESSING signal does not reopen a terminal submission."""
        submission = self._create(offline_services, offline_user_id)
        offline_services.submissions.apply_verdict(submission.id, "ACCEPTED", points_awarded=10)

        result = offline_services.submissions.apply_verdict(submission.id, "PROCESSING")

        assert result.status == SubmissionStatus.ACCEPTED
        assert offline_services.ledger.get_wallet(offline_user_id).points_balance == 10

    def test_conflicting_terminal_verdict_rejected(self, offline_services, offline_user_id):
        """Test that ACCEPTED cannot flip to REJECTED."""
        submission = self._create(offline_services, offline_user_id)
        offline_services.submissions.apply_verdict(submission.id, "ACCEPTED", points_awarded=10)

        with pytest.raises(InvalidStateTransitionError):
            offline_services.submissions.apply_verdict(submission.id, "REJECTED")

        assert offline_services.submissions.get(submission.id).status == SubmissionStatus.ACCEPTED
        assert offline_services.ledger.get_wallet(offline_user_id).points_balance == 10

    def test_unknown_submission(self, offline_services):
        """Test NotFoundError for unknown and malformed ids."""
        with pytest.raises(NotFoundError):
            offline_services.submissions.apply_verdict(uuid4(), "ACCEPTED")
        with pytest.raises(NotFoundError):
            offline_services.submissions.apply_verdict("not-a-uuid", "ACCEPTED")

    def test_invalid_verdict_values(self, offline_services, offline_user_id):
        """Test unknown statuses and negative points."""
        submission = self._create(offline_services, offline_user_id)

        with pytest.raises(ValidationError):
            offline_services.submissions.apply_verdict(submission.id, "DONE")
        with pytest.raises(ValidationError):
            offline_services.submissions.apply_verdict(submission.id, "ACCEPTED", points_awarded=-1)

        assert offline_services.submissions.get(submission.id).status == SubmissionStatus.PENDING

    def test_failed_credit_rolls_back_transition(self, offline_services, offline_user_id, monkeypatch):
        """Test that the status change and the credit commit together."""
        submission = self._create(offline_services, offline_user_id)

        def broken_credit(*args, **kwargs):
            raise RuntimeError("ledger unavailable")

        monkeypatch.setattr(offline_services.ledger, "credit", broken_credit)

        with pytest.raises(RuntimeError):
            offline_services.submissions.apply_verdict(submission.id, "ACCEPTED", points_awarded=10)

        assert offline_services.submissions.get(submission.id).status == SubmissionStatus.PENDING
