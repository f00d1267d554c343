"""
Submission lifecycle and external review.

- Submissions are created PENDING and handed to the review workflow
- Verdicts arrive through a signed callback and are applied with a
  compare-and-set on the submission status
- An ACCEPTED verdict credits the owner's wallet at most once
"""

from .dispatcher import ReviewDispatcher, compute_signature, verify_signature
from .models import Submission, SubmissionStatus, VerdictPayload, WebhookEvent
from .service import SubmissionService

__all__ = [
    "ReviewDispatcher",
    "Submission",
    "SubmissionService",
    "SubmissionStatus",
    "VerdictPayload",
    "WebhookEvent",
    "compute_signature",
    "verify_signature",
]
