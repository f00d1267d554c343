"""
User accounts and payout details.

Users are created from a verified identity on first sign-in or first
submission; payout details are stored with the account number encrypted.
"""

from .models import BankDetailsView, Identity, User, UserProfile
from .service import AccountService

__all__ = [
    "AccountService",
    "BankDetailsView",
    "Identity",
    "User",
    "UserProfile",
]
