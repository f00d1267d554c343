"""
PII encryption for stored payout details (AES-256-GCM).

Ciphertexts are stored as base64(iv | tag | ciphertext) with a 12-byte IV and a
16-byte tag.
"""

import base64
import os
import re
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

IV_LENGTH = 12
TAG_LENGTH = 16


def _cipher(key_hex: str) -> AESGCM:
    key = bytes.fromhex(key_hex)
    if len(key) != 32:
        raise ValueError("PII_ENC_KEY must be 32 bytes (64 hex characters)")
    return AESGCM(key)


def encrypt_pii(plain: str, key_hex: str) -> str:
    iv = os.urandom(IV_LENGTH)
    sealed = _cipher(key_hex).encrypt(iv, plain.encode("utf-8"), None)
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
    return base64.b64encode(iv + tag + ciphertext).decode("ascii")


def decrypt_pii(encrypted: str, key_hex: str) -> str:
    data = base64.b64decode(encrypted)
    iv = data[:IV_LENGTH]
    tag = data[IV_LENGTH:IV_LENGTH + TAG_LENGTH]
    ciphertext = data[IV_LENGTH + TAG_LENGTH:]
    return _cipher(key_hex).decrypt(iv, ciphertext + tag, None).decode("utf-8")


def mask_account(enc_or_plain: Optional[str], key_hex: str) -> Optional[str]:
    """Mask an account number down to its last four digits.

    Accepts either a ciphertext produced by ``encrypt_pii`` or a legacy
    plain-text value.
    """
    if not enc_or_plain:
        return None
    try:
        account_number = decrypt_pii(enc_or_plain, key_hex)
    except (InvalidTag, ValueError):
        account_number = enc_or_plain
    digits = re.sub(r"\D", "", account_number)
    if len(digits) < 4:
        return "••••"
    return f"•••• {digits[-4:]}"
