"""
Encrypted checkout tokens issued by the merchant backend.

Wire format: urlsafe-base64( iv[12] | tag[16] | ciphertext ), AES-256-GCM with
key = sha256(master_key). Plaintext is JSON {user_data, expires_at, checksum}
where checksum = sha256 hex of the compact JSON of user_data.
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import json
import os
import time
from typing import Any, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

IV_SIZE = 12
TAG_SIZE = 16


class TokenDecryptionError(ValueError):
    pass


def _derive_key(master_key: str) -> bytes:
    return hashlib.sha256(master_key.encode("utf-8")).digest()


def user_data_checksum(user_data: Any) -> str:
    canonical = json.dumps(user_data, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def encrypt_user_data(user_data: dict[str, Any], master_key: str, ttl_seconds: int = 900) -> str:
    payload = {
        "user_data": user_data,
        "expires_at": int(time.time()) + ttl_seconds,
        "checksum": user_data_checksum(user_data),
    }
    iv = os.urandom(IV_SIZE)
    sealed = AESGCM(_derive_key(master_key)).encrypt(iv, json.dumps(payload).encode("utf-8"), None)
    # cryptography appends the tag; the token carries it up front
    ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
    return base64.urlsafe_b64encode(iv + tag + ciphertext).decode("ascii").rstrip("=")


def decrypt_user_data(token: str, master_key: str, now: Optional[float] = None) -> dict[str, Any]:
    """
    Decrypt and verify a checkout token; returns its user_data.
    Raises TokenDecryptionError on any format, integrity or expiry failure.
    """
    padded = token.replace("-", "+").replace("_", "/")
    padded += "=" * (-len(padded) % 4)
    try:
        combined = base64.b64decode(padded)
    except (binascii.Error, ValueError) as e:
        raise TokenDecryptionError("Invalid token encoding") from e

    if len(combined) < IV_SIZE + TAG_SIZE:
        raise TokenDecryptionError("Invalid token format")

    iv = combined[:IV_SIZE]
    tag = combined[IV_SIZE:IV_SIZE + TAG_SIZE]
    ciphertext = combined[IV_SIZE + TAG_SIZE:]
    try:
        plaintext = AESGCM(_derive_key(master_key)).decrypt(iv, ciphertext + tag, None)
        data = json.loads(plaintext.decode("utf-8"))
    except InvalidTag as e:
        raise TokenDecryptionError("Token authentication failed") from e
    except ValueError as e:
        raise TokenDecryptionError("Invalid token payload") from e

    if (
        not isinstance(data, dict)
        or not isinstance(data.get("user_data"), dict)
        or not data["user_data"]
        or not isinstance(data.get("expires_at"), (int, float))
    ):
        raise TokenDecryptionError("Invalid token structure")
    if (now if now is not None else time.time()) > data["expires_at"]:
        raise TokenDecryptionError("Token has expired")
    if data.get("checksum") != user_data_checksum(data["user_data"]):
        raise TokenDecryptionError("Data integrity check failed")
    return data["user_data"]
