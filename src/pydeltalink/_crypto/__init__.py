"""Cryptographic primitives for delta payloads."""

from __future__ import annotations

from pydeltalink._crypto.aes import decrypt_payload, encrypt_payload, key_bytes
from pydeltalink._crypto.hmac import create_hmac, verify_hmac

__all__ = [
    "create_hmac",
    "decrypt_payload",
    "encrypt_payload",
    "key_bytes",
    "verify_hmac",
]
