"""AES-256-CTR encryption for delta payloads.

Every call draws a fresh random IV, so encrypting the same plaintext
twice under the same key yields different ``iv`` and ``content`` values.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from pydeltalink._constants import IV_NBYTES, SECRET_KEY_LENGTH
from pydeltalink.exceptions import CryptoError, ValidationError

_KEY_ERROR = "Secret key must be exactly 32 characters"
_EMPTY_ERROR = "Text to encrypt cannot be empty"
_STRUCTURE_ERROR = "Invalid encrypted data structure"


def key_bytes(secret_key: Any) -> bytes:
    """Validate a 32-character secret key and return its UTF-8 bytes.

    Raises
    ------
    ValidationError
        If the key is absent, not a string, or not 32 characters
        (and 32 bytes once encoded).
    """
    if not isinstance(secret_key, str) or len(secret_key) != SECRET_KEY_LENGTH:
        raise ValidationError(_KEY_ERROR)
    raw = secret_key.encode("utf-8")
    if len(raw) != SECRET_KEY_LENGTH:
        raise ValidationError(_KEY_ERROR)
    return raw


def data_bytes(value: Any, empty_message: str) -> bytes:
    """UTF-8 bytes of a str, or a copy of bytes/bytearray; anything else is rejected."""
    if value is None:
        raise ValidationError(empty_message)
    if isinstance(value, str):
        data = value.encode("utf-8")
    elif isinstance(value, (bytes, bytearray)):
        data = bytes(value)
    else:
        raise ValidationError(f"Expected str or bytes, got {type(value).__name__}")
    if not data:
        raise ValidationError(empty_message)
    return data


def _parse_hex_bytes(
    value: str,
    *,
    name: str,
    allowed_nbytes: set[int] | None = None,
) -> bytes:
    text = value.strip()
    if len(text) % 2 != 0:
        raise CryptoError(f"{name} hex length must be even (got {len(text)})")
    try:
        data = bytes.fromhex(text)
    except ValueError as exc:
        raise CryptoError(f"{name} must be hex-encoded") from exc

    if allowed_nbytes is not None and len(data) not in allowed_nbytes:
        allowed = ", ".join(str(n) for n in sorted(allowed_nbytes))
        raise CryptoError(f"{name} must be {allowed} bytes (got {len(data)})")
    return data


def encrypt_payload(plaintext: bytes | str | None, secret_key: str | None) -> dict[str, str]:
    """AES-256-CTR encrypt with a random IV.

    Parameters
    ----------
    plaintext : bytes or str
        Data to encrypt. Strings are UTF-8 encoded.
    secret_key : str
        32-character secret key; its UTF-8 bytes are the AES-256 key.

    Returns
    -------
    dict
        ``{"iv": <32 hex chars>, "content": <hex ciphertext>}``.

    Raises
    ------
    ValidationError
        If the key is malformed, or the plaintext is empty or not str/bytes.
    CryptoError
        If the cipher itself fails.
    """
    key = key_bytes(secret_key)
    data = data_bytes(plaintext, _EMPTY_ERROR)

    iv = os.urandom(IV_NBYTES)
    try:
        encryptor = Cipher(algorithms.AES(key), modes.CTR(iv)).encryptor()
        ct = encryptor.update(data) + encryptor.finalize()
    except Exception as exc:
        raise CryptoError(f"AES encryption failed: {exc}") from exc
    return {"iv": iv.hex(), "content": ct.hex()}


def decrypt_payload(payload: Mapping[str, Any] | None, secret_key: str | None) -> bytes:
    """Decrypt an ``{"iv", "content"}`` mapping produced by :func:`encrypt_payload`.

    CTR mode has no padding, so a well-formed but wrong key does not
    fail here; it yields bytes that differ from the original plaintext.

    Raises
    ------
    ValidationError
        If the key is malformed or ``iv``/``content`` is missing.
    CryptoError
        If ``iv``/``content`` is not valid hex or the IV is not 16 bytes.
    """
    key = key_bytes(secret_key)
    if not isinstance(payload, Mapping):
        raise ValidationError(_STRUCTURE_ERROR)
    iv_hex = payload.get("iv")
    content_hex = payload.get("content")
    if not iv_hex or not content_hex or not isinstance(iv_hex, str) or not isinstance(content_hex, str):
        raise ValidationError(_STRUCTURE_ERROR)

    iv = _parse_hex_bytes(iv_hex, name="AES IV", allowed_nbytes={IV_NBYTES})
    ct = _parse_hex_bytes(content_hex, name="AES ciphertext")
    try:
        decryptor = Cipher(algorithms.AES(key), modes.CTR(iv)).decryptor()
        return decryptor.update(ct) + decryptor.finalize()
    except Exception as exc:
        raise CryptoError(f"AES decryption failed: {exc}") from exc
