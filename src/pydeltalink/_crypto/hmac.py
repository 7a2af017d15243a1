"""HMAC-SHA256 signing for delta payloads."""

from __future__ import annotations

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives import hmac as _hmac

from pydeltalink._constants import HMAC_NBYTES
from pydeltalink._crypto.aes import data_bytes, key_bytes


def create_hmac(data: bytes | str | None, secret_key: str | None) -> bytes:
    """Return the 32-byte HMAC-SHA256 of *data* under *secret_key*.

    Raises :class:`ValidationError` for a malformed key, or for data that is
    empty or not str/bytes.
    """
    key = key_bytes(secret_key)
    raw = data_bytes(data, "Data to sign cannot be empty")
    mac = _hmac.HMAC(key, hashes.SHA256())
    mac.update(raw)
    return mac.finalize()


def verify_hmac(data: bytes | str, signature: bytes | None, secret_key: str | None) -> bool:
    """Check *signature* against *data* in constant time.

    A missing or wrongly sized signature is simply not valid; only a
    malformed key raises.
    """
    key = key_bytes(secret_key)
    if not signature or len(signature) != HMAC_NBYTES:
        return False
    if not isinstance(data, (str, bytes, bytearray)) or not data:
        return False
    raw = data.encode("utf-8") if isinstance(data, str) else bytes(data)
    mac = _hmac.HMAC(key, hashes.SHA256())
    mac.update(raw)
    try:
        mac.verify(bytes(signature))
    except InvalidSignature:
        return False
    return True
