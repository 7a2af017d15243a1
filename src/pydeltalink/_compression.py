"""Brotli compression for the two pipeline compression stages."""

from __future__ import annotations

import enum
import logging

import brotli

from pydeltalink._constants import MAX_QUALITY, MIN_QUALITY
from pydeltalink.exceptions import CompressionError, ValidationError

_logger = logging.getLogger(__name__)


class CompressionMode(enum.IntEnum):
    """Brotli encoder mode hint."""

    GENERIC = brotli.MODE_GENERIC
    TEXT = brotli.MODE_TEXT


def compress(data: bytes, mode: CompressionMode, quality: int) -> bytes:
    """Brotli-compress *data*.

    Raises
    ------
    ValidationError
        If *quality* is outside 0-11.
    CompressionError
        If the encoder fails.
    """
    if not MIN_QUALITY <= quality <= MAX_QUALITY:
        raise ValidationError(f"quality must be between {MIN_QUALITY} and {MAX_QUALITY}, got {quality}")
    try:
        out = brotli.compress(bytes(data), mode=int(mode), quality=quality)
    except brotli.error as exc:
        raise CompressionError(f"Brotli compression failed: {exc}") from exc
    _logger.debug("Brotli %s q=%d: %d -> %d bytes", CompressionMode(mode).name, quality, len(data), len(out))
    return out


def decompress(data: bytes) -> bytes:
    """Brotli-decompress *data*, raising :class:`CompressionError` on corrupt input."""
    try:
        return brotli.decompress(bytes(data))
    except brotli.error as exc:
        raise CompressionError(f"Brotli decompression failed: {exc}") from exc
