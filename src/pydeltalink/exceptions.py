"""Custom exception hierarchy for pydeltalink."""

from __future__ import annotations


class DeltaLinkError(Exception):
    """Base exception for all pydeltalink errors."""


class ConfigError(DeltaLinkError):
    """Invalid or missing configuration."""


class ValidationError(DeltaLinkError):
    """Malformed input to a pipeline stage (key, plaintext, payload shape)."""


class CryptoError(DeltaLinkError):
    """Encryption or decryption failure."""


class CompressionError(DeltaLinkError):
    """Compressed bytes are corrupt or truncated."""


class SchemaError(DeltaLinkError):
    """A compacted record does not have the expected shape.

    Only raised by strict expansion, which the pipeline uses on the
    decode path.  The public :func:`~pydeltalink.compaction.expand`
    passes unrecognized shapes through instead.
    """

    def __init__(self, message: str, *, field: str = "") -> None:
        self.field = field
        super().__init__(message)


class TransportError(DeltaLinkError):
    """UDP socket failure or use of a link that is not started."""

    def __init__(
        self,
        message: str,
        *,
        address: str = "",
        port: int | None = None,
    ) -> None:
        self.address = address
        self.port = port
        super().__init__(message)
