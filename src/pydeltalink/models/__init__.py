"""Data models for delta payloads."""

from pydeltalink.models.payload import EncryptedPayload, PipelineReport

__all__ = [
    "EncryptedPayload",
    "PipelineReport",
]
