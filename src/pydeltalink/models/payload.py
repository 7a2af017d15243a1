"""Encrypted payload and pipeline report models."""

from __future__ import annotations

import dataclasses
from typing import Any

import pydantic
from pydantic import BaseModel, ConfigDict, field_validator

from pydeltalink.exceptions import ValidationError


class EncryptedPayload(BaseModel):
    """Wire shape between the encryption and final compression stages.

    Parameters
    ----------
    iv : str
        Hex-encoded 16-byte initialization vector.
    content : str
        Hex-encoded ciphertext.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        str_strip_whitespace=True,
    )

    iv: str
    content: str

    @field_validator("iv", "content")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("must be non-empty")
        return value

    @classmethod
    def parse(cls, data: Any) -> EncryptedPayload:
        """Validate a decoded JSON value, raising the library's own error type."""
        try:
            return cls.model_validate(data)
        except pydantic.ValidationError as exc:
            raise ValidationError("Invalid encrypted data structure") from exc

    def to_wire(self) -> dict[str, str]:
        return {"iv": self.iv, "content": self.content}


@dataclasses.dataclass(frozen=True)
class PipelineReport:
    """Byte size after each encode stage."""

    serialized: int
    compressed: int
    encrypted: int
    wire: int
    stage1_quality: int
    stage2_quality: int

    @property
    def ratio(self) -> float:
        """Fraction of the serialized size saved on the wire (may be negative)."""
        if self.serialized == 0:
            return 0.0
        return 1 - self.wire / self.serialized
