"""Ordered encode/decode pipeline for delta batches.

Encode::

    compact -> serialize -> compress (text) -> encrypt -> serialize -> compress (generic)

Decode runs the inverse stages in exactly the opposite order.  Stages are
an explicit list; the first stage that raises aborts the whole call and
its :class:`~pydeltalink.exceptions.DeltaLinkError` reaches the caller
unchanged.  Nothing is retried and no partial output is returned.

Compressing twice pays off because the first pass sees redundant JSON
text while the second recovers the hex/JSON framing added around the
ciphertext.
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
from collections.abc import Callable
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING, Any

from pydeltalink import compaction
from pydeltalink._compression import CompressionMode, compress, decompress
from pydeltalink._constants import STAGE1_QUALITY, STAGE2_QUALITY, adaptive_qualities
from pydeltalink._crypto.aes import decrypt_payload, encrypt_payload
from pydeltalink._redact import redact_for_log
from pydeltalink.exceptions import SchemaError, ValidationError
from pydeltalink.models import EncryptedPayload, PipelineReport

if TYPE_CHECKING:
    from pydeltalink.config import LinkConfig

_logger = logging.getLogger(__name__)


def _json_default(value: Any) -> Any:
    # Native datetimes cross the wire as strings and are not converted back.
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        value = value.astimezone(UTC)
        return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"
    if isinstance(value, date):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def serialize(value: Any) -> bytes:
    """Compact JSON text of *value* as UTF-8 bytes."""
    try:
        text = json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=_json_default)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Records are not JSON serializable: {exc}") from exc
    return text.encode("utf-8")


def _deserialize(data: bytes, *, error: type[Exception], what: str) -> Any:
    try:
        return json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise error(f"{what} is not valid JSON: {exc}") from exc


@dataclasses.dataclass(frozen=True)
class Stage:
    """One named step of the pipeline."""

    name: str
    run: Callable[[Any], Any]


@dataclasses.dataclass
class _EncodeRun:
    """Per-call state for one encode: chosen qualities and stage sizes."""

    stage1_quality: int
    stage2_quality: int
    adaptive: bool
    sizes: dict[str, int] = dataclasses.field(default_factory=dict)

    def choose_qualities(self, serialized_size: int) -> None:
        if self.adaptive:
            self.stage1_quality, self.stage2_quality = adaptive_qualities(serialized_size)


def _byte_size(value: Any) -> int | None:
    if isinstance(value, (bytes, bytearray)):
        return len(value)
    return None


class DeltaPipeline:
    """Forward and inverse transform between delta records and wire bytes.

    Parameters
    ----------
    stage1_quality : int
        Brotli quality for the text-mode pass over the compacted JSON.
    stage2_quality : int
        Brotli quality for the generic-mode pass over the encrypted JSON.
    adaptive : bool
        Pick both qualities from the serialized batch size instead,
        see :func:`~pydeltalink._constants.adaptive_qualities`.
    """

    def __init__(
        self,
        *,
        stage1_quality: int = STAGE1_QUALITY,
        stage2_quality: int = STAGE2_QUALITY,
        adaptive: bool = False,
    ) -> None:
        self._stage1_quality = stage1_quality
        self._stage2_quality = stage2_quality
        self._adaptive = adaptive

    @classmethod
    def from_config(cls, config: LinkConfig) -> DeltaPipeline:
        return cls(
            stage1_quality=config.stage1_quality,
            stage2_quality=config.stage2_quality,
            adaptive=config.adaptive_compression,
        )

    # ------------------------------------------------------------------
    # Stage lists
    # ------------------------------------------------------------------

    def _new_run(self) -> _EncodeRun:
        return _EncodeRun(
            stage1_quality=self._stage1_quality,
            stage2_quality=self._stage2_quality,
            adaptive=self._adaptive,
        )

    def encode_stages(self, secret_key: str, run: _EncodeRun | None = None) -> list[Stage]:
        """Build the ordered encode stages for one call."""
        state = run or self._new_run()

        def serialize_records(compacted: Any) -> bytes:
            data = serialize(compacted)
            state.choose_qualities(len(data))
            return data

        return [
            Stage("compact", lambda records: compaction.compact(records, strict=True)),
            Stage("serialize", serialize_records),
            Stage("compress_text", lambda data: compress(data, CompressionMode.TEXT, state.stage1_quality)),
            Stage("encrypt", lambda data: encrypt_payload(data, secret_key)),
            Stage("serialize_encrypted", serialize),
            Stage("compress_generic", lambda data: compress(data, CompressionMode.GENERIC, state.stage2_quality)),
        ]

    def decode_stages(self, secret_key: str) -> list[Stage]:
        """Build the ordered decode stages for one call."""
        return [
            Stage("decompress_generic", decompress),
            Stage(
                "deserialize_encrypted",
                lambda data: EncryptedPayload.parse(
                    _deserialize(data, error=ValidationError, what="Encrypted payload")
                ),
            ),
            Stage("decrypt", lambda payload: decrypt_payload(payload.to_wire(), secret_key)),
            Stage("decompress_text", decompress),
            Stage("deserialize", lambda data: _deserialize(data, error=SchemaError, what="Decrypted payload")),
            Stage("expand", lambda compacted: compaction.expand(compacted, strict=True)),
        ]

    # ------------------------------------------------------------------
    # Runners
    # ------------------------------------------------------------------

    @staticmethod
    def _log_stage(direction: str, stage: Stage, value: Any, sizes: dict[str, int] | None) -> None:
        size = _byte_size(value)
        if size is not None:
            if sizes is not None:
                sizes[stage.name] = size
            _logger.debug("%s stage %s: %d bytes", direction, stage.name, size)
        elif _logger.isEnabledFor(logging.DEBUG):
            _logger.debug("%s stage %s: %s", direction, stage.name, redact_for_log(value, max_string=64))

    def _run(self, direction: str, stages: list[Stage], value: Any, sizes: dict[str, int] | None = None) -> Any:
        for stage in stages:
            value = stage.run(value)
            self._log_stage(direction, stage, value, sizes)
        return value

    async def _arun(
        self,
        direction: str,
        stages: list[Stage],
        value: Any,
        sizes: dict[str, int] | None = None,
    ) -> Any:
        for stage in stages:
            value = await asyncio.to_thread(stage.run, value)
            self._log_stage(direction, stage, value, sizes)
        return value

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def encode(self, records: Any, secret_key: str) -> bytes:
        """Compact, compress, encrypt and compress *records* into wire bytes."""
        return self._run("encode", self.encode_stages(secret_key), records)

    def encode_with_report(self, records: Any, secret_key: str) -> tuple[bytes, PipelineReport]:
        """Like :meth:`encode`, also returning the byte size after each stage."""
        run = self._new_run()
        wire = self._run("encode", self.encode_stages(secret_key, run), records, run.sizes)
        report = PipelineReport(
            serialized=run.sizes["serialize"],
            compressed=run.sizes["compress_text"],
            encrypted=run.sizes["serialize_encrypted"],
            wire=run.sizes["compress_generic"],
            stage1_quality=run.stage1_quality,
            stage2_quality=run.stage2_quality,
        )
        return wire, report

    def decode(self, wire: bytes, secret_key: str) -> Any:
        """Reverse :meth:`encode`, returning the original records."""
        return self._run("decode", self.decode_stages(secret_key), wire)

    async def aencode(self, records: Any, secret_key: str) -> bytes:
        """Async :meth:`encode`; stages still run strictly one after another."""
        return await self._arun("encode", self.encode_stages(secret_key), records)

    async def adecode(self, wire: bytes, secret_key: str) -> Any:
        """Async :meth:`decode`; stages still run strictly one after another."""
        return await self._arun("decode", self.decode_stages(secret_key), wire)


_DEFAULT_PIPELINE = DeltaPipeline()


def encode(records: Any, secret_key: str) -> bytes:
    """Encode *records* with the default stage qualities."""
    return _DEFAULT_PIPELINE.encode(records, secret_key)


def decode(wire: bytes, secret_key: str) -> Any:
    """Decode wire bytes produced by :func:`encode`."""
    return _DEFAULT_PIPELINE.decode(wire, secret_key)
