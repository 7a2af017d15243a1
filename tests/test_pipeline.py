from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta, timezone

import brotli
import pytest

from pydeltalink._compression import CompressionMode, compress
from pydeltalink._crypto.aes import encrypt_payload
from pydeltalink.config import LinkConfig
from pydeltalink.exceptions import CompressionError, CryptoError, SchemaError, ValidationError
from pydeltalink.pipeline import DeltaPipeline, decode, encode, serialize

KEY = "12345678901234567890123456789012"
OTHER_KEY = "abcdefghijklmnopqrstuvwxyz123456"


def _records(count: int = 1) -> list[dict]:
    return [
        {
            "context": "vessels.urn:mrn:imo:mmsi:123456789",
            "updates": [
                {
                    "timestamp": f"2024-01-01T00:00:{i % 60:02d}.000Z",
                    "values": [
                        {"path": "navigation.position", "value": {"latitude": 60.123 + i, "longitude": 24.987}},
                        {"path": "environment.wind.speedApparent", "value": 10.5},
                        {"path": "electrical.batteries.0.voltage", "value": 12.5},
                        {"path": "networking.modem.rssi", "value": -71},
                    ],
                }
            ],
        }
        for i in range(count)
    ]


def test_encode_decode_round_trip() -> None:
    records = _records(3)
    wire = encode(records, KEY)
    assert isinstance(wire, bytes)
    assert decode(wire, KEY) == records


def test_single_record_object_round_trips_unchanged() -> None:
    record = _records()[0]
    assert decode(encode(record, KEY), KEY) == record


def test_wire_format_layers() -> None:
    wire = encode(_records(), KEY)

    encrypted = json.loads(brotli.decompress(wire))
    assert set(encrypted) == {"iv", "content"}
    assert len(encrypted["iv"]) == 32


def test_compaction_is_applied_before_encryption() -> None:
    pipeline = DeltaPipeline()
    stages = pipeline.encode_stages(KEY)
    assert [s.name for s in stages] == [
        "compact",
        "serialize",
        "compress_text",
        "encrypt",
        "serialize_encrypted",
        "compress_generic",
    ]
    serialized = stages[1].run(stages[0].run(_records()))
    assert b'"c":"123456789"' in serialized
    assert b"navigation." not in serialized


def test_decode_stage_order_is_exact_inverse() -> None:
    names = [s.name for s in DeltaPipeline().decode_stages(KEY)]
    assert names == [
        "decompress_generic",
        "deserialize_encrypted",
        "decrypt",
        "decompress_text",
        "deserialize",
        "expand",
    ]


def test_encode_rejects_bad_key() -> None:
    with pytest.raises(ValidationError, match="Secret key must be exactly 32 characters"):
        encode(_records(), "short")


def test_wrong_key_fails() -> None:
    records = _records()
    wire = encode(records, KEY)
    try:
        result = decode(wire, OTHER_KEY)
    except (CryptoError, CompressionError, SchemaError):
        return
    assert result != records


def test_corrupt_wire_raises_compression_error() -> None:
    wire = encode(_records(), KEY)
    with pytest.raises(CompressionError):
        decode(wire[: len(wire) // 2], KEY)


def test_missing_iv_raises_validation_error() -> None:
    wire = compress(b'{"content":"abcd"}', CompressionMode.GENERIC, 8)
    with pytest.raises(ValidationError, match="Invalid encrypted data structure"):
        decode(wire, KEY)


def test_non_json_envelope_raises_validation_error() -> None:
    wire = compress(b"not json", CompressionMode.GENERIC, 8)
    with pytest.raises(ValidationError):
        decode(wire, KEY)


def test_inconsistent_compact_record_raises_schema_error() -> None:
    inner = compress(b'[{"c":"1","u":"oops"}]', CompressionMode.TEXT, 9)
    envelope = json.dumps(encrypt_payload(inner, KEY)).encode()
    wire = compress(envelope, CompressionMode.GENERIC, 8)
    with pytest.raises(SchemaError):
        decode(wire, KEY)


def test_datetime_values_become_iso_strings() -> None:
    when = datetime(2024, 1, 1, 12, 30, 5, 123456, tzinfo=UTC)
    records = [
        {
            "context": "vessels.urn:mrn:imo:mmsi:1",
            "updates": [{"timestamp": when, "values": [{"path": "networking.modem.latencyTime", "value": when}]}],
        }
    ]

    decoded = decode(encode(records, KEY), KEY)
    update = decoded[0]["updates"][0]
    assert update["timestamp"] == "2024-01-01T12:30:05.123Z"
    assert update["values"][0]["value"] == "2024-01-01T12:30:05.123Z"


def test_serialize_converts_offsets_to_utc() -> None:
    helsinki = timezone(timedelta(hours=2))
    assert serialize(datetime(2024, 1, 1, 2, 0, tzinfo=helsinki)) == b'"2024-01-01T00:00:00.000Z"'


def test_serialize_rejects_unknown_types() -> None:
    with pytest.raises(ValidationError, match="not JSON serializable"):
        serialize([{"value": object()}])


def test_encode_with_report() -> None:
    records = _records(20)
    wire, report = DeltaPipeline().encode_with_report(records, KEY)

    assert report.wire == len(wire)
    assert report.serialized > report.compressed
    assert report.encrypted > report.compressed
    assert (report.stage1_quality, report.stage2_quality) == (9, 8)
    assert 0 < report.ratio < 1


def test_adaptive_qualities_follow_batch_size() -> None:
    pipeline = DeltaPipeline(adaptive=True)

    _, small = pipeline.encode_with_report(_records(1), KEY)
    assert (small.stage1_quality, small.stage2_quality) == (9, 8)

    _, large = pipeline.encode_with_report(_records(200), KEY)
    assert large.serialized >= 20000
    assert (large.stage1_quality, large.stage2_quality) == (11, 9)


def test_pipeline_from_config() -> None:
    config = LinkConfig(secret_key=KEY, stage1_quality=5, stage2_quality=4)
    _, report = DeltaPipeline.from_config(config).encode_with_report(_records(), KEY)
    assert (report.stage1_quality, report.stage2_quality) == (5, 4)


@pytest.mark.asyncio
async def test_async_round_trip() -> None:
    pipeline = DeltaPipeline()
    records = _records(5)
    wire = await pipeline.aencode(records, KEY)
    assert await pipeline.adecode(wire, KEY) == records
    assert pipeline.decode(wire, KEY) == records


@pytest.mark.asyncio
async def test_async_encode_propagates_first_failure() -> None:
    with pytest.raises(ValidationError, match="Secret key must be exactly 32 characters"):
        await DeltaPipeline().aencode(_records(), "")


@pytest.mark.parametrize(
    "records",
    [
        [{"updates": [{"values": {"path": "navigation.log", "value": 1}}]}],
        [{"updates": "not-a-list"}],
        [{"updates": [{"values": [{"value": 1}]}]}],
    ],
)
def test_encode_refuses_records_decode_would_reject(records: list, monkeypatch: pytest.MonkeyPatch) -> None:
    def fail_encrypt(*args: object, **kwargs: object) -> dict:
        raise AssertionError("encrypt stage must not run")

    monkeypatch.setattr("pydeltalink.pipeline.encrypt_payload", fail_encrypt)
    with pytest.raises(SchemaError):
        encode(records, KEY)


def test_extra_update_fields_survive_the_wire() -> None:
    records = _records()
    records[0]["updates"][0]["source"] = {"label": "n2k", "sentence": "RMC"}
    records[0]["updates"][0]["$source"] = "n2k.115"
    records[0]["updates"][0]["values"].append({"path": "n.custom"})
    assert decode(encode(records, KEY), KEY) == records


def test_debug_logs_hide_cipher_material_and_readings(caplog) -> None:
    records = _records()

    with caplog.at_level("DEBUG", logger="pydeltalink.pipeline"):
        wire = encode(records, KEY)
        decode(wire, KEY)

    envelope = json.loads(brotli.decompress(wire))
    assert envelope["iv"] not in caplog.text
    assert envelope["content"][:16] not in caplog.text
    assert "60.123" not in caplog.text
    assert "navigation.position" in caplog.text
    assert "n.position" in caplog.text
