"""Reversible compaction of Signal K delta records.

Delta records are shrunk before compression by shortening their field
names and the namespace prefix of every value path::

    {"context": "vessels.urn:mrn:imo:mmsi:123456789",
     "updates": [{"timestamp": "...",
                  "values": [{"path": "navigation.position", "value": ...}]}]}

becomes::

    {"c": "123456789",
     "u": [{"t": "...", "v": [{"p": "n.position", "v": ...}]}]}

:func:`expand` is the exact inverse.  Optional fields that are absent on
one side stay absent on the other, and fields the transform does not know
about are carried through untouched.  Neither direction mutates its input.

Keys and paths that already look like compact codes (a record key ``c``, a
path ``n.custom``) are escaped with a leading ``~`` so the mapping stays
bijective; :func:`expand` strips exactly one marker.
"""

from __future__ import annotations

import enum
import re
from collections.abc import Mapping
from typing import Any

from pydeltalink._constants import ESCAPE_MARKER, PATH_PREFIX_TABLE, VESSEL_URN_PREFIX
from pydeltalink.exceptions import SchemaError

#: Inverse of :data:`PATH_PREFIX_TABLE`, same priority order.
_INVERSE_PREFIX_TABLE: tuple[tuple[str, str], ...] = tuple((short, long) for long, short in PATH_PREFIX_TABLE)
_SHORT_PREFIXES: tuple[str, ...] = tuple(short for _, short in PATH_PREFIX_TABLE)

_VESSEL_CONTEXT_RE = re.compile(rf"{re.escape(VESSEL_URN_PREFIX)}([^:]*)")

# Compact key names per nesting level.
_RECORD_CODES = frozenset({"c", "u"})
_UPDATE_CODES = frozenset({"t", "v"})
_VALUE_CODES = frozenset({"p", "v"})


class RecordBatch(enum.Enum):
    """Shape of the value handed to :func:`compact` / :func:`expand`."""

    SEQUENCE = "sequence"
    OTHER = "other"

    @classmethod
    def classify(cls, value: Any) -> RecordBatch:
        if isinstance(value, (list, tuple)):
            return cls.SEQUENCE
        return cls.OTHER


def _rewrite_prefix(path: str, table: tuple[tuple[str, str], ...]) -> str:
    """Replace the leading prefix of *path* using the first matching entry."""
    for source, target in table:
        if path.startswith(source):
            return target + path[len(source) :]
    return path


def shorten_path(path: str) -> str:
    """``"navigation.position"`` -> ``"n.position"``.

    Paths with no known prefix are unchanged, except those that already
    start with a short code or the escape marker, which gain a ``~``.
    """
    shortened = _rewrite_prefix(path, PATH_PREFIX_TABLE)
    if shortened is not path:
        return shortened
    if path.startswith(ESCAPE_MARKER) or path.startswith(_SHORT_PREFIXES):
        return ESCAPE_MARKER + path
    return path


def restore_path(path: str) -> str:
    """``"n.position"`` -> ``"navigation.position"``; ``"~n.x"`` -> ``"n.x"``."""
    if path.startswith(ESCAPE_MARKER):
        return path[len(ESCAPE_MARKER) :]
    return _rewrite_prefix(path, _INVERSE_PREFIX_TABLE)


def _escape_key(key: Any, codes: frozenset[str]) -> Any:
    if isinstance(key, str) and (key in codes or key.startswith(ESCAPE_MARKER)):
        return ESCAPE_MARKER + key
    return key


def _unescape_key(key: Any) -> Any:
    if isinstance(key, str) and key.startswith(ESCAPE_MARKER):
        return key[len(ESCAPE_MARKER) :]
    return key


def _carry_extras(
    source: Mapping[Any, Any],
    target: dict[Any, Any],
    consumed: set[str],
    codes: frozenset[str],
) -> None:
    for key, value in source.items():
        if key not in consumed:
            target[_escape_key(key, codes)] = value


def _restore_extras(source: Mapping[Any, Any], target: dict[Any, Any], consumed: set[str]) -> None:
    for key, value in source.items():
        if key not in consumed:
            target[_unescape_key(key)] = value


# ---------------------------------------------------------------------------
# Compaction
# ---------------------------------------------------------------------------


def _compact_value(value: Any, strict: bool) -> Any:
    if not isinstance(value, Mapping):
        if strict:
            raise SchemaError(f"Path value must be an object, got {type(value).__name__}", field="values")
        return value
    compacted: dict[Any, Any] = {}
    consumed: set[str] = set()
    path = value.get("path")
    if isinstance(path, str):
        compacted["p"] = shorten_path(path)
        consumed.add("path")
    elif strict:
        raise SchemaError("Path value is missing a string 'path'", field="path")
    if "value" in value:
        compacted["v"] = value["value"]
        consumed.add("value")
    _carry_extras(value, compacted, consumed, _VALUE_CODES)
    return compacted


def _compact_update(update: Any, strict: bool) -> Any:
    if not isinstance(update, Mapping):
        if strict:
            raise SchemaError(f"Update must be an object, got {type(update).__name__}", field="updates")
        return update
    compacted: dict[Any, Any] = {}
    consumed: set[str] = set()
    if "timestamp" in update:
        compacted["t"] = update["timestamp"]
        consumed.add("timestamp")
    if "values" in update:
        values = update["values"]
        if isinstance(values, list):
            compacted["v"] = [_compact_value(v, strict) for v in values]
            consumed.add("values")
        elif strict:
            raise SchemaError(f"Update 'values' must be a list, got {type(values).__name__}", field="values")
    _carry_extras(update, compacted, consumed, _UPDATE_CODES)
    return compacted


def _compact_record(record: Any, strict: bool) -> Any:
    if not isinstance(record, Mapping):
        return record
    processed: dict[Any, Any] = {}
    consumed: set[str] = set()

    context = record.get("context")
    match = _VESSEL_CONTEXT_RE.fullmatch(context) if isinstance(context, str) else None
    if match:
        processed["c"] = match.group(1)
        consumed.add("context")

    if "updates" in record:
        updates = record["updates"]
        if isinstance(updates, list):
            processed["u"] = [_compact_update(u, strict) for u in updates]
            consumed.add("updates")
        elif strict:
            raise SchemaError(f"Record 'updates' must be a list, got {type(updates).__name__}", field="updates")

    _carry_extras(record, processed, consumed, _RECORD_CODES)
    return processed


def compact(records: Any, *, strict: bool = False) -> Any:
    """Compact a sequence of delta records.

    Anything that is not a list or tuple is returned unchanged, in both
    modes.  By default fields of an unexpected shape (``updates`` that is
    not a list, a path value without a string ``path``) are carried
    through under their own name; with ``strict=True`` they raise
    :class:`~pydeltalink.exceptions.SchemaError`, mirroring what strict
    :func:`expand` rejects.
    """
    if RecordBatch.classify(records) is RecordBatch.OTHER:
        return records
    return [_compact_record(r, strict) for r in records]


# ---------------------------------------------------------------------------
# Expansion
# ---------------------------------------------------------------------------


def _expand_value(value: Any, strict: bool) -> Any:
    if not isinstance(value, Mapping):
        if strict:
            raise SchemaError(f"Compact path value must be an object, got {type(value).__name__}", field="v")
        return value
    restored: dict[Any, Any] = {}
    consumed: set[str] = set()
    path = value.get("p")
    if isinstance(path, str):
        restored["path"] = restore_path(path)
        consumed.add("p")
    elif strict:
        raise SchemaError("Compact path value is missing a string 'p'", field="p")
    if "v" in value:
        restored["value"] = value["v"]
        consumed.add("v")
    _restore_extras(value, restored, consumed)
    return restored


def _expand_update(update: Any, strict: bool) -> Any:
    if not isinstance(update, Mapping):
        if strict:
            raise SchemaError(f"Compact update must be an object, got {type(update).__name__}", field="u")
        return update
    restored: dict[Any, Any] = {}
    consumed: set[str] = set()
    if "t" in update:
        restored["timestamp"] = update["t"]
        consumed.add("t")
    if "v" in update:
        values = update["v"]
        if isinstance(values, list):
            restored["values"] = [_expand_value(v, strict) for v in values]
            consumed.add("v")
        elif strict:
            raise SchemaError(f"Compact update 'v' must be a list, got {type(values).__name__}", field="v")
    _restore_extras(update, restored, consumed)
    return restored


def _expand_record(record: Any, strict: bool) -> Any:
    if not isinstance(record, Mapping):
        return record

    restored: dict[Any, Any] = {}
    consumed: set[str] = set()

    if "c" in record:
        code = record["c"]
        if isinstance(code, str):
            restored["context"] = f"{VESSEL_URN_PREFIX}{code}"
            consumed.add("c")
        elif strict:
            raise SchemaError(f"Compact record 'c' must be a string, got {type(code).__name__}", field="c")

    if "u" in record:
        updates = record["u"]
        if isinstance(updates, list):
            restored["updates"] = [_expand_update(u, strict) for u in updates]
            consumed.add("u")
        elif strict:
            raise SchemaError(f"Compact record 'u' must be a list, got {type(updates).__name__}", field="u")

    _restore_extras(record, restored, consumed)
    return restored


def expand(compact_records: Any, *, strict: bool = False) -> Any:
    """Restore delta records produced by :func:`compact`.

    Anything that is not a list or tuple is returned unchanged, in both
    modes.  By default record fields whose shape is not recognized are
    passed through; with ``strict=True`` they raise
    :class:`~pydeltalink.exceptions.SchemaError`.
    """
    if RecordBatch.classify(compact_records) is RecordBatch.OTHER:
        return compact_records
    return [_expand_record(r, strict) for r in compact_records]
