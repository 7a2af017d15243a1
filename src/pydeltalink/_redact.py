"""Log-safe summaries of delta batches and encrypted envelopes.

Pipeline stages hand around two kinds of data that do not belong in a
log: cipher material (keys, IVs, ciphertext) and the telemetry readings
themselves (positions, speeds, battery levels).  :func:`redact_for_log`
keeps the shape of a batch readable (contexts, paths and timestamps)
while replacing both, and cuts long batches after a few records.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import date
from typing import Any

from pydantic import BaseModel

_CIPHER_KEYS: frozenset[str] = frozenset(
    {
        "secret_key",
        "secretkey",
        "key",
        "iv",
        "content",
        "signature",
    }
)

# Path-value objects in long and compact form.
_PATH_KEYS: frozenset[str] = frozenset({"path", "p"})
_READING_KEYS: frozenset[str] = frozenset({"value", "v"})

_MAX_DEPTH = 20


def _cipher_placeholder(value: Any) -> str:
    if isinstance(value, (str, bytes, bytearray)):
        return f"<redacted:{len(value)}>"
    return "<redacted>"


def _reading_placeholder(value: Any) -> str:
    if isinstance(value, Mapping):
        return f"<value:{len(value)} fields>"
    if value is None:
        return "<value:null>"
    return f"<value:{type(value).__name__}>"


def redact_for_log(
    value: Any,
    *,
    show_values: bool = False,
    max_items: int = 5,
    max_string: int = 256,
    _depth: int = 0,
) -> Any:
    """Return a copy of *value* that is safe to put in a DEBUG log.

    Parameters
    ----------
    value : Any
        A delta batch (long or compact form), an ``{iv, content}``
        envelope, or anything nested in one.
    show_values : bool
        Keep telemetry readings instead of replacing them with their type.
        Cipher fields are redacted regardless.
    max_items : int
        Items kept from each list; the rest are counted in a trailing
        ``"<+N more>"`` marker.
    max_string : int
        Strings longer than this are truncated.
    """
    if _depth > _MAX_DEPTH:
        return "<max-depth>"

    if value is None or isinstance(value, (bool, int, float)):
        return value

    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated>"
        return value

    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"

    if isinstance(value, date):
        return value.isoformat()

    if isinstance(value, BaseModel):
        value = value.model_dump()

    options = {"show_values": show_values, "max_items": max_items, "max_string": max_string}

    if isinstance(value, Mapping):
        is_path_value = any(k in _PATH_KEYS for k in value)
        redacted: dict[str, Any] = {}
        for k, v in value.items():
            key = str(k)
            if key.lower() in _CIPHER_KEYS:
                redacted[key] = _cipher_placeholder(v)
            elif is_path_value and key in _READING_KEYS and not show_values:
                redacted[key] = _reading_placeholder(v)
            else:
                redacted[key] = redact_for_log(v, **options, _depth=_depth + 1)
        return redacted

    if isinstance(value, Sequence):
        items = [redact_for_log(v, **options, _depth=_depth + 1) for v in value[:max_items]]
        if len(value) > max_items:
            items.append(f"<+{len(value) - max_items} more>")
        return items

    return repr(value)
