"""Link configuration for pydeltalink."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pydeltalink._constants import (
    DEFAULT_DELTA_TIMER_MS,
    DEFAULT_HELLO_INTERVAL_S,
    DEFAULT_PING_INTERVAL_MIN,
    DEFAULT_TEST_PORT,
    DEFAULT_UDP_ADDRESS,
    DEFAULT_UDP_PORT,
    MAX_DELTAS_BUFFER_SIZE,
    MAX_QUALITY,
    MIN_QUALITY,
    SECRET_KEY_LENGTH,
    STAGE1_QUALITY,
    STAGE2_QUALITY,
)
from pydeltalink.exceptions import ConfigError

_MIN_UDP_PORT = 1024
_MAX_UDP_PORT = 65535


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class LinkConfig:
    """Link configuration.

    Parameters
    ----------
    secret_key : str
        32-character key shared by sender and receiver.
    udp_address : str
        Destination host for the sender.
    udp_port : int
        UDP port; the receiver binds it, the sender targets it.
    delta_timer : int
        Batch interval in milliseconds.
    hello_interval : float
        Seconds between hello messages that keep the UDP path alive.
    max_buffer_size : int
        Deltas buffered before the batch buffer is cleared.
    adaptive_compression : bool
        Pick Brotli qualities from the batch size instead of the fixed
        ``stage1_quality``/``stage2_quality``.
    stage1_quality : int
        Brotli quality of the text-mode pass.
    stage2_quality : int
        Brotli quality of the generic-mode pass.
    mmsi : str or None
        Own vessel MMSI used in hello messages; no hello messages are
        sent when unset.
    test_address : str or None
        Host whose TCP port is checked before deltas are accepted for
        sending; when unset the link is always considered up.
    test_port : int
        TCP port on ``test_address``.
    ping_interval : float
        Minutes between connection checks.
    """

    secret_key: str
    udp_address: str = DEFAULT_UDP_ADDRESS
    udp_port: int = DEFAULT_UDP_PORT
    delta_timer: int = DEFAULT_DELTA_TIMER_MS
    hello_interval: float = DEFAULT_HELLO_INTERVAL_S
    max_buffer_size: int = MAX_DELTAS_BUFFER_SIZE
    adaptive_compression: bool = False
    stage1_quality: int = STAGE1_QUALITY
    stage2_quality: int = STAGE2_QUALITY
    mmsi: str | None = None
    test_address: str | None = None
    test_port: int = DEFAULT_TEST_PORT
    ping_interval: float = DEFAULT_PING_INTERVAL_MIN

    def validate(self) -> LinkConfig:
        """Check field ranges, returning ``self`` for chaining.

        Raises
        ------
        ConfigError
            If any field is out of range.
        """
        if not isinstance(self.secret_key, str) or len(self.secret_key) != SECRET_KEY_LENGTH:
            raise ConfigError("Secret key must be exactly 32 characters")
        if not _MIN_UDP_PORT <= self.udp_port <= _MAX_UDP_PORT:
            raise ConfigError(f"UDP port must be between {_MIN_UDP_PORT} and {_MAX_UDP_PORT}")
        for name in ("stage1_quality", "stage2_quality"):
            value = getattr(self, name)
            if not MIN_QUALITY <= value <= MAX_QUALITY:
                raise ConfigError(f"{name} must be between {MIN_QUALITY} and {MAX_QUALITY}, got {value}")
        if self.delta_timer <= 0:
            raise ConfigError("delta_timer must be positive")
        if self.max_buffer_size <= 0:
            raise ConfigError("max_buffer_size must be positive")
        if self.hello_interval <= 0:
            raise ConfigError("hello_interval must be positive")
        if self.ping_interval <= 0:
            raise ConfigError("ping_interval must be positive")
        if not 1 <= self.test_port <= _MAX_UDP_PORT:
            raise ConfigError(f"test_port must be between 1 and {_MAX_UDP_PORT}")
        return self

    @classmethod
    def from_env(cls, **overrides: Any) -> LinkConfig:
        """Create configuration from ``DELTALINK_*`` environment variables.

        Explicit keyword arguments override environment values.

        Raises
        ------
        ConfigError
            If a numeric variable cannot be parsed or the result is invalid.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        secret_key = env.get("DELTALINK_SECRET_KEY")
        if secret_key is not None:
            config_kwargs["secret_key"] = secret_key
        _ENV_STR_MAP = {
            "DELTALINK_UDP_ADDRESS": "udp_address",
            "DELTALINK_MMSI": "mmsi",
            "DELTALINK_TEST_ADDRESS": "test_address",
        }
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val:
                config_kwargs[field_name] = val

        _ENV_INT_MAP = {
            "DELTALINK_UDP_PORT": "udp_port",
            "DELTALINK_DELTA_TIMER": "delta_timer",
            "DELTALINK_MAX_BUFFER_SIZE": "max_buffer_size",
            "DELTALINK_STAGE1_QUALITY": "stage1_quality",
            "DELTALINK_STAGE2_QUALITY": "stage2_quality",
            "DELTALINK_TEST_PORT": "test_port",
        }
        for env_key, field_name in _ENV_INT_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = int(val)
            except ValueError as exc:
                raise ConfigError(f"{env_key} must be an integer, got {val!r}") from exc

        _ENV_FLOAT_MAP = {
            "DELTALINK_HELLO_INTERVAL": "hello_interval",
            "DELTALINK_PING_INTERVAL": "ping_interval",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = float(val)
            except ValueError as exc:
                raise ConfigError(f"{env_key} must be a number, got {val!r}") from exc

        if "adaptive_compression" not in overrides:
            config_kwargs["adaptive_compression"] = _env_bool(env.get("DELTALINK_ADAPTIVE_COMPRESSION"), False)

        config_kwargs.update(overrides)
        if "secret_key" not in config_kwargs:
            raise ConfigError("DELTALINK_SECRET_KEY is not set")

        return cls(**config_kwargs).validate()
