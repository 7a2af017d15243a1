"""pydeltalink - Compact, encrypted transport of Signal K delta records."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pydeltalink")
except PackageNotFoundError:
    __version__ = "0+local"
from pydeltalink._compression import CompressionMode
from pydeltalink._crypto import create_hmac, decrypt_payload, encrypt_payload, verify_hmac
from pydeltalink.batching import DeltaBuffer, build_hello_delta
from pydeltalink.compaction import compact, expand, restore_path, shorten_path
from pydeltalink.config import LinkConfig
from pydeltalink.exceptions import (
    CompressionError,
    ConfigError,
    CryptoError,
    DeltaLinkError,
    SchemaError,
    TransportError,
    ValidationError,
)
from pydeltalink.models import EncryptedPayload, PipelineReport
from pydeltalink.pipeline import DeltaPipeline, decode, encode
from pydeltalink.transport import DeltaLinkClient, UdpReceiver, UdpSender

__all__ = [
    "__version__",
    "CompressionError",
    "CompressionMode",
    "ConfigError",
    "CryptoError",
    "DeltaBuffer",
    "DeltaLinkClient",
    "DeltaLinkError",
    "DeltaPipeline",
    "EncryptedPayload",
    "LinkConfig",
    "PipelineReport",
    "SchemaError",
    "TransportError",
    "UdpReceiver",
    "UdpSender",
    "ValidationError",
    "build_hello_delta",
    "compact",
    "create_hmac",
    "decode",
    "decrypt_payload",
    "encode",
    "encrypt_payload",
    "expand",
    "restore_path",
    "shorten_path",
    "verify_hmac",
]
