"""Internal constants shared across the library."""

VESSEL_URN_PREFIX = "vessels.urn:mrn:imo:mmsi:"
# Marks keys and paths that would otherwise collide with a compact code.
ESCAPE_MARKER = "~"
SECRET_KEY_LENGTH = 32
IV_NBYTES = 16
HMAC_NBYTES = 32

DEFAULT_UDP_ADDRESS = "127.0.0.1"
DEFAULT_UDP_PORT = 4446
DEFAULT_DELTA_TIMER_MS = 1000
DEFAULT_HELLO_INTERVAL_S = 60
MAX_DELTAS_BUFFER_SIZE = 1000
DEFAULT_TEST_PORT = 80
DEFAULT_PING_INTERVAL_MIN = 1
CONNECTION_CHECK_TIMEOUT_S = 10

# ------------------------------------------------------------------
# Path prefix table (long form -> single-character code)
# ------------------------------------------------------------------

# Ordered: evaluated top to bottom, first match wins.
PATH_PREFIX_TABLE: tuple[tuple[str, str], ...] = (
    ("navigation.", "n."),
    ("environment.", "e."),
    ("electrical.", "l."),
    ("performance.", "f."),
    ("propulsion.", "r."),
    ("networking.", "w."),
)

# ------------------------------------------------------------------
# Brotli qualities per stage  (stage 1 = text, stage 2 = generic)
# ------------------------------------------------------------------

STAGE1_QUALITY = 9
STAGE2_QUALITY = 8
MIN_QUALITY = 0
MAX_QUALITY = 11

_SMALL_BATCH_BYTES = 5000
_MEDIUM_BATCH_BYTES = 20000


def adaptive_qualities(data_size: int) -> tuple[int, int]:
    """Pick ``(stage1, stage2)`` Brotli qualities for a serialized batch size.

    Small batches favour speed, large ones favour ratio.
    """
    if data_size < _SMALL_BATCH_BYTES:
        return STAGE1_QUALITY, STAGE2_QUALITY
    if data_size < _MEDIUM_BATCH_BYTES:
        return 10, 9
    return MAX_QUALITY, 9
