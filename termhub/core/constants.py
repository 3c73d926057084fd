"""Core constants for termhub session configuration."""

# Default terminal dimensions
DEFAULT_SCREEN_COLUMNS = 80
DEFAULT_SCREEN_ROWS = 30

# Accepted resize range (inclusive)
MIN_SCREEN_COLUMNS = 40
MAX_SCREEN_COLUMNS = 1000
MIN_SCREEN_ROWS = 10
MAX_SCREEN_ROWS = 400

# Output history kept per session for late joiners
HISTORY_LIMIT = 512 * 1024  # 512KB

# Bytes requested per pty read
READ_CHUNK_SIZE = 4096

# Per-connection input budget (bytes, bytes/second)
INPUT_BUCKET_CAPACITY = 4096
INPUT_REFILL_RATE = 4096.0

__all__ = [
    "DEFAULT_SCREEN_COLUMNS",
    "DEFAULT_SCREEN_ROWS",
    "MIN_SCREEN_COLUMNS",
    "MAX_SCREEN_COLUMNS",
    "MIN_SCREEN_ROWS",
    "MAX_SCREEN_ROWS",
    "HISTORY_LIMIT",
    "READ_CHUNK_SIZE",
    "INPUT_BUCKET_CAPACITY",
    "INPUT_REFILL_RATE",
]
