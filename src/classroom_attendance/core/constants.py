"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

MAX_CLASS_ENTRIES = 100

DEFAULT_PAGE = 1
DEFAULT_PAGE_LIMIT = 10
DEFAULT_HISTORY_LIMIT = 20
MAX_PAGE_LIMIT = 100

DEFAULT_POOL_SIZE = 10
DEFAULT_CONNECT_RETRIES = 5
DEFAULT_RETRY_DELAY_SECONDS = 5.0

CLASS_JOIN_CODE_TYPE = "class-join"
