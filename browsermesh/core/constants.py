"""
System-Wide Constants for the Browser Session Broker

All magic numbers and configuration defaults centralized here.
"""

from typing import Final

# =============================================================================
# TIME UNITS
# =============================================================================
SECOND_MS: Final[int] = 1000

# =============================================================================
# SESSIONS
# =============================================================================
DEFAULT_SESSION_PREFIX: Final[str] = "browsermesh_session_main"
LIVE_VIEW_BASE_URL: Final[str] = "https://www.browserbase.com/sessions"

# =============================================================================
# RESOURCE STORE
# =============================================================================
PURGE_MAX_ATTEMPTS: Final[int] = 3
PURGE_BASE_DELAY_MS: Final[int] = 100
PURGE_MAX_DELAY_MS: Final[int] = 2 * SECOND_MS
PURGE_BACKOFF_MULTIPLIER: Final[float] = 2.0

COMPRESSION_THRESHOLD_BYTES: Final[int] = 1024  # Compress payloads > 1KB
REDIS_KEY_PREFIX: Final[str] = "browsermesh:resource"

# =============================================================================
# USAGE / REPLAY
# =============================================================================
REPLAY_BASE_URL: Final[str] = "https://api.stagehand.browserbase.com"
REPLAY_TIMEOUT_S: Final[float] = 10.0
REPLAY_SDK_VERSION: Final[str] = "3.0.1"
REPLAY_OPERATION: Final[str] = "replay"
CLOSE_TOOL_NAME: Final[str] = "browserbase_session_close"

TOKENS_PER_MILLION: Final[int] = 1_000_000

# =============================================================================
# SERVER (transport binding, unused by the core)
# =============================================================================
DEFAULT_SERVER_HOST: Final[str] = "localhost"
