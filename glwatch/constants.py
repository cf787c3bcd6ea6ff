# Entrius 2025
# =============================================================================
# GitLab API
# =============================================================================
DEFAULT_GITLAB_API_URL = "https://gitlab.com/api/v4"
DEFAULT_REQUEST_TIMEOUT = 15  # seconds
TODOS_TOTAL_HEADER = "X-Total"
NEXT_PAGE_HEADER = "X-Next-Page"
LIST_PAGE_SIZE = 100  # GitLab maximum for per_page
MAX_LIST_PAGES = 50  # Stop following X-Next-Page after this many requests

# =============================================================================
# Polling
# =============================================================================
DEFAULT_POLL_INTERVAL_MS = 5000
THREAD_JOIN_TIMEOUT = 10  # seconds

# =============================================================================
# Rate Limit Monitoring
# =============================================================================
RATE_LIMIT_MIN_REMAINING = 10  # Remaining requests below which a warning is logged

# =============================================================================
# Logging
# =============================================================================
EVENTS_LEVEL_NUM = 38
DEFAULT_LOG_BACKUP_COUNT = 10
DEFAULT_EVENTS_RETENTION_SIZE = 5 * 1024 * 1024  # 5 MB
