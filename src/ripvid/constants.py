"""
Constants and configuration values for ripvid.

This module contains all hardcoded values, URLs, timeouts, file names and
diagnostic patterns used throughout the application.
"""

APP_NAME = "ripvid"

# Managed binaries, in provisioning order
YTDLP_BINARY = "yt-dlp"
FFMPEG_BINARY = "ffmpeg"
FFPROBE_BINARY = "ffprobe"
MANAGED_BINARIES = (YTDLP_BINARY, FFMPEG_BINARY, FFPROBE_BINARY)

# GitHub release endpoints
GITHUB_API_BASE = "https://api.github.com/repos"
YTDLP_LATEST_RELEASE_URL = f"{GITHUB_API_BASE}/yt-dlp/yt-dlp/releases/latest"
YTDLP_CHECKSUM_MANIFEST_URL = (
    "https://github.com/yt-dlp/yt-dlp/releases/download/{tag}/SHA2-256SUMS"
)
GITHUB_ACCEPT_HEADER = "application/vnd.github+json"
GITHUB_API_VERSION = "2022-11-28"

# Network timeouts (in seconds) and transfer sizes
DEFAULT_REQUEST_TIMEOUT = 300
DEFAULT_CONNECT_TIMEOUT = 30
DEFAULT_CHUNK_SIZE = 64 * 1024
HTTP_STATUS_ERROR_THRESHOLD = 400
HTTP_STATUS_RETRY_THRESHOLD = 500
HTTP_STATUS_TOO_MANY_REQUESTS = 429
BYTES_PER_MEGABYTE = 1024 * 1024

# Backoff defaults
DEFAULT_BACKOFF_ATTEMPTS = 3
DEFAULT_INITIAL_BACKOFF_DELAY = 1.0
DEFAULT_BACKOFF_FACTOR = 2.0

# Refresh cadence
REFRESH_INTERVAL_SECONDS = 24 * 60 * 60

# File and directory names
BINARIES_DIR_NAME = "binaries"
LOGS_DIR_NAME = "logs"
LAST_CHECK_FILE = "last-check.json"
BINARY_INFO_SUFFIX = "-info.json"
BACKUP_SUFFIX = ".backup"
PARTIAL_DOWNLOAD_SUFFIX = ".part"
WINDOWS_EXECUTABLE_SUFFIX = ".exe"
EXECUTABLE_PERMISSIONS = 0o755
WINDOWS_EXTENDED_PATH_PREFIX = "\\\\?\\"

# Archive formats
ARCHIVE_ZIP = "zip"
ARCHIVE_TAR = "tar"

# Progress parsing
PROGRESS_MARKER = "[download]"
UNKNOWN_SPEED = "---"
UNKNOWN_ETA = "--:--"
POST_PROCESSING_MARKERS = ("[Merger]", "Merging formats", "[ffmpeg]")
STATUS_MARKERS = ("Sleeping", "rate limit")

# Credential (browser cookie) sources, in fallback priority order
CREDENTIAL_BROWSERS = ("firefox", "chrome", "edge")

# Outward lifecycle events
EVENT_DOWNLOAD_STARTED = "download-started"
EVENT_DOWNLOAD_PROGRESS = "download-progress"
EVENT_DOWNLOAD_PROCESSING = "download-processing"
EVENT_DOWNLOAD_STATUS = "download-status"
EVENT_DOWNLOAD_COMPLETE = "download-complete"
EVENT_DOWNLOAD_CANCELLED = "download-cancelled"
EVENT_BINARY_PROGRESS = "binary-download-progress"

# Diagnostic patterns matched against yt-dlp stderr
AUTH_ERROR_PATTERNS = (
    "Authentication required",
    "Sign in",
    "Private video",
    "members-only",
    "This video is only available",
    "login required",
)
DECRYPTION_ERROR_PATTERNS = ("Failed to decrypt with DPAPI", "DPAPI")
RATE_LIMIT_ERROR_PATTERNS = ("rate limit", "429", "Too Many Requests")
NETWORK_ERROR_PATTERNS = (
    "Unable to download",
    "HTTP Error",
    "Connection",
    "timeout",
    "network",
)
FFMPEG_ERROR_SUBJECTS = ("ffmpeg", "Merger", "merge")
FFMPEG_ERROR_SYMPTOMS = (
    "not found",
    "does not exist",
    "NoneType",
    "'lower'",
    "FFmpeg",
)

# User-facing failure messages
MSG_FFMPEG_MISSING = (
    "Video processing failed. FFmpeg is required to merge video and audio "
    "streams. Please restart the application and try again."
)
MSG_COOKIE_DECRYPTION = (
    "Cookie decryption failed. Chrome/Edge on Windows have encryption issues. "
    "Solutions: 1) Close your browser completely and try again, 2) Install "
    "Firefox (recommended), or 3) Disable browser cookies in settings."
)
MSG_AUTH_REQUIRED = "Authentication required. Try enabling browser cookies."
MSG_RATE_LIMITED = "Rate limit exceeded. Please wait and try again."
MSG_NETWORK = "Network error. Check your connection and try again."
MSG_EXIT_CODE = "Exit code: {code}"
MSG_NO_EXIT_CODE = "Process terminated without exit code"
MSG_CREDENTIALS_EXHAUSTED = (
    "Unable to download this video. It may require login. Please verify the "
    "video is accessible in your browser, or install Firefox and log into the "
    "website there for automatic authentication."
)
MSG_PROCESSING = "Processing video..."

# Logging configuration
LOGGER_NAME = "ripvid"
LOG_FILE_NAME = "ripvid.log"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
INFO_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
DEBUG_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s: %(message)s"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
LOG_FILE_BACKUP_COUNT = 5

# Configuration
CONFIG_FILE_NAME = "ripvid.yaml"

# Environment variable names
LOG_LEVEL_ENV_VAR = "RIPVID_LOG_LEVEL"
DISABLE_FILE_LOGGING_ENV_VAR = "RIPVID_DISABLE_FILE_LOGGING"
