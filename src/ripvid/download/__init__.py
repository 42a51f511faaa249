"""
yt-dlp download supervision.

Core Components:
- supervisor: Subprocess registry, output streaming and cancellation
- progress: Progress line parsing
- classify: Failure classification and user messages
- retry: Exponential backoff and the credential fallback sequence
- credentials: Browser cookie source detection
- arguments: yt-dlp argument construction
- coordinator: Download lifecycle orchestration
"""

from .arguments import DownloadRequest, build_ytdlp_args, detect_platform
from .coordinator import DownloadCoordinator, DownloadOutcome
from .credentials import CredentialSource, detect_credential_sources
from .progress import ProgressRecord, parse_progress
from .retry import AttemptOutcome, AttemptStatus, CredentialFallback, run_with_backoff
from .supervisor import InvocationHandle, ProcessSupervisor

__all__ = [
    "AttemptOutcome",
    "AttemptStatus",
    "CredentialFallback",
    "CredentialSource",
    "DownloadCoordinator",
    "DownloadOutcome",
    "DownloadRequest",
    "InvocationHandle",
    "ProcessSupervisor",
    "ProgressRecord",
    "build_ytdlp_args",
    "detect_credential_sources",
    "detect_platform",
    "parse_progress",
    "run_with_backoff",
]
