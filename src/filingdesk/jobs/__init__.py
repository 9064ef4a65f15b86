"""Upload and processing job tracking."""

from .models import TERMINAL_PHASES, JobOutcome, JobPhase, UploadFile, UploadJob
from .tracker import UploadJobTracker

__all__ = [
    "UploadJobTracker",
    "UploadJob",
    "UploadFile",
    "JobOutcome",
    "JobPhase",
    "TERMINAL_PHASES",
]
