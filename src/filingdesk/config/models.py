"""Configuration models describing FilingDesk settings."""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class FilingDeskBaseModel(BaseModel):
    """Shared configuration for FilingDesk settings models."""

    model_config = ConfigDict(extra="forbid")


class ApiSettings(FilingDeskBaseModel):
    """Remote API connection options.

    Attributes:
        base_url: Root URL of the document/directory API.
        token: Optional bearer token forwarded on every request.
        domain: Optional tenant domain appended as a query parameter.
        workspace_id: Workspace identifier used to key local state.
        timeout_seconds: Per-request timeout.
        max_retries: Retries applied to idempotent reads on transient errors.
        retry_backoff_seconds: Initial backoff between read retries.
    """

    base_url: str = "http://localhost:5000/api"
    token: Optional[str] = None
    domain: Optional[str] = None
    workspace_id: str = "default"
    timeout_seconds: float = 30.0
    max_retries: int = 2
    retry_backoff_seconds: float = 0.5


class CatalogOptions(FilingDeskBaseModel):
    """Directory catalog behavior.

    Attributes:
        page_size: Page size used when listing root directories.
        default_sort: Sort order applied when none is requested.
        recent_activity_window_seconds: Age below which a summary or report
            counts as fresh activity for its directory.
    """

    page_size: int = Field(default=500, ge=1)
    default_sort: Literal["alphabetical", "lastModified"] = "lastModified"
    recent_activity_window_seconds: int = 60


class PollingOptions(FilingDeskBaseModel):
    """Processing-status polling bounds.

    Attributes:
        interval_seconds: Delay between status checks.
        max_attempts: Number of checks before the job times out.
    """

    interval_seconds: float = Field(default=5.0, ge=0)
    max_attempts: int = Field(default=120, ge=1)


class DuplicateOptions(FilingDeskBaseModel):
    """Duplicate detection policy.

    Attributes:
        fail_open: Treat an unreachable duplicate check as "not a duplicate".
        similarity_threshold: Minimum name similarity (0-1) reported as a
            similar candidate.
    """

    fail_open: bool = True
    similarity_threshold: float = Field(default=0.85, ge=0, le=1)


class UploadOptions(FilingDeskBaseModel):
    """Upload validation defaults.

    Attributes:
        allowed_suffixes: File suffixes accepted for upload.
        default_type: Document type used when neither caller nor directory
            contents decide it.
    """

    allowed_suffixes: List[str] = Field(default_factory=lambda: [".pdf"])
    default_type: Literal["DRHP", "RHP"] = "DRHP"


class RecentOptions(FilingDeskBaseModel):
    """Recent-directory tracking.

    Attributes:
        max_entries: Maximum directories remembered per workspace.
        path: JSON file holding the recent-directory lists.
    """

    max_entries: int = 20
    path: str = "~/.filingdesk/recent.json"


class LoggingSettings(FilingDeskBaseModel):
    """Runtime logging configuration.

    Attributes:
        level: Logging verbosity level.
        max_size_mb: Maximum log size before rotation.
        backup_count: Number of historical log files to retain.
        path: Location of the rotating log file.
    """

    level: str = "WARNING"
    max_size_mb: int = 10
    backup_count: int = 5
    path: str = "~/.filingdesk/filingdesk.log"


class CLIOptions(FilingDeskBaseModel):
    """CLI behavior defaults.

    Attributes:
        quiet_default: Whether commands suppress non-error output by default.
    """

    quiet_default: bool = False


class FilingDeskConfig(FilingDeskBaseModel):
    """Top-level configuration struct for FilingDesk.

    Attributes:
        api: Remote API settings.
        catalog: Directory catalog options.
        polling: Upload processing poll bounds.
        duplicates: Duplicate detection policy.
        uploads: Upload validation defaults.
        recent: Recent-directory tracking.
        logging: Logging configuration.
        cli: CLI presentation defaults.
    """

    api: ApiSettings = Field(default_factory=ApiSettings)
    catalog: CatalogOptions = Field(default_factory=CatalogOptions)
    polling: PollingOptions = Field(default_factory=PollingOptions)
    duplicates: DuplicateOptions = Field(default_factory=DuplicateOptions)
    uploads: UploadOptions = Field(default_factory=UploadOptions)
    recent: RecentOptions = Field(default_factory=RecentOptions)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    cli: CLIOptions = Field(default_factory=CLIOptions)


__all__ = [
    "FilingDeskBaseModel",
    "ApiSettings",
    "CatalogOptions",
    "PollingOptions",
    "DuplicateOptions",
    "UploadOptions",
    "RecentOptions",
    "LoggingSettings",
    "CLIOptions",
    "FilingDeskConfig",
]
