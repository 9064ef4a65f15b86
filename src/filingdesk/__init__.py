"""FilingDesk: directories, uploads and DRHP/RHP comparisons over a document API."""

from importlib import metadata as _metadata

from .config import ConfigManager, FilingDeskConfig
from .errors import FilingDeskError
from .events import EventBus, Notice
from .remote.errors import UploadInProgressError
from .workspace import Workspace

try:
    __version__ = _metadata.version("filingdesk")
except _metadata.PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "ConfigManager",
    "EventBus",
    "FilingDeskConfig",
    "FilingDeskError",
    "Notice",
    "UploadInProgressError",
    "Workspace",
    "__version__",
]
