"""filestage — stage local and remote files into a managed directory."""

from .applier import StageReport, StageResult, Stager
from .config import Settings
from .errors import ConfigError, StagingError, StagingPermissionError, TransferError
from .models import (
    DirectCopy,
    DownloaderFlavor,
    ResolvedPlan,
    RetrievalRequest,
    RunCommand,
    Scheme,
)
from .resolver import resolve

__all__ = [
    "ConfigError",
    "DirectCopy",
    "DownloaderFlavor",
    "ResolvedPlan",
    "RetrievalRequest",
    "RunCommand",
    "Scheme",
    "Settings",
    "StageReport",
    "StageResult",
    "Stager",
    "StagingError",
    "StagingPermissionError",
    "TransferError",
    "resolve",
]
