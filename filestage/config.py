"""Process-wide staging settings."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Optional

from .models import DownloaderFlavor

ENV_PREFIX = "FILESTAGE_"

DEFAULT_PATH = "/opt/staging"
DEFAULT_MODE = "0755"
DEFAULT_EXEC_PATH = "/usr/local/bin:/usr/bin:/bin"
DEFAULT_SUBDIR = "staging"


@dataclass(frozen=True)
class Settings:
    path: str = DEFAULT_PATH
    owner: Optional[str] = None
    group: Optional[str] = None
    mode: Optional[str] = DEFAULT_MODE
    exec_path: str = DEFAULT_EXEC_PATH
    default_subdir: str = DEFAULT_SUBDIR
    flavor: str = DownloaderFlavor.CURL.value
    # Local directory that puppet:/// sources are read from.
    fileserver_root: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[dict[str, str]] = None) -> "Settings":
        """Read FILESTAGE_* variables, e.g. FILESTAGE_PATH or FILESTAGE_FLAVOR."""
        env = os.environ if environ is None else environ
        values = {}
        for name in cls.__dataclass_fields__:
            raw = env.get(ENV_PREFIX + name.upper())
            if raw is not None and raw != "":
                values[name] = raw
        return cls(**values)

    def override(self, **changes) -> "Settings":
        """Return a copy with every non-None keyword applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    def resolve_flavor(self, strict: bool = False) -> DownloaderFlavor:
        return DownloaderFlavor.parse(self.flavor, strict=strict)
