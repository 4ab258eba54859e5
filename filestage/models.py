"""Request, action and plan types shared by the resolver and the applier."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any, Optional, Union

from .errors import ConfigError

log = logging.getLogger(__name__)


class DownloaderFlavor(str, Enum):
    CURL = "curl"
    WGET = "wget"
    POWERSHELL = "powershell"

    @classmethod
    def parse(cls, value: Optional[str], strict: bool = False) -> "DownloaderFlavor":
        """Map a configuration string to a flavor.

        Unknown values fall back to curl unless *strict* is set, in which case
        they raise ConfigError.
        """
        if isinstance(value, cls):
            return value
        if not value:
            return cls.CURL
        try:
            return cls(value.strip().lower())
        except ValueError:
            if strict:
                raise ConfigError(
                    f"unknown downloader flavor '{value}'. "
                    f"Options: {', '.join(f.value for f in cls)}"
                ) from None
            log.warning("Unknown downloader flavor %r; using curl.", value)
            return cls.CURL


class Scheme(str, Enum):
    LOCAL = "local"
    DRIVE = "drive"
    FILE = "file"
    PUPPET = "puppet"
    HTTP = "http"
    HTTPS = "https"
    FTP = "ftp"
    S3 = "s3"


NETWORK_SCHEMES = frozenset({Scheme.HTTP, Scheme.HTTPS, Scheme.FTP, Scheme.S3})


@dataclass(frozen=True)
class RetrievalRequest:
    source: str
    name: str
    target: Optional[str] = None
    subdir: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    certificate: Optional[str] = None
    novalidate: bool = False
    curl_option: str = ""
    wget_option: str = ""
    environment: tuple[str, ...] = ()
    timeout: Optional[float] = None
    tries: Optional[int] = None
    try_sleep: Optional[float] = None
    owner: Optional[str] = None
    group: Optional[str] = None
    mode: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RetrievalRequest":
        """Build a request from a manifest entry, coercing loose JSON values."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"unknown request field(s): {', '.join(unknown)}")
        for required in ("source", "name"):
            if not data.get(required):
                raise ConfigError(f"request is missing '{required}'")

        values = dict(data)
        env = values.get("environment")
        if env is None:
            values["environment"] = ()
        elif isinstance(env, str):
            values["environment"] = (env,)
        else:
            values["environment"] = tuple(str(e) for e in env)

        try:
            for key, conv in (("timeout", float), ("tries", int), ("try_sleep", float)):
                if values.get(key) is not None:
                    values[key] = conv(values[key])
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"invalid numeric option: {exc}") from exc

        if values.get("mode") is not None:
            values["mode"] = str(values["mode"])
        values["novalidate"] = bool(values.get("novalidate", False))
        for key in ("curl_option", "wget_option"):
            values[key] = values.get(key) or ""
        return cls(**values)


@dataclass(frozen=True)
class DirectCopy:
    """Copy the source into place; never replaces an existing target."""

    source: str
    owner: Optional[str] = None
    group: Optional[str] = None
    mode: Optional[str] = None
    ignore_source_permissions: bool = False
    replace: bool = field(default=False, init=False)


@dataclass(frozen=True)
class RunCommand:
    """Run an external command line, guarded by the existence of *creates*."""

    commandline: str
    cwd: str
    creates: str
    environment: tuple[str, ...] = ()
    timeout: Optional[float] = None
    tries: Optional[int] = None
    try_sleep: Optional[float] = None


Action = Union[DirectCopy, RunCommand]


@dataclass(frozen=True)
class ResolvedPlan:
    source: str
    target_file: str
    staging_dir: str
    needs_directory: bool
    scheme: Scheme
    action: Action
    needs_permission_fix: bool
    owner: Optional[str] = None
    group: Optional[str] = None
    mode: Optional[str] = None

    @property
    def kind(self) -> str:
        return "copy" if isinstance(self.action, DirectCopy) else "command"

    def describe(self) -> dict[str, Any]:
        """JSON-friendly view of the plan."""
        out = asdict(self)
        out["scheme"] = self.scheme.value
        out["action"] = {"kind": self.kind, **asdict(self.action)}
        return out
