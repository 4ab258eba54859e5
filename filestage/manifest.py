"""Load many RetrievalRequests from one JSON manifest.

Manifest layout::

    {
      "defaults": {"subdir": "java", "owner": "app"},
      "files": [
        {"source": "https://example.com/jdk.tar.gz"},
        {"source": "s3://bucket/app.war", "name": "app.war", "mode": "0640"}
      ]
    }

Each entry is merged over ``defaults``. ``name`` falls back to the last path
segment of the source.
"""

from __future__ import annotations

import json
from pathlib import Path, PurePosixPath
from typing import Any
from urllib.parse import urlparse

from .errors import ConfigError
from .models import RetrievalRequest


def default_name(source: str) -> str:
    path = urlparse(source).path if "://" in source else source
    return PurePosixPath(path.replace("\\", "/")).name


def parse_manifest(data: Any) -> list[RetrievalRequest]:
    if not isinstance(data, dict):
        raise ConfigError("manifest must be a JSON object with a 'files' list")
    defaults = data.get("defaults", {})
    entries = data.get("files")
    if not isinstance(defaults, dict):
        raise ConfigError("manifest 'defaults' must be an object")
    if not isinstance(entries, list):
        raise ConfigError("manifest 'files' must be a list")

    requests: list[RetrievalRequest] = []
    for index, entry in enumerate(entries):
        if isinstance(entry, str):
            entry = {"source": entry}
        if not isinstance(entry, dict):
            raise ConfigError(f"manifest entry #{index} must be an object or a source string")
        merged = {**defaults, **entry}
        if merged.get("source") and not merged.get("name"):
            merged["name"] = default_name(merged["source"])
        try:
            requests.append(RetrievalRequest.from_dict(merged))
        except ConfigError as exc:
            raise ConfigError(f"manifest entry #{index}: {exc}") from exc
    return requests


def load_manifest(path: Path) -> list[RetrievalRequest]:
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"cannot read manifest {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"manifest {path} is not valid JSON: {exc}") from exc
    return parse_manifest(raw)
