"""Record of what filestage has staged, and whether it is still as staged.

The record lives in ``.filestage-state.json`` under the staging root. Keys
are target paths relative to that root; targets outside it keep their
absolute path. ``verify`` re-hashes every recorded file so ``fstage status``
can flag files that were edited or removed after staging.
"""

from __future__ import annotations

import hashlib
import json
import os
import tempfile
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path

STATE_FILENAME = ".filestage-state.json"
_SCHEMA_VERSION = 1

INTACT = "intact"
MODIFIED = "modified"
MISSING = "missing"


@dataclass(frozen=True)
class StagedEntry:
    key: str
    source: str
    sha256: str
    size: int
    recorded_at: str

    def to_json(self) -> dict:
        data = asdict(self)
        del data["key"]
        return data


class StateFile:
    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self.path = self.root / STATE_FILENAME
        self._entries: dict[str, StagedEntry] = self._read()

    def entries(self) -> list[StagedEntry]:
        return [self._entries[key] for key in sorted(self._entries)]

    def get(self, target: Path) -> StagedEntry | None:
        return self._entries.get(self._key(Path(target)))

    def record(self, target: Path, source: str) -> StagedEntry:
        """Fingerprint a freshly staged *target* and persist the record."""
        target = Path(target)
        entry = StagedEntry(
            key=self._key(target),
            source=source,
            sha256=_digest(target),
            size=target.stat().st_size,
            recorded_at=datetime.now(timezone.utc).isoformat(),
        )
        self._entries[entry.key] = entry
        self._write()
        return entry

    def condition(self, entry: StagedEntry) -> str:
        target = self.target_of(entry)
        if not target.is_file():
            return MISSING
        if target.stat().st_size != entry.size or _digest(target) != entry.sha256:
            return MODIFIED
        return INTACT

    def verify(self) -> list[tuple[StagedEntry, str]]:
        """Pair every recorded entry with its current on-disk condition."""
        return [(entry, self.condition(entry)) for entry in self.entries()]

    def target_of(self, entry: StagedEntry) -> Path:
        path = Path(entry.key)
        return path if path.is_absolute() else self.root / path

    def _key(self, target: Path) -> str:
        try:
            return target.relative_to(self.root).as_posix()
        except ValueError:
            return str(target)

    def _read(self) -> dict[str, StagedEntry]:
        # Unreadable or other-version state is treated as empty, never fatal.
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return {}
        if not isinstance(raw, dict) or raw.get("schema_version") != _SCHEMA_VERSION:
            return {}
        entries = {}
        for key, data in (raw.get("entries") or {}).items():
            try:
                entries[key] = StagedEntry(key=key, **data)
            except TypeError:
                continue
        return entries

    def _write(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        payload = {
            "schema_version": _SCHEMA_VERSION,
            "entries": {key: entry.to_json() for key, entry in self._entries.items()},
        }
        fd, tmp = tempfile.mkstemp(dir=self.root, prefix=STATE_FILENAME, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2, ensure_ascii=False)
            os.replace(tmp, self.path)
        except BaseException:
            os.unlink(tmp)
            raise


def _digest(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as fh:
        while chunk := fh.read(1 << 16):
            h.update(chunk)
    return h.hexdigest()
