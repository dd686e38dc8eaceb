"""asset_group_sync.checkpoint

Persisted high-water mark for incremental runs.

The file holds a single timestamp. It is written in the canonical form
('YYYY-MM-DDTHH:MM:SS'); the legacy 12-hour extract form is still accepted on
read so files produced by older deployments keep working.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

from asset_group_sync.normalize import (
    TimestampParseError,
    format_canonical_ts,
    parse_any_ts,
    trim,
)

log = logging.getLogger(__name__)

DEFAULT_CHECKPOINT_PATH = Path("last_run_timestamp.txt")


class Checkpoint:
    """Read/write the last-successful-run timestamp."""

    def __init__(self, path: Path = DEFAULT_CHECKPOINT_PATH) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> datetime | None:
        if not self._path.exists():
            return None
        raw = trim(self._path.read_text(encoding="utf-8"))
        if raw is None:
            return None
        try:
            return parse_any_ts(raw)
        except TimestampParseError as exc:
            log.warning("Checkpoint load failed (%s); starting fresh.", exc)
            return None

    def save(self, ts: datetime) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(format_canonical_ts(ts) + "\n", encoding="utf-8")
        log.info("Checkpoint advanced to %s (%s)", format_canonical_ts(ts), self._path)
