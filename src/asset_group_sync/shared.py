"""asset_group_sync.shared

Run-scoped state shared by ingest, reconciliation and the CLI driver:
ErrorRecord, RunCounters and the JSON run-report writer.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

# ErrorRecord categories
RECORDED = "recorded"
UNCLASSIFIED = "unclassified"
GROUP_NOT_FOUND = "GROUP_NOT_FOUND"
GROUP_NOT_FOUND_AND_CREATE_FAILED = "GROUP_NOT_FOUND_AND_CREATE_FAILED"


# ---------------------------------------------------------------------------
# ErrorRecord
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ErrorRecord:
    code: str
    description: str
    group: str = ""
    category: str = RECORDED

    def __str__(self) -> str:
        if self.category in (GROUP_NOT_FOUND, GROUP_NOT_FOUND_AND_CREATE_FAILED):
            return f"{self.category}:{self.group}"
        if self.category == UNCLASSIFIED:
            return f"UNCLASSIFIED {self.code}: {self.description} ({self.group})"
        return f"{self.code}: {self.description} ({self.group})"


def group_not_found(group: str) -> ErrorRecord:
    return ErrorRecord(
        code=GROUP_NOT_FOUND,
        description="Asset group not found",
        group=group,
        category=GROUP_NOT_FOUND,
    )


def group_create_failed(group: str) -> ErrorRecord:
    return ErrorRecord(
        code=GROUP_NOT_FOUND_AND_CREATE_FAILED,
        description="Tag not found and could not be created",
        group=group,
        category=GROUP_NOT_FOUND_AND_CREATE_FAILED,
    )


# ---------------------------------------------------------------------------
# RunCounters
# ---------------------------------------------------------------------------

@dataclass
class RunCounters:
    # Ingest
    rows_read: int = 0
    rows_discarded_shape: int = 0
    rows_skipped_checkpoint: int = 0
    rows_active: int = 0
    rows_deactivated: int = 0
    # Remote
    groups_processed: int = 0
    groups_skipped_empty: int = 0
    groups_created: int = 0
    dry_run_actions: int = 0
    transport_errors: int = 0
    recorded_errors: int = 0
    unclassified_codes: int = 0
    fatal_code: str | None = None
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        d = {k: v for k, v in self.__dict__.items() if k != "warnings"}
        d["warnings"] = self.warnings[:50]
        return d


# ---------------------------------------------------------------------------
# Report writer
# ---------------------------------------------------------------------------

def write_run_report(
    report_dir: Path,
    run_id: str,
    started_at: str,
    backend: str,
    dry_run: bool,
    source_paths: dict[str, str],
    counters: RunCounters,
    errors: list[ErrorRecord],
) -> Path:
    report = {
        "run_id": run_id,
        "backend": backend,
        "started_at": started_at,
        "finished_at": datetime.now().isoformat(timespec="seconds"),
        "dry_run": dry_run,
        **source_paths,
        "counters": counters.to_dict(),
        "errors": [asdict(e) for e in errors],
    }
    report_path = Path(report_dir) / f"{run_id}.json"
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2, default=str))
    return report_path
