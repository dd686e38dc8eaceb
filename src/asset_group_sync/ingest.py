"""asset_group_sync.ingest

Stream the asset extract and fold each row's IPs into per-group aggregates.

Extract layout (comma-separated, no header, fixed positions):
  [0]          asset name
  [1]          contact
  [2]          owner
  [3 .. n-3]   IP addresses (variable count)
  [n-2]        created timestamp      (empty → absent)
  [n-1]        deactivated timestamp  (empty → absent)

Rows with fewer than 6 fields are discarded without complaint. A non-empty
timestamp that does not parse aborts the whole pass: nothing is reconciled
from a partially understood extract.

A row with no deactivated timestamp is active; its IPs go to the active set
of both its owner group and its contact group. Otherwise they go to both
deactivated sets. A row is never split across the two.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterable

from asset_group_sync.normalize import TimestampParseError, parse_optional_extract_ts
from asset_group_sync.shared import RunCounters

log = logging.getLogger(__name__)

FIELD_DELIMITER = ","
MIN_FIELDS = 6

KIND_OWNER = "owner"
KIND_CONTACT = "contact"
GROUP_KINDS = (KIND_OWNER, KIND_CONTACT)


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Row:
    asset_name: str
    contact: str
    owner: str
    ips: tuple[str, ...]
    created_at: datetime | None = None
    deactivated_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.deactivated_at is None


@dataclass(frozen=True)
class GroupKey:
    kind: str
    name: str


@dataclass
class AggregateState:
    """Active and deactivated IP sets per group.

    The two buckets are independent: if rows disagree about an IP, it may sit
    in both the active and the deactivated set of the same group.
    """

    active: dict[GroupKey, set[str]] = field(default_factory=dict)
    deactivated: dict[GroupKey, set[str]] = field(default_factory=dict)

    def add(self, key: GroupKey, ips: Iterable[str], deactivated: bool) -> None:
        bucket = self.deactivated if deactivated else self.active
        bucket.setdefault(key, set()).update(ips)

    def groups(self, kind: str, deactivated: bool) -> dict[str, set[str]]:
        bucket = self.deactivated if deactivated else self.active
        return {k.name: ips for k, ips in bucket.items() if k.kind == kind}

    @property
    def owner_active(self) -> dict[str, set[str]]:
        return self.groups(KIND_OWNER, deactivated=False)

    @property
    def contact_active(self) -> dict[str, set[str]]:
        return self.groups(KIND_CONTACT, deactivated=False)

    @property
    def owner_deactivated(self) -> dict[str, set[str]]:
        return self.groups(KIND_OWNER, deactivated=True)

    @property
    def contact_deactivated(self) -> dict[str, set[str]]:
        return self.groups(KIND_CONTACT, deactivated=True)


# ---------------------------------------------------------------------------
# Row parsing
# ---------------------------------------------------------------------------

def parse_row(line: str) -> Row | None:
    """Parse one extract line. Returns None for rows with too few fields.

    Raises TimestampParseError for a malformed non-empty timestamp.
    """
    cols = line.rstrip("\r\n").split(FIELD_DELIMITER)
    if len(cols) < MIN_FIELDS:
        return None
    ips = tuple(ip.strip() for ip in cols[3:-2] if ip.strip())
    return Row(
        asset_name=cols[0].strip(),
        contact=cols[1].strip(),
        owner=cols[2].strip(),
        ips=ips,
        created_at=parse_optional_extract_ts(cols[-2]),
        deactivated_at=parse_optional_extract_ts(cols[-1]),
    )


def should_skip_row(row: Row, since: datetime | None) -> bool:
    """True when every timestamp present on the row is earlier than `since`.

    Rows carrying no timestamps at all are always kept.
    """
    if since is None:
        return False
    created, deactivated = row.created_at, row.deactivated_at
    created_before = created is not None and created < since
    deactivated_before = deactivated is not None and deactivated < since
    if created_before and (deactivated is None or deactivated_before):
        return True
    return deactivated_before and (created is None or created_before)


def fold_row(state: AggregateState, row: Row) -> None:
    deactivated = not row.is_active
    state.add(GroupKey(KIND_OWNER, row.owner), row.ips, deactivated)
    state.add(GroupKey(KIND_CONTACT, row.contact), row.ips, deactivated)


# ---------------------------------------------------------------------------
# Ingest pass
# ---------------------------------------------------------------------------

def ingest_lines(
    lines: Iterable[str],
    since: datetime | None = None,
    counters: RunCounters | None = None,
) -> AggregateState:
    """Fold every usable line into a fresh AggregateState."""
    counters = counters if counters is not None else RunCounters()
    state = AggregateState()
    for lineno, line in enumerate(lines, start=1):
        counters.rows_read += 1
        try:
            row = parse_row(line)
        except TimestampParseError as exc:
            raise TimestampParseError(f"line {lineno}: {exc}") from exc
        if row is None:
            counters.rows_discarded_shape += 1
            continue
        if should_skip_row(row, since):
            counters.rows_skipped_checkpoint += 1
            continue
        if row.is_active:
            counters.rows_active += 1
        else:
            counters.rows_deactivated += 1
        fold_row(state, row)
    log.info(
        "Ingested %d rows: %d active, %d deactivated, %d before checkpoint, %d malformed",
        counters.rows_read,
        counters.rows_active,
        counters.rows_deactivated,
        counters.rows_skipped_checkpoint,
        counters.rows_discarded_shape,
    )
    return state


def ingest_extract(
    path: Path,
    since: datetime | None = None,
    counters: RunCounters | None = None,
) -> AggregateState:
    with open(path, encoding="utf-8", newline="") as fh:
        return ingest_lines(fh, since=since, counters=counters)
