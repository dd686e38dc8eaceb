"""asset_group_sync.reconcile

Drive remote membership edits from the ingest aggregates.

Order is fixed: owner removals, contact removals, owner additions, contact
additions. All removals finish before any addition starts.

Per-group outcomes:
  transport failure             → counted + logged, group abandoned
  lookup body carries a code    → classified like any response, never
                                  treated as not found
  not found (group back-end)    → GROUP_NOT_FOUND record
  not found (tag back-end)      → remove: no-op; add: create with the IPs,
                                  GROUP_NOT_FOUND_AND_CREATE_FAILED on failure
  response code, fatal tier     → FatalRemoteError; nothing further runs
  response code, recorded tier  → ErrorRecord, continue
  response code, unknown        → ErrorRecord(category=unclassified), continue
"""

from __future__ import annotations

import logging
from typing import Iterable

from asset_group_sync.ingest import GROUP_KINDS, AggregateState
from asset_group_sync.qualys_errors import (
    TIER_FATAL,
    TIER_RECORDED,
    TIER_SUCCESS,
    ErrorClassifier,
)
from asset_group_sync.remote_client import (
    ACTION_ADD,
    ACTION_REMOVE,
    AssetGroupBackend,
    LookupResult,
    validate_action,
)
from asset_group_sync.shared import (
    UNCLASSIFIED,
    ErrorRecord,
    RunCounters,
    group_create_failed,
    group_not_found,
)

_log = logging.getLogger(__name__)


class FatalRemoteError(Exception):
    """A response code that, by policy, must stop the whole run."""

    def __init__(self, code: str, description: str, group: str = "") -> None:
        super().__init__(f"Fatal Qualys API error code {code} ({description})")
        self.code = code
        self.description = description
        self.group = group


class Reconciler:
    def __init__(
        self,
        client: AssetGroupBackend | None,
        classifier: ErrorClassifier,
        counters: RunCounters,
        dry_run: bool = False,
        logger: logging.Logger | None = None,
    ) -> None:
        if client is None and not dry_run:
            raise ValueError("a remote client is required unless dry_run is set")
        self.client = client
        self.classifier = classifier
        self.counters = counters
        self.dry_run = dry_run
        self.log = logger or _log
        self.errors: list[ErrorRecord] = []

    def run(self, aggregates: AggregateState) -> list[ErrorRecord]:
        """Process every group; raises FatalRemoteError on a fatal code."""
        for kind in GROUP_KINDS:
            for name, ips in aggregates.groups(kind, deactivated=True).items():
                self.sync_group(ACTION_REMOVE, kind, name, ips)
        for kind in GROUP_KINDS:
            for name, ips in aggregates.groups(kind, deactivated=False).items():
                self.sync_group(ACTION_ADD, kind, name, ips)
        return self.errors

    def sync_group(self, action: str, kind: str, name: str, ips: Iterable[str]) -> None:
        validate_action(action)
        ips = sorted(set(ips))
        if not ips:
            self.counters.groups_skipped_empty += 1
            self.log.debug("No IPs to %s for %s group %r; skipping", action, kind, name)
            return

        if self.dry_run:
            self.counters.dry_run_actions += 1
            preposition = "to" if action == ACTION_ADD else "from"
            self.log.info(
                "[DRY RUN] Would %s IPs %s %s %s group: %s",
                action, ips, preposition, kind, name,
            )
            return

        self.counters.groups_processed += 1
        lookup = self.client.lookup_by_name(name)
        if lookup.transport_error:
            self._transport_failure(f"lookup of {kind} group {name!r}")
            return

        if not lookup.found:
            if self._check_response(lookup.body, name):
                return
            self._handle_missing(action, kind, name, ips)
            return

        body = self.client.edit_membership(lookup.group_id, action, ips)
        if body is None:
            self._transport_failure(f"{action} on {kind} group {name!r}")
            return
        self._check_response(body, name)

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _handle_missing(self, action: str, kind: str, name: str, ips: list[str]) -> None:
        if not self.client.creates_missing:
            self.log.warning("Asset group not found for %s: %s", kind, name)
            self.errors.append(group_not_found(name))
            return

        if action == ACTION_REMOVE:
            self.log.info("Tag %r not found; nothing to remove", name)
            return

        self.log.info("Tag %r not found; creating with %d IPs", name, len(ips))
        created: LookupResult = self.client.create(name, ips)
        if created.transport_error:
            self.counters.transport_errors += 1
        elif not created.found:
            self._check_response(created.body, name)
        if not created.found:
            self.log.warning("Tag %r not found and could not be created", name)
            self.errors.append(group_create_failed(name))
            return
        self.counters.groups_created += 1
        self.log.info("Created tag %r (id %s)", name, created.group_id)

    def _transport_failure(self, what: str) -> None:
        self.counters.transport_errors += 1
        self.counters.warnings.append(f"transport failure: {what}")
        self.log.warning("No answer from remote service for %s; continuing", what)

    def _check_response(self, body: str | None, group: str) -> bool:
        """Classify a response body; raise on fatal, record otherwise.

        Returns True when the body carried a code and a record was appended.
        """
        tier, code = self.classifier.classify_response(body)
        if tier == TIER_SUCCESS:
            return False
        description = self.classifier.describe(code)
        if tier == TIER_FATAL:
            self.counters.fatal_code = code
            self.log.critical(
                "Fatal Qualys API error code %s (%s) received for %s; aborting run",
                code, description, group,
            )
            raise FatalRemoteError(code, description, group)
        if tier == TIER_RECORDED:
            self.counters.recorded_errors += 1
            record = ErrorRecord(code=code, description=description, group=group)
        else:
            self.counters.unclassified_codes += 1
            record = ErrorRecord(
                code=code, description=description, group=group, category=UNCLASSIFIED,
            )
        self.log.warning("%s", record)
        self.errors.append(record)
        return True
