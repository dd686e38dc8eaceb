"""asset_group_sync.cli

CLI entrypoint: reconcile an asset extract against Qualys groups or tags.

Usage:
    asset-group-sync [INPUT_PATH] [START_TIMESTAMP] [SUPPRESS_API_CALLS]

    asset-group-sync exports/cmdb.csv
    asset-group-sync exports/cmdb.csv "05/01/2025 08:30:00 AM" true
    asset-group-sync exports/cmdb.csv "" false --backend tag

START_TIMESTAMP overrides the checkpoint file; leave it empty to use the
checkpoint. SUPPRESS_API_CALLS=true is a dry run: aggregation and ordering
run unchanged, remote calls are only logged, and the checkpoint is not
advanced.

Credentials are read from the environment (QUALYS_USERNAME / QUALYS_PASSWORD
by default), never from arguments.

Exit status: 0 on completion, 1 on a fatal Qualys error code or missing
credentials; extract parse errors exit non-zero with the offending line.
"""

from __future__ import annotations

import logging
import os
import sys
import uuid
from datetime import datetime
from pathlib import Path

import click

from asset_group_sync.checkpoint import DEFAULT_CHECKPOINT_PATH, Checkpoint
from asset_group_sync.ingest import AggregateState, ingest_extract
from asset_group_sync.normalize import (
    TimestampParseError,
    format_canonical_ts,
    format_extract_ts,
    parse_any_ts,
    trim,
)
from asset_group_sync.qualys_errors import ErrorClassifier, parse_code_list
from asset_group_sync.reconcile import FatalRemoteError, Reconciler
from asset_group_sync.remote_client import (
    BACKEND_GROUP,
    BACKEND_TAG,
    DEFAULT_BASE_URL,
    DEFAULT_TIMEOUT,
    build_client,
)
from asset_group_sync.shared import ErrorRecord, RunCounters, write_run_report

log = logging.getLogger(__name__)

DEFAULT_INPUT_PATH = Path("samples/sample.csv")
DEFAULT_LOG_FILE = Path("asset-group-sync.log")
DEFAULT_REPORT_DIR = Path("artifacts/reports")
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(log_file: Path, level: int = logging.INFO) -> None:
    """Log to an appended file and to stderr."""
    log_file.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(log_file, mode="a", encoding="utf-8"),
            logging.StreamHandler(sys.stderr),
        ],
        force=True,
    )


def _flush_logs() -> None:
    for handler in logging.getLogger().handlers:
        handler.flush()


def _parse_start_timestamp(ctx, param, value: str | None) -> datetime | None:
    v = trim(value)
    if v is None:
        return None
    try:
        return parse_any_ts(v)
    except TimestampParseError as exc:
        raise click.BadParameter(
            f"{exc}. Expected MM/dd/yyyy hh:mm:ss AM|PM or YYYY-MM-DDTHH:MM:SS"
        ) from exc


def _echo_summary(run_id: str, aggregates: AggregateState, errors: list[ErrorRecord]) -> None:
    click.echo(f"[{run_id}] Error Records: {[str(e) for e in errors]}")
    sections = (
        ("Owner to Active IPs", "Owner", aggregates.owner_active),
        ("Contact to Active IPs", "Contact", aggregates.contact_active),
        ("Owner to Deactivated IPs", "Owner", aggregates.owner_deactivated),
        ("Contact to Deactivated IPs", "Contact", aggregates.contact_deactivated),
    )
    for title, label, groups in sections:
        log.info("%s:", title)
        for name, ips in groups.items():
            log.info("%s: %s -> IPs: %s", label, name, sorted(ips))
    for record in errors:
        log.info("Error record: %s", record)


@click.command()
@click.argument(
    "input_path",
    required=False,
    default=str(DEFAULT_INPUT_PATH),
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.argument(
    "start_timestamp",
    required=False,
    default=None,
    callback=_parse_start_timestamp,
)
@click.argument("suppress_api_calls", required=False, default=False, type=click.BOOL)
@click.option(
    "--backend",
    type=click.Choice([BACKEND_GROUP, BACKEND_TAG]),
    default=BACKEND_GROUP,
    show_default=True,
    help="Qualys addressing style: fo/asset/group or qps am/tag",
)
@click.option("--api-base-url", default=DEFAULT_BASE_URL, show_default=True)
@click.option("--api-user-env", default="QUALYS_USERNAME", show_default=True, help="Env var name holding the Qualys username")
@click.option("--api-pass-env", default="QUALYS_PASSWORD", show_default=True, help="Env var name holding the Qualys password")
@click.option("--fatal-codes", default=None, help="Comma-separated codes that abort the run (replaces the default set)")
@click.option("--checkpoint-path", default=str(DEFAULT_CHECKPOINT_PATH), show_default=True, type=click.Path(path_type=Path))
@click.option("--log-file", default=str(DEFAULT_LOG_FILE), show_default=True, type=click.Path(path_type=Path))
@click.option("--report-dir", default=str(DEFAULT_REPORT_DIR), show_default=True, type=click.Path(path_type=Path))
@click.option("--timeout", default=DEFAULT_TIMEOUT, type=int, show_default=True, help="Per-request timeout in seconds")
@click.option("--run-id", default=None, help="Override UUID for log correlation")
def main(
    input_path: Path,
    start_timestamp: datetime | None,
    suppress_api_calls: bool,
    backend: str,
    api_base_url: str,
    api_user_env: str,
    api_pass_env: str,
    fatal_codes: str | None,
    checkpoint_path: Path,
    log_file: Path,
    report_dir: Path,
    timeout: int,
    run_id: str | None,
) -> None:
    """Sync Qualys asset group / tag membership from an asset extract."""
    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.now().replace(microsecond=0)
    dry_run = suppress_api_calls
    configure_logging(log_file)

    click.echo(f"[{run_id}] Starting {backend} run (dry_run={dry_run})")

    checkpoint = Checkpoint(checkpoint_path)
    since = start_timestamp if start_timestamp is not None else checkpoint.load()
    if since is not None:
        click.echo(
            f"[{run_id}] Processing rows changed since {format_canonical_ts(since)}"
            f" (extract form: {format_extract_ts(since)})"
        )

    counters = RunCounters()
    try:
        aggregates = ingest_extract(input_path, since=since, counters=counters)
    except TimestampParseError as exc:
        log.error("Extract parse failed: %s", exc)
        _flush_logs()
        raise click.ClickException(f"{input_path}: {exc}") from exc

    client = None
    if not dry_run:
        username = os.environ.get(api_user_env, "")
        password = os.environ.get(api_pass_env, "")
        if not username or not password:
            click.echo(
                f"[{run_id}] FATAL: env vars {api_user_env} and {api_pass_env} must be set",
                err=True,
            )
            sys.exit(1)
        client = build_client(backend, username, password, base_url=api_base_url, timeout=timeout)

    reconciler = Reconciler(
        client,
        ErrorClassifier(parse_code_list(fatal_codes)),
        counters,
        dry_run=dry_run,
    )
    report_sources = {"input_path": str(input_path), "checkpoint_path": str(checkpoint_path)}

    try:
        errors = reconciler.run(aggregates)
    except FatalRemoteError as exc:
        click.echo(f"[{run_id}] {exc}. Exiting application.", err=True)
        report_path = write_run_report(
            report_dir, run_id, started_at.isoformat(), backend, dry_run,
            report_sources, counters, reconciler.errors,
        )
        click.echo(f"[{run_id}] Run report: {report_path}")
        click.echo(f"[{run_id}] Checkpoint left unchanged: {checkpoint.path}", err=True)
        _flush_logs()
        sys.exit(1)

    _echo_summary(run_id, aggregates, errors)
    report_path = write_run_report(
        report_dir, run_id, started_at.isoformat(), backend, dry_run,
        report_sources, counters, errors,
    )
    click.echo(f"[{run_id}] Run report: {report_path}")

    if dry_run:
        click.echo(f"[{run_id}] DRY RUN: checkpoint not advanced.")
    else:
        checkpoint.save(started_at)
        click.echo(f"[{run_id}] Checkpoint: {format_canonical_ts(started_at)}")
    _flush_logs()


if __name__ == "__main__":
    main()
