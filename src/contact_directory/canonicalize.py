from __future__ import annotations

import argparse
import json
import logging
import os
from typing import List, Optional, Sequence

from .config_loader import SyncConfig, load_sync_config
from .csv_io import CsvInputError, export_csv, read_csv_rows
from .diagnostics import Diagnostics
from .diff import diff, diff_canonical
from .hashing import compute_hash
from .logging_utils import configure_logging
from .merge import ADDED, NO_CHANGE, NOT_FOUND, UPDATE, ChangeRecord, update_from_csv
from .models import CanonicalExport
from .store import CanonicalFileError, load_canonical_json, write_canonical, write_diff_log
from .transform import to_canonical, utc_timestamp
from .validation import ValidationOutcome, validate_canonical

logger = logging.getLogger(__name__)


class SyncAbort(RuntimeError):
    """Fatal condition that stops the run before anything is written."""


def _require_valid(outcome: ValidationOutcome, label: str) -> CanonicalExport:
    if not outcome.success or outcome.value is None:
        logger.error("%s validation failed:", label)
        for error in outcome.errors:
            logger.error("   - %s", error)
        raise SyncAbort(f"{label} validation failed")
    logger.info("%s validation successful.", label)
    return outcome.value


def load_live(path: str) -> CanonicalExport:
    logger.info("Loading live canonical data from: %s", path)
    payload = load_canonical_json(path)
    if isinstance(payload, dict) and (payload.get("_meta") or {}).get("hash"):
        logger.warning("_meta.hash present in live data; ignoring it for change detection")
    return _require_valid(validate_canonical(payload), "Live data")


def stamp_meta(
    export: CanonicalExport, new_hash: str, generated_from: Sequence[str]
) -> CanonicalExport:
    sources: List[str] = []
    for source in generated_from:
        if source not in sources:
            sources.append(source)
    meta = export.meta.model_copy(
        update={"hash": new_hash, "generatedFrom": sources, "generatedAt": utc_timestamp()}
    )
    return export.replace(meta=meta)


def _log_change_details(changes: Sequence[ChangeRecord]) -> None:
    for change in changes:
        if change.type == UPDATE:
            field_changes = diff(change.before, change.after)
            logger.debug("  [UPDATE] %s: %s", change.key, json.dumps(field_changes, indent=2))
        elif change.type == ADDED:
            logger.debug("  [ADDED] %s", change.key)
        elif change.type == NOT_FOUND:
            after = change.after or {}
            logger.debug(
                "  [NOT FOUND] %s (%s)", change.key, after.get("displayName") or "no display name"
            )


def _finish(
    config: SyncConfig,
    live: Optional[CanonicalExport],
    candidate: CanonicalExport,
    changes: Sequence[ChangeRecord],
    initial_hash: Optional[str],
    source_label: str,
) -> int:
    """Validate, hash, diff and persist ``candidate``; returns the exit code."""
    candidate = _require_valid(validate_canonical(candidate), "Updated data")
    new_hash = compute_hash(candidate.ContactEntities, candidate.Locations)
    logger.info("   - New hash: %s", new_hash)
    logger.debug("Comparing hashes: initial=%s new=%s", initial_hash, new_hash)

    diff_result = diff_canonical(live, candidate)
    # title is outside the hashed projection, so the entity diff is consulted too
    if initial_hash == new_hash and not diff_result.has_changes:
        logger.info("No changes detected.")
        return 0

    logger.info(
        "Changes detected: %d added, %d removed, %d changed",
        len(diff_result.added),
        len(diff_result.removed),
        diff_result.changed_count,
    )
    previous_sources = list(live.meta.generatedFrom) if live is not None else []
    candidate = stamp_meta(candidate, new_hash, previous_sources + [source_label])

    if config.run.dry_run:
        logger.info("Dry run: skipping file writes.")
        _log_change_details(changes)
    else:
        write_canonical(config.outputs.out, candidate)
        write_diff_log(config.outputs.log_dir, diff_result, changes)

    if config.run.fail_on_diff:
        logger.error("Exiting with code 1 due to detected changes (--fail-on-diff).")
        return 1
    return 0


def run_export(config: SyncConfig) -> int:
    live = load_live(config.inputs.json)
    export_csv(live.ContactEntities, config.inputs.export_csv)
    return 0


def run_update(config: SyncConfig, diagnostics: Diagnostics) -> int:
    live = load_live(config.inputs.json)
    initial_hash = compute_hash(live.ContactEntities, live.Locations)
    logger.debug("Initial hash: %s", initial_hash)

    csv_path = config.inputs.update_from_csv
    rows = read_csv_rows(csv_path)
    result = update_from_csv(
        rows,
        live.ContactEntities,
        settings=config.merge_settings(),
        diagnostics=diagnostics,
        add_missing=config.run.add_missing,
    )
    logger.info("Update summary:")
    logger.info("   - Rows processed from CSV: %d", len(rows))
    logger.info("   - Matched & updated: %d", result.count(UPDATE))
    logger.info("   - Matched & no change: %d", result.count(NO_CHANGE))
    logger.info("   - Not found: %d", result.count(NOT_FOUND))
    if config.run.add_missing:
        logger.info("   - Added: %d", result.count(ADDED))

    candidate = live.replace(ContactEntities=result.updated)
    return _finish(
        config,
        live,
        candidate,
        result.changes,
        initial_hash,
        f"updateFromCsv: {os.path.basename(csv_path)}",
    )


def run_import(config: SyncConfig, diagnostics: Diagnostics) -> int:
    """Rebuild external entities from a CSV, carrying curated data over from the live file."""
    live: Optional[CanonicalExport] = None
    initial_hash: Optional[str] = None
    if os.path.exists(config.inputs.json):
        live = load_live(config.inputs.json)
        initial_hash = compute_hash(live.ContactEntities, live.Locations)
    else:
        logger.info("No live file at %s; importing from scratch", config.inputs.json)

    csv_path = config.inputs.import_csv
    rows = read_csv_rows(csv_path)
    internal = [e for e in live.ContactEntities if e.kind == "internal"] if live else []
    imported = to_canonical(
        rows,
        f"importCsv: {os.path.basename(csv_path)}",
        settings=config.merge_settings(),
        diagnostics=diagnostics,
        taken_ids=[entity.id for entity in internal],
    )
    candidate = imported.replace(
        ContactEntities=list(imported.ContactEntities) + internal,
        Locations=list(live.Locations) if live else [],
    )
    logger.info(
        "Imported %d external entities; kept %d internal entities",
        len(imported.ContactEntities),
        len(internal),
    )
    return _finish(config, live, candidate, [], initial_hash, imported.meta.generatedFrom[0])


def run(config: SyncConfig) -> int:
    diagnostics = Diagnostics(logger)
    try:
        if config.inputs.export_csv:
            return run_export(config)
        if config.inputs.import_csv:
            return run_import(config, diagnostics)
        if config.inputs.update_from_csv:
            return run_update(config, diagnostics)
        load_live(config.inputs.json)
        logger.info("Default action: validation complete.")
        return 0
    except (CanonicalFileError, CsvInputError, SyncAbort) as exc:
        logger.error("%s", exc)
        return 1
    finally:
        if diagnostics.warnings:
            logger.info("%d warnings raised during the run", len(diagnostics.warnings))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate, export, or selectively update the canonical contact JSON."
    )
    parser.add_argument("--config", type=str, default=None, help="Path to YAML config.")
    parser.add_argument("-j", "--json", type=str, default=None, help="Live canonical JSON file.")
    parser.add_argument("-o", "--out", type=str, default=None, help="Output JSON path.")
    parser.add_argument("-u", "--update-from-csv", type=str, default=None)
    parser.add_argument("-i", "--import-csv", type=str, default=None)
    parser.add_argument("-e", "--export-csv", type=str, default=None)
    parser.add_argument("-f", "--fail-on-diff", action="store_true")
    parser.add_argument("-d", "--dry-run", action="store_true")
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument(
        "--add-missing",
        action="store_true",
        help="Append CSV rows that match no live entity as new external entities.",
    )
    parser.add_argument("--default-brand", type=str, default=None)
    parser.add_argument("--default-office", type=str, default=None)
    parser.add_argument("--log-dir", type=str, default=None, help="Directory for diff logs.")
    parser.add_argument("--log-level", type=str, default=None, help="Override logging level")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = load_sync_config(args)
    configure_logging(config, level_override=args.log_level)
    return run(config)


if __name__ == "__main__":
    raise SystemExit(main())
