from __future__ import annotations

import argparse
import logging
import re
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from .config_loader import DEFAULT_LOG_DIR
from .diff import diff
from .logging_utils import configure_logging
from .models import CanonicalExport, ContactBase
from .normalization import contact_point_sort_key, role_sort_key
from .store import CanonicalFileError, load_canonical_json, log_timestamp, write_json
from .validation import format_validation_errors

logger = logging.getLogger(__name__)

COMPARED_FIELDS = ("displayName", "contactPoints", "roles", "department", "upn", "source", "kind")


@dataclass
class ComparisonReport:
    file_a: str
    file_b: str
    hash_a: Optional[str]
    hash_b: Optional[str]
    total_a: int
    total_b: int
    added: List[Dict[str, Any]] = field(default_factory=list)
    removed: List[Dict[str, Any]] = field(default_factory=list)
    modified: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def has_differences(self) -> bool:
        return bool(self.added or self.removed or self.modified)

    def to_dict(self, timestamp: str) -> Dict[str, Any]:
        return {
            "summary": {
                "totalComparedA": self.total_a,
                "totalComparedB": self.total_b,
                "added": len(self.added),
                "removed": len(self.removed),
                "modified": len(self.modified),
                "metadata": {
                    "fileA": self.file_a,
                    "hashA": self.hash_a,
                    "fileB": self.file_b,
                    "hashB": self.hash_b,
                    "timestamp": timestamp,
                },
            },
            "addedEntities": self.added,
            "removedEntities": self.removed,
            "modifiedEntities": self.modified,
        }


def read_export(path: str) -> CanonicalExport:
    payload = load_canonical_json(path)
    try:
        export = CanonicalExport.model_validate(payload)
    except ValidationError as exc:
        for message in format_validation_errors(exc):
            logger.error("   - %s", message)
        raise CanonicalFileError(f"Schema validation failed for {path}") from exc
    if not export.meta.hash:
        logger.warning("_meta.hash is missing in %s", path)
    return export


def comparable_view(entity: ContactBase) -> Dict[str, Any]:
    payload = entity.to_dict()
    view = {name: payload.get(name) for name in COMPARED_FIELDS}
    view["contactPoints"] = sorted(payload.get("contactPoints", []), key=contact_point_sort_key)
    view["roles"] = sorted(payload.get("roles", []), key=role_sort_key)
    return view


def _by_object_id(export: CanonicalExport) -> "OrderedDict[str, ContactBase]":
    ordered = sorted(export.ContactEntities, key=lambda entity: entity.objectId or "")
    return OrderedDict((entity.objectId or "", entity) for entity in ordered)


def compare_exports(
    export_a: CanonicalExport, export_b: CanonicalExport, file_a: str = "a", file_b: str = "b"
) -> ComparisonReport:
    """
    Compare two canonical exports keyed by ``objectId``.

    ``added`` holds entities only in A, ``removed`` those only in B.
    """
    entities_a = _by_object_id(export_a)
    entities_b = _by_object_id(export_b)
    report = ComparisonReport(
        file_a=file_a,
        file_b=file_b,
        hash_a=export_a.meta.hash,
        hash_b=export_b.meta.hash,
        total_a=len(entities_a),
        total_b=len(entities_b),
    )

    for object_id, entity_a in entities_a.items():
        entity_b = entities_b.get(object_id)
        if entity_b is None:
            report.added.append(entity_a.to_dict())
            logger.debug("Added: %s (%s)", object_id, entity_a.displayName or "N/A")
            continue
        field_diffs = diff(comparable_view(entity_a), comparable_view(entity_b))
        if field_diffs:
            report.modified.append({"objectId": object_id, "diffs": field_diffs})
            logger.debug("Modified: %s fields=%s", object_id, ", ".join(field_diffs))

    for object_id, entity_b in entities_b.items():
        if object_id not in entities_a:
            report.removed.append(entity_b.to_dict())
            logger.debug("Removed: %s (%s)", object_id, entity_b.displayName or "N/A")

    return report


def _safe_name(path: str) -> str:
    return re.sub(r"[^a-z0-9_.-]", "_", Path(path).name, flags=re.IGNORECASE)


def write_report(report: ComparisonReport, log_dir: str) -> Path:
    timestamp = log_timestamp()
    name = f"diff-{_safe_name(report.file_a)}-vs-{_safe_name(report.file_b)}-{timestamp}.json"
    return write_json(Path(log_dir) / name, report.to_dict(timestamp))


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Compare two canonical JSON files (A vs B).")
    parser.add_argument("--a", required=True, help="First canonical file (e.g. the new one).")
    parser.add_argument("--b", required=True, help="Second canonical file (the reference).")
    parser.add_argument("--log-dir", type=str, default=DEFAULT_LOG_DIR)
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("--fail-on-diff", action="store_true")
    parser.add_argument("--log-level", type=str, default=None, help="Override logging level")
    args = parser.parse_args(argv)

    level = args.log_level or ("DEBUG" if args.verbose else None)
    configure_logging(None, level_override=level)

    try:
        export_a = read_export(args.a)
        export_b = read_export(args.b)
    except CanonicalFileError as exc:
        logger.error("%s", exc)
        return 1

    report = compare_exports(export_a, export_b, Path(args.a).name, Path(args.b).name)
    logger.info("Entities in A: %d, in B: %d", report.total_a, report.total_b)
    logger.info("Added (in A, not B): %d", len(report.added))
    logger.info("Removed (in B, not A): %d", len(report.removed))
    logger.info("Modified: %d", len(report.modified))
    logger.info("Report written to %s", write_report(report, args.log_dir))

    if report.has_differences and args.fail_on_diff:
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
