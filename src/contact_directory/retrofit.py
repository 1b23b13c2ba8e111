from __future__ import annotations

import argparse
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .config_loader import DEFAULT_JSON_PATH
from .logging_utils import configure_logging
from .normalization import manual_object_id
from .store import CanonicalFileError, load_canonical_json, write_json

logger = logging.getLogger(__name__)

MANUAL_PREFIX = "manual-"


def retrofit_entity(entity: Dict[str, Any], index: int) -> Tuple[Dict[str, Any], bool]:
    """
    Derive ``kind`` from the ``objectId`` shape and fill missing internal objectIds.

    Returns the (possibly new) entity and whether anything changed.
    """
    object_id = entity.get("objectId")
    is_manual = isinstance(object_id, str) and object_id.startswith(MANUAL_PREFIX)
    # without an objectId only an explicit internal kind is trusted
    if is_manual or (not object_id and entity.get("kind") == "internal"):
        kind = "internal"
    else:
        kind = "external"

    final_object_id = object_id
    if kind == "internal" and not object_id:
        final_object_id = manual_object_id(entity.get("id") or entity.get("displayName"))
        logger.warning(
            "Entity %d (%s) had no objectId; generated %s", index, entity.get("id"), final_object_id
        )
    elif kind == "external" and not object_id:
        logger.error("External entity %d (%s) is missing its objectId", index, entity.get("id"))

    changed = entity.get("kind") != kind or object_id != final_object_id
    if not changed:
        return entity, False
    logger.info(
        "Entity %d (%s): kind %s -> %s, objectId %s -> %s",
        index,
        entity.get("id"),
        entity.get("kind"),
        kind,
        object_id,
        final_object_id,
    )
    return {**entity, "objectId": final_object_id, "kind": kind}, True


def retrofit_payload(payload: Any) -> int:
    """Rewrite ``payload["ContactEntities"]`` in place; returns the number of changed entities."""
    entities = payload.get("ContactEntities") if isinstance(payload, dict) else None
    if not isinstance(entities, list):
        raise CanonicalFileError("missing or invalid ContactEntities array")

    updated: List[Any] = []
    changed_count = 0
    for index, entity in enumerate(entities):
        if not isinstance(entity, dict):
            updated.append(entity)
            continue
        new_entity, changed = retrofit_entity(entity, index)
        updated.append(new_entity)
        changed_count += int(changed)
    payload["ContactEntities"] = updated
    return changed_count


def retrofit_file(path: str, dry_run: bool = False) -> int:
    payload = load_canonical_json(path)
    changed = retrofit_payload(payload)
    if changed and not dry_run:
        write_json(path, payload)
        logger.info("Updated %d entries in %s", changed, path)
    elif changed:
        logger.info("Dry run: %d entries in %s would change", changed, path)
    else:
        logger.info("No entries needed updating in %s", path)
    return changed


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Repair kind/objectId on canonical contact files in place."
    )
    parser.add_argument("files", nargs="*", default=None, help="Canonical JSON files.")
    parser.add_argument("-d", "--dry-run", action="store_true")
    parser.add_argument("--log-level", type=str, default=None, help="Override logging level")
    args = parser.parse_args(argv)
    configure_logging(None, level_override=args.log_level)

    failures = 0
    for path in args.files or [DEFAULT_JSON_PATH]:
        try:
            retrofit_file(path, dry_run=args.dry_run)
        except CanonicalFileError as exc:
            logger.error("Error processing %s: %s", path, exc)
            failures += 1
    return 1 if failures else 0


if __name__ == "__main__":
    raise SystemExit(main())
