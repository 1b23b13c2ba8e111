from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Union

from .diff import DiffResult
from .models import CanonicalExport
from .normalization import contact_point_sort_key, role_sort_key

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class CanonicalFileError(ValueError):
    """Raised when the canonical JSON file is missing, unreadable or not JSON."""


def load_canonical_json(path: PathLike) -> Any:
    """Return the raw payload; schema validation is left to the caller."""
    path = Path(path)
    if not path.exists():
        raise CanonicalFileError(f"Canonical file not found: {path}")
    try:
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)
    except json.JSONDecodeError as exc:
        raise CanonicalFileError(f"Canonical file {path} is not valid JSON: {exc}") from exc
    except OSError as exc:
        raise CanonicalFileError(f"Unable to read canonical file {path}: {exc}") from exc


def sorted_for_persistence(export: CanonicalExport) -> Dict[str, Any]:
    payload = export.to_dict()
    for entity in payload.get("ContactEntities", []):
        entity["roles"] = sorted(entity.get("roles", []), key=role_sort_key)
        entity["contactPoints"] = sorted(
            entity.get("contactPoints", []), key=contact_point_sort_key
        )
    return payload


def write_json(path: PathLike, payload: Any) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2, ensure_ascii=False)
        handle.write("\n")
    return path


def write_canonical(path: PathLike, export: CanonicalExport) -> Path:
    written = write_json(path, sorted_for_persistence(export))
    logger.info("Wrote %d contacts to %s", len(export.ContactEntities), written)
    return written


def log_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")


def write_diff_log(log_dir: PathLike, summary: DiffResult, details: Iterable[Any]) -> Path:
    """Write ``diff-update-<timestamp>.json`` holding the diff summary and change records."""
    path = Path(log_dir) / f"diff-update-{log_timestamp()}.json"
    payload = {
        "summary": summary.to_dict(),
        "details": [record.to_dict() for record in details],
    }
    written = write_json(path, payload)
    logger.info("Diff log written to %s", written)
    return written
