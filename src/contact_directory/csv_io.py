from __future__ import annotations

import csv
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import pandas as pd

from .models import EXPORTABLE_SOURCES, ContactBase, ensure_entity
from .normalization import RAW_ROW_FIELDS, canonical_header

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    "Display Name",
    "Mobile Phone",
    "Object ID",
    "User Principal Name",
    "Title",
    "Department",
]


class CsvInputError(ValueError):
    """Raised when an input CSV is missing or cannot be parsed."""


def _header_map(columns: Iterable[Any]) -> Dict[str, str]:
    """Map raw column names onto ``RawRow`` keys; the first alias seen wins."""
    mapping: Dict[str, str] = {}
    claimed = set()
    for column in columns:
        key = canonical_header(column)
        if key is None or key in claimed:
            continue
        claimed.add(key)
        mapping[str(column)] = key
    return mapping


def read_csv_rows(path: Optional[Union[str, Path]]) -> List[Dict[str, Optional[str]]]:
    """
    Read an HR/identity export into ``RawRow`` dicts.

    Headers are matched case-insensitively after stripping BOMs and
    non-breaking spaces. Every ``RawRow`` key is present; blank cells are None.
    """
    if not path or not os.path.exists(path):
        raise CsvInputError(f"CSV file not found: {path}")
    try:
        df = pd.read_csv(path, dtype=str, keep_default_na=False, encoding="utf-8-sig")
    except pd.errors.EmptyDataError:
        logger.warning("CSV file %s is empty", path)
        return []
    except (pd.errors.ParserError, UnicodeDecodeError, OSError) as exc:
        raise CsvInputError(f"Unable to read CSV {path}: {exc}") from exc

    header_map = _header_map(df.columns)
    missing = [key for key in RAW_ROW_FIELDS if key not in header_map.values()]
    if missing:
        logger.debug("CSV %s has no column for: %s", path, ", ".join(missing))

    rows: List[Dict[str, Optional[str]]] = []
    for record in df.to_dict(orient="records"):
        row: Dict[str, Optional[str]] = {key: None for key in RAW_ROW_FIELDS}
        for column, key in header_map.items():
            value = str(record.get(column, "") or "").strip()
            row[key] = value or None
        rows.append(row)
    logger.info("Read %d rows from %s", len(rows), path)
    return rows


def export_row(entity: ContactBase) -> Dict[str, str]:
    mobile = entity.first_point("mobile")
    # Title comes from the lowest priority number, not the first listed role
    role = entity.primary_role()
    return {
        "Display Name": entity.displayName or "",
        "Mobile Phone": mobile.value if mobile else "",
        "Object ID": entity.objectId or "",
        "User Principal Name": str(entity.upn or ""),
        "Title": (role.title if role else None) or "",
        "Department": entity.department or "",
    }


def export_csv(entities: Iterable[Any], destination: Union[str, Path]) -> int:
    """Write the CSV-sourced entities back out in the identity export layout."""
    rows = [
        export_row(entity)
        for entity in (ensure_entity(item) for item in entities)
        if entity.source in EXPORTABLE_SOURCES
    ]
    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)
    pd.DataFrame(rows, columns=EXPORT_COLUMNS).to_csv(
        str(destination), index=False, encoding="utf-8", quoting=csv.QUOTE_ALL
    )
    logger.info("Exported %d contacts to %s", len(rows), destination)
    return len(rows)
