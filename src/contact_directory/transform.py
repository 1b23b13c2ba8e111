from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Set

from pydantic import ValidationError

from .diagnostics import Diagnostics, ensure_diagnostics
from .models import CanonicalExport, CanonicalMeta, ContactPoint, ExternalContact, Role
from .normalization import (
    DEPARTMENT,
    DISPLAY_NAME,
    MOBILE_PHONE,
    OBJECT_ID,
    TITLE,
    UPN,
    MergeSettings,
    fallback_id,
    first_mobile_token,
    optional_value,
    safe_get,
    slugify,
)
from .validation import format_validation_errors

logger = logging.getLogger(__name__)


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def mobile_point(value: str, settings: MergeSettings) -> ContactPoint:
    return ContactPoint(type="mobile", value=value, source=settings.source)


def prepare_entity_payload(row: Dict[str, Any], settings: MergeSettings) -> Dict[str, Any]:
    """Map one CSV row onto an external entity payload without an ``id``."""
    title = optional_value(row, TITLE)
    mobile = first_mobile_token(safe_get(row, MOBILE_PHONE))
    contact_points = [mobile_point(mobile, settings)] if mobile else []
    roles = (
        [Role(brand=settings.default_brand, office=settings.default_office, title=title, priority=1)]
        if title
        else []
    )
    return {
        "kind": "external",
        "objectId": safe_get(row, OBJECT_ID),
        "displayName": optional_value(row, DISPLAY_NAME),
        "title": title,
        "contactPoints": contact_points,
        "roles": roles,
        "upn": optional_value(row, UPN),
        "department": optional_value(row, DEPARTMENT),
        "source": settings.source,
    }


def assign_ids(payloads: List[Dict[str, Any]], taken: Optional[Iterable[str]] = None) -> None:
    """
    Give each payload a stable ``id``.

    The slug of the display name is used when exactly one payload produces it.
    Every holder of a shared (or empty) slug is demoted to a hash of its
    ``objectId``; a clash on an already assigned id gets ``-2``, ``-3``, ...
    """
    used: Set[str] = set(taken or [])
    slugs = [slugify(payload.get("displayName")) for payload in payloads]
    slug_counts = Counter(slugs)
    for payload, slug in zip(payloads, slugs):
        if slug and slug_counts[slug] == 1:
            candidate = slug
        else:
            candidate = fallback_id(payload["objectId"])
        final_id = candidate
        suffix = 2
        while final_id in used:
            final_id = f"{candidate}-{suffix}"
            suffix += 1
        used.add(final_id)
        payload["id"] = final_id


def rows_to_entities(
    rows: Iterable[Dict[str, Any]],
    settings: Optional[MergeSettings] = None,
    diagnostics: Optional[Diagnostics] = None,
    taken_ids: Optional[Iterable[str]] = None,
) -> List[ExternalContact]:
    settings = settings or MergeSettings()
    diagnostics = ensure_diagnostics(diagnostics, logger)

    payloads: List[Dict[str, Any]] = []
    seen_object_ids: Set[str] = set()
    for idx, row in enumerate(rows, start=1):
        object_id = safe_get(row, OBJECT_ID)
        if not object_id:
            diagnostics.warning(
                "Skipping CSV row %d (%s): missing object id",
                idx,
                safe_get(row, DISPLAY_NAME) or "no display name",
                row=idx,
            )
            continue
        if object_id in seen_object_ids:
            diagnostics.warning(
                "Skipping CSV row %d: duplicate object id %s", idx, object_id, row=idx
            )
            continue
        seen_object_ids.add(object_id)
        payloads.append(prepare_entity_payload(row, settings))

    assign_ids(payloads, taken=taken_ids)

    entities: List[ExternalContact] = []
    for payload in payloads:
        try:
            entities.append(ExternalContact.model_validate(payload))
        except ValidationError as exc:
            diagnostics.warning(
                "Dropping entity %s: %s",
                payload["objectId"],
                "; ".join(format_validation_errors(exc)),
                object_id=payload["objectId"],
            )

    entities.sort(key=lambda entity: ((entity.displayName or "").lower(), entity.displayName or ""))
    logger.debug("Transformed %d CSV rows into %d entities", len(payloads), len(entities))
    return entities


def to_canonical(
    rows: Iterable[Dict[str, Any]],
    source_label: str,
    settings: Optional[MergeSettings] = None,
    diagnostics: Optional[Diagnostics] = None,
    taken_ids: Optional[Iterable[str]] = None,
) -> CanonicalExport:
    """Build a fresh canonical export from CSV rows; ``_meta.hash`` is left empty."""
    entities = rows_to_entities(
        rows, settings=settings, diagnostics=diagnostics, taken_ids=taken_ids
    )
    return CanonicalExport(
        ContactEntities=entities,
        Locations=[],
        meta=CanonicalMeta(
            generatedFrom=[source_label],
            generatedAt=utc_timestamp(),
            version=1,
            hash="",
        ),
    )
