from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from pydantic import ValidationError

from .diagnostics import Diagnostics, ensure_diagnostics
from .diff import diff
from .models import ContactBase, ContactPoint, Role, entity_from_mapping
from .normalization import (
    DEPARTMENT,
    DISPLAY_NAME,
    MOBILE_PHONE,
    OFFICE,
    TITLE,
    UPN,
    MergeSettings,
    OfficeTag,
    first_mobile_token,
    optional_value,
    parse_office_tag,
    row_identity,
    safe_get,
)
from .transform import mobile_point, rows_to_entities
from .validation import format_validation_errors

logger = logging.getLogger(__name__)

UPDATE = "update"
NO_CHANGE = "no_change"
NOT_FOUND = "not_found"
ADDED = "added"


@dataclass
class ChangeRecord:
    key: str
    type: str
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"key": self.key, "type": self.type}
        if self.before is not None:
            payload["before"] = self.before
        if self.after is not None:
            payload["after"] = self.after
        return payload


@dataclass
class MergeResult:
    updated: List[ContactBase]
    changes: List[ChangeRecord] = field(default_factory=list)

    def count(self, change_type: str) -> int:
        return sum(1 for change in self.changes if change.type == change_type)


class IdentityIndex:
    """
    Lookup of external entities by ``objectId`` then ``upn``.

    An exact ``objectId`` hit beats a case-folded one, so ids differing only
    in case still resolve to their own entity.
    """

    def __init__(self, entities: Sequence[ContactBase]):
        self.exact_object_id: Dict[str, int] = {}
        self.by_object_id: Dict[str, int] = {}
        self.by_upn: Dict[str, int] = {}
        for idx, entity in enumerate(entities):
            if entity.kind != "external":
                continue
            if entity.objectId:
                self.exact_object_id.setdefault(entity.objectId.strip(), idx)
                self.by_object_id.setdefault(entity.objectId.strip().lower(), idx)
            if entity.upn:
                self.by_upn.setdefault(str(entity.upn).strip().lower(), idx)

    def find(self, object_id: str, upn: str) -> Optional[int]:
        if object_id:
            match = self.exact_object_id.get(object_id)
            if match is not None:
                return match
            match = self.by_object_id.get(object_id.lower())
            if match is not None:
                return match
        if upn:
            return self.by_upn.get(upn.lower())
        return None


def _replace_mobile(
    points: List[ContactPoint], mobile: str, settings: MergeSettings
) -> List[ContactPoint]:
    merged: List[ContactPoint] = []
    inserted = False
    for point in points:
        if point.type != "mobile":
            merged.append(point)
            continue
        if mobile and not inserted:
            merged.append(mobile_point(mobile, settings))
            inserted = True
    if mobile and not inserted:
        merged.append(mobile_point(mobile, settings))
    return merged


def _apply_office_tag(
    roles: List[Role],
    tag: Optional[OfficeTag],
    title: Optional[str],
    key: str,
    diagnostics: Diagnostics,
) -> List[Role]:
    if tag is None:
        return list(roles)
    if not tag.is_full:
        diagnostics.info(
            "Office tag '%s' for %s names no brand; keeping existing roles",
            tag.office,
            key,
            key=key,
        )
        return list(roles)

    fresh = Role(brand=tag.brand, office=tag.office, title=title, priority=1)
    merged: List[Role] = []
    inserted = False
    for role in roles:
        if role.matches(tag.brand, tag.office):
            if not inserted:
                merged.append(fresh)
                inserted = True
            continue
        merged.append(role)
    if not inserted:
        merged.append(fresh)
    return merged


def build_candidate(
    entity: ContactBase,
    row: Dict[str, Any],
    settings: MergeSettings,
    diagnostics: Diagnostics,
    key: str,
) -> ContactBase:
    """
    Apply the CSV-owned columns of ``row`` to ``entity``.

    The CSV is authoritative for its own columns: an empty value clears the
    field. Roles are only touched through a full ``brand:office`` tag.
    """
    title = optional_value(row, TITLE)
    changes: Dict[str, Any] = {
        "displayName": optional_value(row, DISPLAY_NAME),
        "department": optional_value(row, DEPARTMENT),
        "title": title,
        "contactPoints": _replace_mobile(
            entity.contactPoints, first_mobile_token(safe_get(row, MOBILE_PHONE)), settings
        ),
        "roles": _apply_office_tag(
            entity.roles, parse_office_tag(safe_get(row, OFFICE)), title, key, diagnostics
        ),
    }
    upn = safe_get(row, UPN)
    if upn:
        changes["upn"] = upn
    return entity_from_mapping({**entity.to_dict(), **_dump_changes(changes)})


def _dump_changes(changes: Dict[str, Any]) -> Dict[str, Any]:
    dumped: Dict[str, Any] = {}
    for name, value in changes.items():
        if isinstance(value, list):
            dumped[name] = [item.to_dict() for item in value]
        else:
            dumped[name] = value
    return dumped


def _not_found(row: Dict[str, Any], object_id: str, upn: str) -> ChangeRecord:
    return ChangeRecord(
        key=object_id or upn,
        type=NOT_FOUND,
        after={
            "displayName": optional_value(row, DISPLAY_NAME),
            "objectId": object_id or None,
            "upn": upn or None,
        },
    )


def update_from_csv(
    rows: Iterable[Dict[str, Any]],
    live_entities: Sequence[ContactBase],
    settings: Optional[MergeSettings] = None,
    diagnostics: Optional[Diagnostics] = None,
    add_missing: bool = False,
) -> MergeResult:
    """
    Merge CSV rows into the live entity collection.

    Each row carrying an identity key yields one ``ChangeRecord``: ``update``,
    ``no_change`` or ``not_found``. Unmatched rows are only appended as new
    external entities (``added``) when ``add_missing`` is set. Live entities
    without a matching row pass through untouched.
    """
    settings = settings or MergeSettings()
    diagnostics = ensure_diagnostics(diagnostics, logger)

    updated: List[ContactBase] = list(live_entities)
    index = IdentityIndex(updated)
    changes: List[ChangeRecord] = []
    matched: Set[int] = set()
    unmatched_rows: List[Dict[str, Any]] = []

    for row_number, row in enumerate(rows, start=1):
        object_id, upn = row_identity(row)
        key = object_id or upn
        if not key:
            diagnostics.warning(
                "Skipping CSV row %d (%s): no object id or user principal name",
                row_number,
                safe_get(row, DISPLAY_NAME) or "no display name",
                row=row_number,
            )
            continue

        position = index.find(object_id, upn)
        if position is None:
            diagnostics.warning(
                "CSV row %d (%s) not found in canonical data",
                row_number,
                key,
                row=row_number,
                key=key,
            )
            if add_missing and object_id:
                unmatched_rows.append(row)
            else:
                changes.append(_not_found(row, object_id, upn))
            continue

        if position in matched:
            diagnostics.warning(
                "Skipping CSV row %d: %s already updated by an earlier row",
                row_number,
                key,
                row=row_number,
                key=key,
            )
            continue
        matched.add(position)

        original = updated[position]
        try:
            candidate = build_candidate(original, row, settings, diagnostics, key)
        except ValidationError as exc:
            diagnostics.warning(
                "Skipping CSV row %d: merged entity %s is invalid: %s",
                row_number,
                original.id,
                "; ".join(format_validation_errors(exc)),
                row=row_number,
                key=key,
            )
            continue

        if diff(original, candidate):
            updated[position] = candidate
            changes.append(
                ChangeRecord(
                    key=key, type=UPDATE, before=original.to_dict(), after=candidate.to_dict()
                )
            )
        else:
            changes.append(ChangeRecord(key=key, type=NO_CHANGE))

    if unmatched_rows:
        taken = {entity.id for entity in updated}
        known_object_ids = {entity.objectId for entity in updated if entity.objectId}
        fresh = rows_to_entities(
            unmatched_rows, settings=settings, diagnostics=diagnostics, taken_ids=taken
        )
        addable: Dict[str, ContactBase] = {}
        for entity in fresh:
            if entity.objectId in known_object_ids:
                diagnostics.warning(
                    "Not adding %s: objectId already used by another entity",
                    entity.objectId,
                    key=entity.objectId,
                )
                continue
            addable.setdefault(entity.objectId, entity)
        # rows that yield no new entity still get reported
        for row in unmatched_rows:
            object_id, upn = row_identity(row)
            entity = addable.pop(object_id, None)
            if entity is None:
                changes.append(_not_found(row, object_id, upn))
                continue
            updated.append(entity)
            changes.append(ChangeRecord(key=entity.objectId, type=ADDED, after=entity.to_dict()))

    logger.debug(
        "Merge finished: %d rows classified, %d entities in output", len(changes), len(updated)
    )
    return MergeResult(updated=updated, changes=changes)
