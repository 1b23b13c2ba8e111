from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .models import CanonicalExport, ContactBase
from .normalization import canonical_json, field_value


@dataclass
class DiffResult:
    added: List[ContactBase] = field(default_factory=list)
    removed: List[ContactBase] = field(default_factory=list)
    changed: Dict[str, Dict[str, ContactBase]] = field(default_factory=dict)

    @property
    def changed_count(self) -> int:
        return len(self.changed)

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.removed or self.changed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "added": [entity.to_dict() for entity in self.added],
            "removed": [entity.to_dict() for entity in self.removed],
            "changed": {
                entity_id: {
                    "before": pair["before"].to_dict(),
                    "after": pair["after"].to_dict(),
                }
                for entity_id, pair in self.changed.items()
            },
            "changedCount": self.changed_count,
        }


def _record_dict(record: Any) -> Dict[str, Any]:
    if record is None:
        return {}
    to_dict = getattr(record, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if isinstance(record, Mapping):
        return dict(record)
    raise TypeError(f"Unsupported record type for diff: {type(record)!r}")


def diff_canonical(prev: Optional[CanonicalExport], next_export: CanonicalExport) -> DiffResult:
    if prev is None:
        return DiffResult(added=list(next_export.ContactEntities))

    prev_map: "OrderedDict[str, ContactBase]" = OrderedDict(
        (entity.id, entity) for entity in prev.ContactEntities
    )
    next_map: "OrderedDict[str, ContactBase]" = OrderedDict(
        (entity.id, entity) for entity in next_export.ContactEntities
    )

    result = DiffResult()
    for entity_id, after in next_map.items():
        before = prev_map.get(entity_id)
        if before is None:
            result.added.append(after)
        elif canonical_json(before.to_dict()) != canonical_json(after.to_dict()):
            result.changed[entity_id] = {"before": before, "after": after}

    for entity_id, before in prev_map.items():
        if entity_id not in next_map:
            result.removed.append(before)

    return result


def _role_index(roles: Any) -> Dict[Tuple[str, str], List[Tuple[Any, Any]]]:
    index: Dict[Tuple[str, str], List[Tuple[Any, Any]]] = {}
    for role in roles or []:
        key = (
            str(field_value(role, "brand") or "").lower(),
            str(field_value(role, "office") or "").upper(),
        )
        index.setdefault(key, []).append(
            (field_value(role, "title"), field_value(role, "priority"))
        )
    return {key: sorted(values, key=repr) for key, values in index.items()}


def roles_differ(before: Any, after: Any) -> bool:
    """Compare role collections as sets keyed by ``(brand, office)``."""
    return _role_index(before) != _role_index(after)


def diff(before: Any, after: Any) -> Dict[str, Dict[str, Any]]:
    """
    Field-level diff between two records (models or mappings).

    Returns ``{field: {"before": ..., "after": ...}}`` for every differing key
    in the union of both records. ``roles`` ignores ordering.
    """
    left = _record_dict(before)
    right = _record_dict(after)
    changes: Dict[str, Dict[str, Any]] = {}
    for key in list(left) + [key for key in right if key not in left]:
        old_value = left.get(key)
        new_value = right.get(key)
        if key == "roles":
            differs = roles_differ(old_value, new_value)
        else:
            differs = old_value != new_value
        if differs:
            changes[key] = {"before": old_value, "after": new_value}
    return changes
