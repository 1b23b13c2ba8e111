from __future__ import annotations

import hashlib
import logging
from typing import Any, Dict, Mapping, Optional, Sequence

from .diagnostics import Diagnostics, ensure_diagnostics
from .normalization import (
    MISSING_SORT_SENTINEL,
    canonical_json,
    contact_point_sort_key,
    field_value,
    role_sort_key,
)

logger = logging.getLogger(__name__)

HASHED_CONTACT_FIELDS = ("kind", "id", "displayName", "objectId", "upn", "department", "source")


def _as_dict(item: Any) -> Any:
    to_dict = getattr(item, "to_dict", None)
    return to_dict() if callable(to_dict) else item


def _pruned(item: Any) -> Any:
    payload = _as_dict(item)
    if isinstance(payload, Mapping):
        return {key: value for key, value in payload.items() if value is not None}
    return payload


def contact_projection(contact: Any) -> Dict[str, Any]:
    """
    Pruned, order-normalized view of a contact used for hashing.

    Absent and null fields project identically, so only value changes move the hash.
    """
    projection = {name: field_value(contact, name) for name in HASHED_CONTACT_FIELDS}
    points = sorted(field_value(contact, "contactPoints") or [], key=contact_point_sort_key)
    roles = sorted(field_value(contact, "roles") or [], key=role_sort_key)
    projection["contactPoints"] = [_pruned(point) for point in points]
    projection["roles"] = [_pruned(role) for role in roles]
    return projection


def _contact_sort_key(contact: Any) -> tuple:
    object_id = field_value(contact, "objectId")
    return (
        str(object_id) if object_id else MISSING_SORT_SENTINEL,
        str(field_value(contact, "id") or ""),
    )


def compute_hash(
    contacts: Sequence[Any],
    locations: Sequence[Any],
    diagnostics: Optional[Diagnostics] = None,
) -> str:
    """
    SHA-256 over every contact projection followed by every location.

    Contacts are ordered by ``objectId`` and locations by ``id``; a single item
    that cannot be serialized is reported and left out of the digest.
    """
    diagnostics = ensure_diagnostics(diagnostics, logger)
    digest = hashlib.sha256()

    for contact in sorted(contacts, key=_contact_sort_key):
        try:
            digest.update(canonical_json(contact_projection(contact)).encode("utf-8"))
        except (AttributeError, TypeError, ValueError) as exc:
            diagnostics.warning(
                "Skipping contact %s in hash: %s",
                field_value(contact, "id", "<unknown>"),
                exc,
                item="contact",
            )

    with_ids = [location for location in locations if field_value(location, "id")]
    for location in sorted(with_ids, key=lambda item: str(field_value(item, "id"))):
        try:
            digest.update(canonical_json(_as_dict(location)).encode("utf-8"))
        except (AttributeError, TypeError, ValueError) as exc:
            diagnostics.warning(
                "Skipping location %s in hash: %s",
                field_value(location, "id", "<unknown>"),
                exc,
                item="location",
            )

    return digest.hexdigest()
