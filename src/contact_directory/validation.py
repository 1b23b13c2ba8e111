from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional

from pydantic import ValidationError

from .models import CanonicalExport

logger = logging.getLogger(__name__)


@dataclass
class ValidationOutcome:
    success: bool
    errors: List[str] = field(default_factory=list)
    value: Optional[CanonicalExport] = None

    def __bool__(self) -> bool:
        return self.success


def _duplicates(values: Iterable[Any]) -> List[str]:
    counts = Counter(str(value) for value in values if value)
    return [value for value, count in counts.items() if count > 1]


def _raw_entities(data: Any) -> List[Any]:
    if not isinstance(data, dict):
        return []
    entities = data.get("ContactEntities")
    if not isinstance(entities, list):
        return []
    return [entity for entity in entities if isinstance(entity, dict)]


def _duplicate_id_error(ids: Iterable[Any]) -> Optional[str]:
    duplicates = _duplicates(ids)
    if duplicates:
        return f"Duplicate internal IDs found: {', '.join(duplicates)}"
    return None


def _duplicate_object_id_error(object_ids: Iterable[Any]) -> Optional[str]:
    duplicates = _duplicates(object_ids)
    if duplicates:
        return f"Duplicate objectIds found: {', '.join(duplicates)}"
    return None


def format_validation_errors(exc: ValidationError) -> List[str]:
    messages: List[str] = []
    for error in exc.errors():
        path = ".".join(str(part) for part in error.get("loc", ())) or "(root)"
        messages.append(f"{path} - {error.get('msg', 'Unknown error detail')}")
    return messages


def validate_canonical(data: Any) -> ValidationOutcome:
    """
    Validate a canonical export payload and its collection invariants.

    Categories are checked in a fixed order and the first failing category is
    reported: duplicate ``id`` values, duplicate ``objectId`` values, structural
    errors (``"<dot.path> - <message>"``), then external entities lacking an
    ``objectId``.
    """
    if isinstance(data, CanonicalExport):
        data = data.to_dict()

    raw_entities = _raw_entities(data)
    error = _duplicate_id_error(entity.get("id") for entity in raw_entities)
    if error:
        return ValidationOutcome(success=False, errors=[error])
    error = _duplicate_object_id_error(entity.get("objectId") for entity in raw_entities)
    if error:
        return ValidationOutcome(success=False, errors=[error])

    try:
        parsed = CanonicalExport.model_validate(data)
    except ValidationError as exc:
        return ValidationOutcome(success=False, errors=format_validation_errors(exc))

    # internal objectIds may have been generated during parsing
    error = _duplicate_object_id_error(entity.objectId for entity in parsed.ContactEntities)
    if error:
        return ValidationOutcome(success=False, errors=[error])

    missing = [
        entity.id
        for entity in parsed.ContactEntities
        if entity.kind == "external" and not (entity.objectId or "").strip()
    ]
    if missing:
        return ValidationOutcome(
            success=False,
            errors=[f"External entities missing objectId: {', '.join(missing)}"],
        )

    logger.debug("Validated %d contact entities", len(parsed.ContactEntities))
    return ValidationOutcome(success=True, value=parsed)
