from __future__ import annotations

import hashlib
import json
import re
import unicodedata
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

import pandas as pd

OBJECT_ID = "object id"
DISPLAY_NAME = "display name"
MOBILE_PHONE = "mobile phone"
UPN = "user principal name"
TITLE = "title"
DEPARTMENT = "department"
OFFICE = "office"

RAW_ROW_FIELDS = (OBJECT_ID, DISPLAY_NAME, MOBILE_PHONE, UPN, TITLE, DEPARTMENT, OFFICE)

# normalized header -> canonical RawRow key
HEADER_ALIASES = {
    "object id": OBJECT_ID,
    "objectid": OBJECT_ID,
    "object_id": OBJECT_ID,
    "display name": DISPLAY_NAME,
    "displayname": DISPLAY_NAME,
    "mobile phone": MOBILE_PHONE,
    "mobilephone": MOBILE_PHONE,
    "mobile": MOBILE_PHONE,
    "user principal name": UPN,
    "userprincipalname": UPN,
    "upn": UPN,
    "title": TITLE,
    "job title": TITLE,
    "department": DEPARTMENT,
    "office": OFFICE,
}

PHONE_TOKEN_SPLIT = re.compile(r"[,/;]")
MISSING_SORT_SENTINEL = "\uffff"


@dataclass
class MergeSettings:
    default_brand: str = "tsa"
    default_office: str = "PLY"
    source: str = "Office365"

    @classmethod
    def from_args(
        cls,
        default_brand: Optional[str],
        default_office: Optional[str],
        source: Optional[str] = None,
    ) -> "MergeSettings":
        return cls(
            default_brand=(default_brand or "tsa").strip().lower(),
            default_office=(default_office or "PLY").strip().upper(),
            source=source or "Office365",
        )


@dataclass(frozen=True)
class OfficeTag:
    """Parsed ``Office`` column; ``brand`` is empty for a bare fallback token."""

    brand: str
    office: str

    @property
    def is_full(self) -> bool:
        return bool(self.brand and self.office)


def slugify(value: Optional[str]) -> str:
    """Lowercase ASCII slug: ``"Zoë O'Neil"`` becomes ``"zoe-oneil"``."""
    text = unicodedata.normalize("NFKD", str(value or ""))
    text = text.encode("ascii", "ignore").decode("ascii")
    text = re.sub(r"[^a-z0-9\s-]", "", text.lower())
    return re.sub(r"[-\s]+", "-", text).strip("-")


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def fallback_id(object_id: str) -> str:
    return sha256_hex(object_id)[:16]


def manual_object_id(seed: Optional[str]) -> str:
    clean = slugify(seed) or "unknown"
    return f"manual-{clean}-{sha256_hex(clean)[:8]}"


def canonical_json(payload: Any) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def normalize_header_key(key: Any) -> str:
    text = "" if key is None else str(key)
    text = text.replace("\ufeff", "").replace("\u00a0", " ")
    return re.sub(r"\s+", " ", text.strip()).lower()


def canonical_header(key: Any) -> Optional[str]:
    return HEADER_ALIASES.get(normalize_header_key(key))


def _coerce_to_string(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, (list, dict, tuple)) and pd.isna(value):
        return ""
    return str(value or "").strip()


def safe_get(row: Any, key: str) -> str:
    try:
        return _coerce_to_string(row.get(key, ""))
    except (AttributeError, KeyError, TypeError):
        try:
            if hasattr(row, "__contains__") and key in row:
                return _coerce_to_string(row[key])
            return ""
        except (KeyError, TypeError, AttributeError):
            return ""


def optional_value(row: Any, key: str) -> Optional[str]:
    return safe_get(row, key) or None


def first_mobile_token(raw: Optional[str]) -> str:
    value = (raw or "").strip()
    if not value:
        return ""
    return PHONE_TOKEN_SPLIT.split(value)[0].strip()


def parse_office_tag(raw: Optional[str]) -> Optional[OfficeTag]:
    value = (raw or "").strip()
    if not value:
        return None
    if ":" not in value:
        return OfficeTag(brand="", office=value.upper())
    brand, office = value.split(":", 1)
    brand = brand.strip().lower()
    office = office.strip().upper()
    if not brand or not office:
        # "tsa:" or ":ply" cannot name a role; treat the surviving token as a bare tag
        return OfficeTag(brand="", office=office or brand.upper())
    return OfficeTag(brand=brand, office=office)


def row_identity(row: Dict[str, Any]) -> Tuple[str, str]:
    return safe_get(row, OBJECT_ID), safe_get(row, UPN)


def field_value(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


def role_sort_key(role: Any) -> Tuple[str, str, int, str]:
    return (
        str(field_value(role, "brand") or ""),
        str(field_value(role, "office") or ""),
        int(field_value(role, "priority") or 0),
        str(field_value(role, "title") or ""),
    )


def contact_point_sort_key(point: Any) -> Tuple[str, str]:
    return (str(field_value(point, "type") or ""), str(field_value(point, "value") or ""))
