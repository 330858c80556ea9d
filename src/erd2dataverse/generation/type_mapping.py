"""Mapping from diagram field types to platform attribute kinds."""

import re
from typing import Dict, Iterable, Optional

from erd2dataverse.ir.diagram import FieldDef, SemanticType
from erd2dataverse.ir.plan import AttributeKind

from .naming import pascal_case

# Exhaustive: every semantic type has exactly one kind
SEMANTIC_KIND_MAP: Dict[SemanticType, AttributeKind] = {
    SemanticType.STRING: AttributeKind.STRING,
    SemanticType.TEXT: AttributeKind.MEMO,
    SemanticType.INTEGER: AttributeKind.INTEGER,
    SemanticType.DECIMAL: AttributeKind.DECIMAL,
    SemanticType.FLOAT: AttributeKind.FLOAT,
    SemanticType.BOOLEAN: AttributeKind.BOOLEAN,
    SemanticType.DATETIME: AttributeKind.DATETIME,
    SemanticType.DATE: AttributeKind.DATE_ONLY,
    SemanticType.MONEY: AttributeKind.MONEY,
    SemanticType.GUID: AttributeKind.STRING,
    SemanticType.EMAIL: AttributeKind.EMAIL,
    SemanticType.PHONE: AttributeKind.PHONE,
    SemanticType.URL: AttributeKind.URL,
    SemanticType.AUTONUMBER: AttributeKind.AUTONUMBER,
    SemanticType.FILE: AttributeKind.FILE,
    SemanticType.IMAGE: AttributeKind.IMAGE,
    SemanticType.UNKNOWN: AttributeKind.STRING,
}

_missing = set(SemanticType) - set(SEMANTIC_KIND_MAP)
if _missing:
    raise RuntimeError(f"semantic types without an attribute kind: {sorted(t.value for t in _missing)}")

DEFAULT_KIND = AttributeKind.STRING

# Name patterns that refine plain strings, decimals and datetimes
_EMAIL = re.compile(r"email|e_mail", re.IGNORECASE)
_PHONE = re.compile(r"phone|telephone|mobile|fax", re.IGNORECASE)
_URL = re.compile(r"url|website|homepage|uri$", re.IGNORECASE)
_TICKER = re.compile(r"ticker", re.IGNORECASE)
_MEMO = re.compile(r"description|notes|comments|text_area|textarea", re.IGNORECASE)
_AUTONUMBER = re.compile(r"autonumber|auto_number|sequence", re.IGNORECASE)
_MONEY = re.compile(r"currency|price|amount|cost|fee|salary|wage|money|total", re.IGNORECASE)
_DATE_ONLY = re.compile(r"date_only|dateonly|birth_?date|dob|start_?date|end_?date|due_?date", re.IGNORECASE)


def map_type(semantic_type: SemanticType) -> AttributeKind:
    """Total mapping from semantic type to attribute kind."""
    return SEMANTIC_KIND_MAP.get(semantic_type, DEFAULT_KIND)


def match_choice_set(type_name: str, choice_set_names: Iterable[str]) -> Optional[str]:
    """Return the choice set a raw field type refers to, comparing normalized names."""
    wanted = pascal_case(type_name).lower()
    if not wanted:
        return None
    for name in choice_set_names:
        if pascal_case(name).lower() == wanted:
            return name
    return None


def resolve_kind(field: FieldDef, choice_set_names: Iterable[str] = ()) -> AttributeKind:
    """
    Pick the attribute kind for a field.

    The declared type decides first; a type naming a merged choice set yields a
    choice column. Plain strings, decimals and datetimes are then refined by
    field name (``email`` -> email text, ``price`` -> currency, ``birth_date``
    -> date only).
    """
    if field.semantic_type == SemanticType.UNKNOWN and match_choice_set(field.type_name, choice_set_names):
        return AttributeKind.CHOICE

    kind = map_type(field.semantic_type)
    name = field.name
    if kind == AttributeKind.STRING and field.semantic_type != SemanticType.GUID:
        if _EMAIL.search(name):
            return AttributeKind.EMAIL
        if _PHONE.search(name):
            return AttributeKind.PHONE
        if _URL.search(name):
            return AttributeKind.URL
        if _TICKER.search(name):
            return AttributeKind.TICKER
        if _MEMO.search(name):
            return AttributeKind.MEMO
        if _AUTONUMBER.search(name):
            return AttributeKind.AUTONUMBER
    elif kind == AttributeKind.DECIMAL and _MONEY.search(name):
        return AttributeKind.MONEY
    elif kind == AttributeKind.DATETIME and _DATE_ONLY.search(name):
        return AttributeKind.DATE_ONLY
    return kind
