"""Web API metadata payload builders."""

import zlib
from typing import Any, Dict, List, Optional

from erd2dataverse.ir.plan import AttributeKind

ODATA = "Microsoft.Dynamics.CRM"

# Referential, non-owning: deleting the parent clears the lookup on children
REFERENTIAL_CASCADE: Dict[str, str] = {
    "Assign": "NoCascade",
    "Delete": "RemoveLink",
    "Merge": "NoCascade",
    "Reparent": "NoCascade",
    "Share": "NoCascade",
    "Unshare": "NoCascade",
}

PRIMARY_NAME_MAX_LENGTH = 100
AUTONUMBER_FORMAT = "AUTO-{SEQNUM:1000}"


def label(text: str, language_code: int = 1033) -> Dict[str, Any]:
    return {"LocalizedLabels": [{"@odata.type": f"{ODATA}.LocalizedLabel", "Label": text, "LanguageCode": language_code}]}


def required_level(required: bool) -> Dict[str, Any]:
    return {
        "Value": "ApplicationRequired" if required else "None",
        "CanBeChanged": True,
        "ManagedPropertyLogicalName": "canmodifyrequirementlevelsettings",
    }


def option_value_prefix(prefix: str) -> int:
    """Stable choice-value prefix in the platform's 10000-99999 range."""
    return 10000 + zlib.crc32(prefix.encode("utf-8")) % 90000


def publisher_payload(unique_name: str, display_name: str, prefix: str, description: str = "") -> Dict[str, Any]:
    return {
        "uniquename": unique_name,
        "friendlyname": display_name,
        "customizationprefix": prefix,
        "customizationoptionvalueprefix": option_value_prefix(prefix),
        "description": description,
    }


def solution_payload(unique_name: str, display_name: str, version: str = "1.0.0.0") -> Dict[str, Any]:
    return {
        "uniquename": unique_name,
        "friendlyname": display_name,
        "version": version,
    }


def primary_name_payload(schema_name: str, display_name: str, language_code: int = 1033) -> Dict[str, Any]:
    return {
        "@odata.type": f"{ODATA}.StringAttributeMetadata",
        "AttributeType": "String",
        "AttributeTypeName": {"Value": "StringType"},
        "SchemaName": schema_name,
        "DisplayName": label(display_name, language_code),
        "Description": label("Primary name column", language_code),
        "RequiredLevel": required_level(True),
        "MaxLength": PRIMARY_NAME_MAX_LENGTH,
        "FormatName": {"Value": "Text"},
        "IsPrimaryName": True,
    }


def entity_payload(
    schema_name: str,
    display_name: str,
    description: str,
    primary_name: Dict[str, Any],
    language_code: int = 1033,
) -> Dict[str, Any]:
    """Table definition carrying only its primary name column; other columns follow."""
    return {
        "@odata.type": f"{ODATA}.EntityMetadata",
        "SchemaName": schema_name,
        "DisplayName": label(display_name, language_code),
        "DisplayCollectionName": label(f"{display_name}s", language_code),
        "Description": label(description, language_code),
        "OwnershipType": "UserOwned",
        "IsActivity": False,
        "HasNotes": False,
        "HasActivities": False,
        "Attributes": [primary_name],
    }


def _string(fmt: str, max_length: int) -> Dict[str, Any]:
    return {
        "@odata.type": f"{ODATA}.StringAttributeMetadata",
        "AttributeType": "String",
        "AttributeTypeName": {"Value": "StringType"},
        "FormatName": {"Value": fmt},
        "MaxLength": max_length,
    }


def _type_fragment(kind: AttributeKind, language_code: int, choice_set: Optional[str]) -> Dict[str, Any]:
    if kind == AttributeKind.STRING:
        return _string("Text", 100)
    if kind == AttributeKind.EMAIL:
        return _string("Email", 100)
    if kind == AttributeKind.PHONE:
        return _string("Phone", 50)
    if kind == AttributeKind.URL:
        return _string("Url", 200)
    if kind == AttributeKind.TICKER:
        return _string("TickerSymbol", 10)
    if kind == AttributeKind.AUTONUMBER:
        fragment = _string("Text", 100)
        fragment["AutoNumberFormat"] = AUTONUMBER_FORMAT
        return fragment
    if kind == AttributeKind.MEMO:
        return {
            "@odata.type": f"{ODATA}.MemoAttributeMetadata",
            "AttributeType": "Memo",
            "AttributeTypeName": {"Value": "MemoType"},
            "Format": "TextArea",
            "MaxLength": 2000,
        }
    if kind == AttributeKind.INTEGER:
        return {
            "@odata.type": f"{ODATA}.IntegerAttributeMetadata",
            "AttributeType": "Integer",
            "AttributeTypeName": {"Value": "IntegerType"},
            "Format": "None",
            "MinValue": -2147483648,
            "MaxValue": 2147483647,
        }
    if kind == AttributeKind.DECIMAL:
        return {
            "@odata.type": f"{ODATA}.DecimalAttributeMetadata",
            "AttributeType": "Decimal",
            "AttributeTypeName": {"Value": "DecimalType"},
            "MinValue": -100000000000,
            "MaxValue": 100000000000,
            "Precision": 2,
        }
    if kind == AttributeKind.FLOAT:
        return {
            "@odata.type": f"{ODATA}.DoubleAttributeMetadata",
            "AttributeType": "Double",
            "AttributeTypeName": {"Value": "DoubleType"},
            "Precision": 5,
        }
    if kind == AttributeKind.MONEY:
        return {
            "@odata.type": f"{ODATA}.MoneyAttributeMetadata",
            "AttributeType": "Money",
            "AttributeTypeName": {"Value": "MoneyType"},
            "MinValue": -922337203685477,
            "MaxValue": 922337203685477,
            "Precision": 4,
            "PrecisionSource": 2,
        }
    if kind == AttributeKind.BOOLEAN:
        return {
            "@odata.type": f"{ODATA}.BooleanAttributeMetadata",
            "AttributeType": "Boolean",
            "AttributeTypeName": {"Value": "BooleanType"},
            "DefaultValue": False,
            "OptionSet": {
                "TrueOption": {"Value": 1, "Label": label("Yes", language_code)},
                "FalseOption": {"Value": 0, "Label": label("No", language_code)},
            },
        }
    if kind in (AttributeKind.DATETIME, AttributeKind.DATE_ONLY):
        return {
            "@odata.type": f"{ODATA}.DateTimeAttributeMetadata",
            "AttributeType": "DateTime",
            "AttributeTypeName": {"Value": "DateTimeType"},
            "Format": "DateOnly" if kind == AttributeKind.DATE_ONLY else "DateAndTime",
            "DateTimeBehavior": {"Value": "DateOnly" if kind == AttributeKind.DATE_ONLY else "UserLocal"},
        }
    if kind == AttributeKind.FILE:
        return {
            "@odata.type": f"{ODATA}.FileAttributeMetadata",
            "AttributeType": "Virtual",
            "AttributeTypeName": {"Value": "FileType"},
            "MaxSizeInKB": 131072,
        }
    if kind == AttributeKind.IMAGE:
        return {
            "@odata.type": f"{ODATA}.ImageAttributeMetadata",
            "AttributeType": "Virtual",
            "AttributeTypeName": {"Value": "ImageType"},
            "MaxSizeInKB": 30720,
        }
    if kind == AttributeKind.CHOICE:
        if not choice_set:
            raise ValueError("choice columns need a global choice set name")
        return {
            "@odata.type": f"{ODATA}.PicklistAttributeMetadata",
            "AttributeType": "Picklist",
            "AttributeTypeName": {"Value": "PicklistType"},
            "GlobalOptionSet@odata.bind": f"/GlobalOptionSetDefinitions(Name='{choice_set}')",
        }
    raise ValueError(f"no payload for attribute kind {kind}")


def attribute_payload(
    kind: AttributeKind,
    schema_name: str,
    display_name: str,
    description: Optional[str] = None,
    required: bool = False,
    language_code: int = 1033,
    choice_set: Optional[str] = None,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "SchemaName": schema_name,
        "DisplayName": label(display_name, language_code),
        "Description": label(description or f"{display_name} field", language_code),
        "RequiredLevel": required_level(required),
    }
    payload.update(_type_fragment(kind, language_code, choice_set))
    return payload


def choice_set_payload(
    name: str,
    display_name: str,
    description: Optional[str],
    options: List[Dict[str, Any]],
    language_code: int = 1033,
) -> Dict[str, Any]:
    """Global option set; ``options`` are ``{"value", "label", "description"}`` dicts."""
    rendered = []
    for option in options:
        entry = {"Value": option["value"], "Label": label(option["label"], language_code)}
        if option.get("description"):
            entry["Description"] = label(option["description"], language_code)
        rendered.append(entry)
    return {
        "@odata.type": f"{ODATA}.OptionSetMetadata",
        "Name": name,
        "DisplayName": label(display_name, language_code),
        "Description": label(description or display_name, language_code),
        "IsGlobal": True,
        "OptionSetType": "Picklist",
        "Options": rendered,
    }


def relationship_payload(
    schema_name: str,
    referenced_entity: str,
    referencing_entity: str,
    lookup_schema_name: str,
    lookup_display_name: str,
    language_code: int = 1033,
) -> Dict[str, Any]:
    """One-to-many referential relationship; the platform creates the lookup column with it."""
    return {
        "@odata.type": f"{ODATA}.OneToManyRelationshipMetadata",
        "SchemaName": schema_name,
        "ReferencedEntity": referenced_entity,
        "ReferencedAttribute": f"{referenced_entity}id",
        "ReferencingEntity": referencing_entity,
        "RelationshipType": "OneToManyRelationship",
        "SecurityTypes": "Append",
        "IsHierarchical": False,
        "AssociatedMenuConfiguration": {
            "Behavior": "UseCollectionName",
            "Group": "Details",
            "Label": label(lookup_display_name, language_code),
            "Order": 10000,
        },
        "CascadeConfiguration": dict(REFERENTIAL_CASCADE),
        "Lookup": {
            "@odata.type": f"{ODATA}.LookupAttributeMetadata",
            "AttributeType": "Lookup",
            "AttributeTypeName": {"Value": "LookupType"},
            "SchemaName": lookup_schema_name,
            "DisplayName": label(lookup_display_name, language_code),
            "Description": label(f"Lookup to {lookup_display_name}", language_code),
            "RequiredLevel": required_level(False),
        },
    }


def entity_key_payload(schema_name: str, display_name: str, key_attributes: List[str], language_code: int = 1033) -> Dict[str, Any]:
    return {
        "SchemaName": schema_name,
        "DisplayName": label(display_name, language_code),
        "KeyAttributes": list(key_attributes),
    }
