"""Tests for technical naming and field type mapping."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from erd2dataverse.errors import GenerationError
from erd2dataverse.generation.naming import (
    NamingConfig,
    default_lookup_name,
    humanize,
    pascal_case,
    relationship_schema_name,
    technical_name,
)
from erd2dataverse.generation.type_mapping import SEMANTIC_KIND_MAP, map_type, match_choice_set, resolve_kind
from erd2dataverse.ir.diagram import FieldDef, SemanticType, resolve_semantic_type
from erd2dataverse.ir.plan import AttributeKind


@pytest.mark.parametrize(
    "text,expected",
    [
        ("customer", "Customer"),
        ("order_item", "OrderItem"),
        ("order-item", "OrderItem"),
        ("Order Item", "OrderItem"),
        ("orderItem", "OrderItem"),
        ("e-mail (work)", "EMailWork"),
    ],
)
def test_pascal_case(text, expected):
    """Test PascalCase conversion."""
    assert pascal_case(text) == expected


@pytest.mark.parametrize("text", ["customer order", "ORDER_ITEM", "already_Pascal", "x1 y2", "Ünïcode name"])
def test_pascal_case_is_idempotent(text):
    """Test that PascalCase conversion is stable when applied twice."""
    once = pascal_case(text)
    assert pascal_case(once) == once


def test_technical_name():
    """Test prefixed technical names."""
    assert technical_name("mmd", "order item") == "mmd_OrderItem"
    with pytest.raises(GenerationError) as exc:
        technical_name("mmd", "%%")
    assert exc.value.code == "EMPTY_NAME"


def test_humanize():
    """Test display names derived from identifiers."""
    assert humanize("order_item") == "Order Item"
    assert humanize("orderItem") == "Order Item"
    assert humanize("CUSTOMER") == "CUSTOMER"


def test_relationship_and_lookup_names():
    """Test relationship schema names and lookup column names."""
    assert relationship_schema_name("mmd", "Customer", "Order") == "mmd_Customer_Order"
    assert relationship_schema_name("mmd", "Customer", "Order", "bills to") == "mmd_Customer_Order_BillsTo"
    assert default_lookup_name("mmd", "Customer", "Order") == "mmd_CustomerId"
    assert default_lookup_name("mmd", "Employee", "Employee") == "mmd_ParentEmployeeId"


def test_naming_config_prefix_rules():
    """Test publisher prefix validation."""
    assert NamingConfig(publisher_prefix="Abc").publisher_prefix == "abc"
    for bad in ["a", "1abc", "toolongprefix", "mscrmx", "ab_c"]:
        with pytest.raises(PydanticValidationError):
            NamingConfig(publisher_prefix=bad)


def test_naming_config_unique_names():
    """Test publisher and solution unique names."""
    naming = NamingConfig()
    assert naming.resolved_publisher_unique_name == "mmd_MermaidPublisher"
    assert naming.resolved_solution_unique_name == "mmd_MermaidSolution"
    explicit = NamingConfig(solution_unique_name="custom")
    assert explicit.resolved_solution_unique_name == "custom"


def test_every_semantic_type_has_a_kind():
    """Test that every semantic type maps to a column kind."""
    assert set(SEMANTIC_KIND_MAP) == set(SemanticType)
    for semantic_type in SemanticType:
        assert isinstance(map_type(semantic_type), AttributeKind)


def test_unknown_type_defaults_to_string():
    """Test the fallback for unknown field types."""
    assert resolve_semantic_type("geography") == SemanticType.UNKNOWN
    assert map_type(SemanticType.UNKNOWN) == AttributeKind.STRING
    assert resolve_kind(FieldDef(name="location", type_name="geography")) == AttributeKind.STRING


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("VARCHAR(50)", SemanticType.STRING),
        ("bigint", SemanticType.INTEGER),
        ("decimal(10,2)", SemanticType.DECIMAL),
        ("bit", SemanticType.BOOLEAN),
        ("timestamp", SemanticType.DATETIME),
        ("uuid", SemanticType.GUID),
    ],
)
def test_resolve_semantic_type(raw, expected):
    """Test semantic type resolution from declared types."""
    assert resolve_semantic_type(raw) == expected


@pytest.mark.parametrize(
    "name,type_name,expected",
    [
        ("email", "string", AttributeKind.EMAIL),
        ("mobile_phone", "string", AttributeKind.PHONE),
        ("website", "string", AttributeKind.URL),
        ("ticker_symbol", "string", AttributeKind.TICKER),
        ("description", "string", AttributeKind.MEMO),
        ("invoice_sequence", "string", AttributeKind.AUTONUMBER),
        ("unit_price", "decimal", AttributeKind.MONEY),
        ("weight", "decimal", AttributeKind.DECIMAL),
        ("birth_date", "datetime", AttributeKind.DATE_ONLY),
        ("shipped_at", "datetime", AttributeKind.DATETIME),
        ("external_id", "guid", AttributeKind.STRING),
        ("body", "text", AttributeKind.MEMO),
    ],
)
def test_resolve_kind_by_name(name, type_name, expected):
    """Test column kinds inferred from field names."""
    assert resolve_kind(FieldDef(name=name, type_name=type_name)) == expected


def test_choice_set_type_becomes_choice():
    """Test that a field typed by a choice set becomes a choice column."""
    field = FieldDef(name="status", type_name="order_status")
    assert match_choice_set("OrderStatus", ["order_status"]) == "order_status"
    assert resolve_kind(field, ["order_status"]) == AttributeKind.CHOICE
    assert resolve_kind(field, []) == AttributeKind.STRING
