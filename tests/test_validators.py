"""Tests for graph and plan validators."""

from erd2dataverse.ir.diagram import DiagramGraph, EntityDef, FieldDef, RelationshipDef
from erd2dataverse.ir.validators import ValidationPolicy, validate_graph, validate_plan
from erd2dataverse.generation.generator import generate_plan
from erd2dataverse.parsing import parse_diagram


def _graph(text: str) -> DiagramGraph:
    graph, _ = parse_diagram(text)
    return graph


def _codes(report, severity=None):
    return [f.code for f in report.findings if severity is None or f.severity == severity]


def test_clean_graph_passes():
    """Test that a valid graph has no findings."""
    report = validate_graph(
        _graph(
            "erDiagram\n"
            "  CUSTOMER {\n    string customer_id PK\n  }\n"
            "  ORDER {\n    string order_id PK\n    string customer_id FK\n  }\n"
            "  CUSTOMER ||--o{ ORDER : places\n"
        )
    )
    assert report.passed
    assert report.findings == []


def test_missing_pk_is_warning_under_synthesis_policy():
    """Test that a missing key is a warning when keys are synthesized."""
    graph = _graph("erDiagram\n  NOTE {\n    string body\n  }\n")
    report = validate_graph(graph)
    assert _codes(report) == ["MISSING_PK", "ORPHAN_ENTITY"]
    assert report.passed

    strict = validate_graph(graph, ValidationPolicy(synthesize_primary_keys=False))
    assert "MISSING_PK" in _codes(strict, "error")
    assert not strict.passed


def test_exactly_one_missing_pk_finding_per_entity():
    """Test that each entity without a key is reported once."""
    graph = _graph("erDiagram\n  A {\n    string x\n  }\n  B {\n    string y\n  }\n  A ||--o{ B : has\n")
    report = validate_graph(graph)
    missing = [f.location for f in report.findings if f.code == "MISSING_PK"]
    assert missing == ["A", "B"]


def test_multiple_pk_is_error():
    """Test that more than one primary key is an error."""
    report = validate_graph(_graph("erDiagram\n  A {\n    string x PK\n    string y PK\n  }\n"))
    assert "MULTIPLE_PK" in _codes(report, "error")


def test_self_reference_is_warning():
    """Test the warning for a self-referencing relationship."""
    report = validate_graph(
        _graph("erDiagram\n  EMPLOYEE {\n    string id PK\n    string manager_id FK\n  }\n  EMPLOYEE ||--o{ EMPLOYEE : manages\n")
    )
    assert _codes(report) == ["SELF_REFERENCE"]
    assert report.passed


def test_naming_collision_between_entities():
    """Test entities whose technical names collide."""
    graph = DiagramGraph(
        entities=[
            EntityDef(name="order_item", display_name="Order Item", fields=[FieldDef(name="id", type_name="string", constraints=["PK"])]),
            EntityDef(name="OrderItem", display_name="Order Item", fields=[FieldDef(name="id", type_name="string", constraints=["PK"])]),
        ],
        relationships=[RelationshipDef(source="order_item", target="OrderItem", label="x")],
    )
    report = validate_graph(graph)
    assert _codes(report, "error") == ["NAME_COLLISION"]


def test_naming_collision_between_fields():
    """Test fields whose technical names collide."""
    report = validate_graph(
        _graph("erDiagram\n  A {\n    string id PK\n    string first_name\n    string FirstName\n  }\n")
    )
    assert "NAME_COLLISION" in _codes(report, "error")


def test_unknown_relationship_endpoint():
    """Test a relationship pointing at an undeclared entity."""
    graph = DiagramGraph(
        entities=[EntityDef(name="A", display_name="A", fields=[FieldDef(name="id", type_name="string", constraints=["PK"])])],
        relationships=[RelationshipDef(source="A", target="Ghost", label="haunts")],
    )
    report = validate_graph(graph)
    assert _codes(report, "error") == ["UNKNOWN_ENTITY"]


def test_system_column_clash_and_primary_name_clash():
    """Test fields clashing with system columns or the primary name."""
    report = validate_graph(
        _graph("erDiagram\n  A {\n    string id PK\n    string name\n    int statecode\n  }\n")
    )
    assert "SYSTEM_COLUMN_CLASH" in _codes(report, "error")
    assert "PRIMARY_NAME_CLASH" in _codes(report, "warning")


def test_reserved_empty_and_unmatched_fk_warnings():
    """Test warnings for reserved words, empty entities and unmatched foreign keys."""
    report = validate_graph(
        _graph(
            "erDiagram\n"
            "  User {\n    string id PK\n    string warehouse_id FK\n  }\n"
            "  Audit\n"
            "  User ||--o{ Audit : writes\n"
        )
    )
    warnings = _codes(report, "warning")
    assert "RESERVED_ENTITY_NAME" in warnings
    assert "EMPTY_ENTITY" in warnings
    assert "UNMATCHED_FK" in warnings
    assert report.passed


def test_downgrade_policy():
    """Test downgrading selected errors to warnings."""
    graph = _graph("erDiagram\n  A {\n    string x PK\n    string y PK\n  }\n")
    report = validate_graph(graph, ValidationPolicy(downgrade={"MULTIPLE_PK"}))
    assert report.passed
    assert "MULTIPLE_PK" in _codes(report, "warning")


def test_validation_does_not_modify_graph():
    """Test that validation leaves the graph untouched."""
    graph = _graph("erDiagram\n  A {\n    string x\n  }\n")
    before = graph.model_dump()
    validate_graph(graph)
    assert graph.model_dump() == before


def test_generated_plan_has_no_parental_or_duplicate_keys():
    """Test the plan checks on a generated plan."""
    plan = generate_plan(
        _graph(
            "erDiagram\n"
            "  A {\n    string id PK\n  }\n  B {\n    string id PK\n  }\n  C {\n    string id PK\n  }\n"
            "  A ||--o{ C : feeds\n  B ||--o{ C : feeds\n  A ||--o{ C : audits\n"
        )
    )
    assert validate_plan(plan) == []
    assert all(not r.is_parental for r in plan.relationships)


def test_validate_plan_reports_multiple_parental():
    """Test that two parental relationships to one entity are reported."""
    plan = generate_plan(
        _graph(
            "erDiagram\n"
            "  A {\n    string id PK\n  }\n  B {\n    string id PK\n  }\n  C {\n    string id PK\n  }\n"
            "  A ||--o{ C : owns\n  B ||--o{ C : owns\n"
        )
    )
    for rel in plan.relationships:
        rel.behavior = "Parental"
    assert [f.code for f in validate_plan(plan)] == ["MULTIPLE_PARENTAL"]
