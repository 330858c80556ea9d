"""Tests for standard table detection."""

from erd2dataverse.generation.cdm import (
    ALIAS_CONFIDENCE,
    EXACT_CONFIDENCE,
    cdm_findings,
    detect_cdm_entities,
    match_entity,
    normalize_name,
)
from erd2dataverse.ir.diagram import DiagramGraph, EntityDef, FieldDef


def _entity(name: str, *fields: str) -> EntityDef:
    return EntityDef(
        name=name,
        display_name=name,
        fields=[FieldDef(name=f, type_name="string") for f in fields],
    )


def test_normalize_name():
    """Test plural, case and punctuation folding."""
    assert normalize_name("Contacts") == "contact"
    assert normalize_name("Sales_Order") == "salesorder"
    assert normalize_name("Address") == "address"
    assert normalize_name("  ") == ""


def test_exact_and_alias_matches():
    """Test that standard names and their common aliases are recognised."""
    exact = match_entity(_entity("Contacts"))
    assert (exact.cdm.logical_name, exact.match_type, exact.confidence) == ("contact", "exact", EXACT_CONFIDENCE)

    alias = match_entity(_entity("Company"))
    assert (alias.cdm.logical_name, alias.match_type, alias.confidence) == ("account", "alias", ALIAS_CONFIDENCE)

    assert match_entity(_entity("Ticket")).cdm.logical_name == "incident"
    assert match_entity(_entity("Order")).cdm.logical_name == "salesorder"


def test_fuzzy_match_uses_attributes():
    """Test that a near name with standard columns is matched fuzzily."""
    found = match_entity(
        _entity("Acct", "name", "accountnumber", "emailaddress1", "telephone1", "primarycontactid")
    )
    assert found is not None
    assert found.cdm.logical_name == "account"
    assert found.match_type == "fuzzy"
    assert 0.7 < found.confidence < EXACT_CONFIDENCE


def test_custom_entity_is_not_matched():
    """Test that unrelated entities stay custom."""
    assert match_entity(_entity("Telescope", "lens", "focal_length")) is None
    assert match_entity(_entity("Acct")) is None


def test_report_and_findings():
    """Test the detection report and the warnings built from it."""
    junction = _entity("CustomerTelescope")
    junction.synthesized = True
    graph = DiagramGraph(entities=[_entity("Customer"), _entity("Telescope", "lens"), junction])

    report = detect_cdm_entities(graph)
    assert [m.entity for m in report.matches] == ["Customer"]
    assert report.custom_entities == ["Telescope"]
    assert report.summary() == {"exact": 0, "alias": 1, "fuzzy": 0, "custom": 1}
    assert report.confidence_level == "medium"

    findings = cdm_findings(report)
    assert len(findings) == 1
    finding = findings[0]
    assert (finding.stage, finding.code, finding.severity) == ("generation", "CDM_MATCH", "warning")
    assert finding.details == {"cdm_entity": "account", "match_type": "alias", "confidence": ALIAS_CONFIDENCE}


def test_empty_report():
    """Test a diagram without standard tables."""
    report = detect_cdm_entities(DiagramGraph(entities=[_entity("Telescope")]))
    assert report.matches == []
    assert report.confidence_level == "none"
    assert cdm_findings(report) == []
