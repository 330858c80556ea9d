"""End-to-end tests for the command surface, file helpers and CLI."""

import asyncio
import json

import pytest
from typer.testing import CliRunner

from erd2dataverse import pipeline
from erd2dataverse.cli.app import app
from erd2dataverse.config.settings import Settings
from erd2dataverse.deployment.auth import StaticTokenProvider
from erd2dataverse.errors import ParseError
from erd2dataverse.generation.choices import load_choice_sets
from erd2dataverse.utils.io import (
    load_choice_sets_from_json,
    load_plan_from_json,
    save_plan_to_json,
    save_result_to_json,
)

from fake_dataverse import FakeDataverse

DIAGRAM = """erDiagram
    CUSTOMER {
        string customer_id PK
        string email
    }
    ORDER {
        int order_id PK
        string customer_id FK
        order_status status
    }
    CUSTOMER ||--o{ ORDER : places
"""

CHOICES = [{"name": "order_status", "displayName": "Order Status", "options": [{"label": "Open"}, {"label": "Shipped"}]}]


def _choice_sets():
    return load_choice_sets(CHOICES)


def test_parse_validate_generate():
    """Test the pipeline from diagram text to plan."""
    graph, diagnostics = pipeline.parse(DIAGRAM)
    assert list(diagnostics) == []
    report = pipeline.validate(graph)
    assert report.passed

    choice_sets = pipeline.generate(graph).choice_sets
    assert choice_sets == []

    plan = pipeline.generate(graph, _choice_sets())
    assert plan.summary() == {
        "publisher": 1,
        "solution": 1,
        "choice_set": 1,
        "entity": 2,
        "column": 2,
        "relationship": 1,
        "entity_key": 0,
    }


def test_parse_errors_propagate():
    """Test that parse errors reach the caller."""
    with pytest.raises(ParseError):
        pipeline.parse("erDiagram\n  A {\n")


def test_dry_run_keeps_parse_warnings():
    """Test that a dry run reports parse warnings."""
    plan = pipeline.dry_run("erDiagram\n  A ||--o{ B\n")
    stages = {f.stage for f in plan.findings}
    assert "parse" in stages
    assert "MISSING_LABEL" in [f.code for f in plan.findings]


def test_deploy_through_settings():
    """Test deployment configured from settings."""
    fake = FakeDataverse()
    settings = Settings(dataverse_url="https://org.example.com/", max_attempts=2)
    assert settings.api_base_url == "https://org.example.com/api/data/v9.2"
    graph, _ = pipeline.parse(DIAGRAM)
    plan = pipeline.generate(graph, _choice_sets())
    sleeps = []

    async def sleep(delay):
        sleeps.append(delay)

    fake.fail("POST", "GlobalOptionSetDefinitions", [502])
    result = asyncio.run(
        pipeline.deploy(
            plan,
            credentials=StaticTokenProvider("t"),
            settings=settings,
            transport=fake.transport(),
            sleep=sleep,
        )
    )
    assert result.ok
    assert sleeps == [1.0]
    assert sorted(fake.entities) == ["mmd_customer", "mmd_order"]


def test_plan_and_result_files(tmp_path):
    """Test writing and reading plan and result files."""
    graph, _ = pipeline.parse(DIAGRAM)
    plan = pipeline.generate(graph, _choice_sets())
    plan_path = tmp_path / "out" / "plan.json"
    save_plan_to_json(plan, plan_path)
    loaded = load_plan_from_json(plan_path)
    assert loaded.object_keys() == plan.object_keys()
    assert [f.code for f in loaded.findings] == [f.code for f in plan.findings]

    fake = FakeDataverse()
    result = asyncio.run(
        pipeline.deploy(
            loaded,
            credentials=StaticTokenProvider("t"),
            settings=Settings(dataverse_url="https://org.example.com"),
            transport=fake.transport(),
        )
    )
    report_path = tmp_path / "report.json"
    save_result_to_json(result, report_path)
    report = json.loads(report_path.read_text(encoding="utf-8"))
    assert report["ok"] is True
    assert report["summary"]["column"]["created"] == 2


def test_file_helpers_reject_bad_input(tmp_path):
    """Test file helper errors and the wrapped choice set document."""
    with pytest.raises(FileNotFoundError):
        load_plan_from_json(tmp_path / "missing.json")
    empty = tmp_path / "empty.json"
    empty.write_text("   ", encoding="utf-8")
    with pytest.raises(ValueError):
        load_plan_from_json(empty)
    wrapped = tmp_path / "choices.json"
    wrapped.write_text(json.dumps({"choiceSets": CHOICES}), encoding="utf-8")
    assert [c.name for c in load_choice_sets_from_json(wrapped)] == ["order_status"]
    scalar = tmp_path / "scalar.json"
    scalar.write_text("42", encoding="utf-8")
    with pytest.raises(ValueError):
        load_choice_sets_from_json(scalar)


def test_cli_validate_and_generate(tmp_path):
    """Test the validate and generate commands."""
    runner = CliRunner()
    diagram = tmp_path / "shop.mmd"
    diagram.write_text(DIAGRAM, encoding="utf-8")
    choices = tmp_path / "choices.json"
    choices.write_text(json.dumps(CHOICES), encoding="utf-8")

    result = runner.invoke(app, ["validate", str(diagram)])
    assert result.exit_code == 0

    out_plan = tmp_path / "plan.json"
    result = runner.invoke(app, ["generate", str(diagram), str(out_plan), "--choice-sets", str(choices)])
    assert result.exit_code == 0
    assert load_plan_from_json(out_plan).summary()["choice_set"] == 1


def test_cli_reports_invalid_diagrams(tmp_path):
    """Test the exit code and output for an invalid diagram."""
    runner = CliRunner()
    bad = tmp_path / "bad.mmd"
    bad.write_text("erDiagram\n  A {\n    string x PK\n    string y PK\n  }\n", encoding="utf-8")
    assert runner.invoke(app, ["validate", str(bad)]).exit_code == 1

    broken = tmp_path / "broken.mmd"
    broken.write_text("erDiagram\n  A ; B\n", encoding="utf-8")
    assert runner.invoke(app, ["parse", str(broken)]).exit_code == 1
