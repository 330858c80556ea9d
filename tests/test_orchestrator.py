"""Tests for the deployment orchestrator against the in-memory platform."""

import asyncio

import pytest

from erd2dataverse.deployment.orchestrator import DeploymentOrchestrator
from erd2dataverse.deployment.services.base import DeploymentContext, ensure
from erd2dataverse.errors import AuthError, ValidationError
from erd2dataverse.generation.generator import generate_plan
from erd2dataverse.ir.diagram import ChoiceSetDef
from erd2dataverse.ir.result import ObjectState
from erd2dataverse.parsing import parse_diagram

from fake_dataverse import FakeDataverse

EXAMPLE = "erDiagram Customer{string id PK} Order{string id PK} Customer ||--o{ Order : places"

SCHOOL = """
erDiagram
    Student {
        string student_id PK
        string full_name
    }
    Course {
        string course_id PK
        string title
    }
    Student }|--|{ Course : enrolls
"""


def _plan(text, choice_sets=None):
    graph, _ = parse_diagram(text)
    return generate_plan(graph, choice_sets)


def _deploy(fake, plan, sleeps=None, credentials=None, concurrency=1, **retry):
    async def run():
        http = fake.http(credentials=credentials, sleeps=sleeps, **retry)
        async with DeploymentOrchestrator(http, concurrency=concurrency) as orchestrator:
            return await orchestrator.deploy(plan)

    return asyncio.run(run())


def _states(result, category):
    return [o.state for o in result.by_category(category)]


def test_example_deploys_once_and_skips_on_rerun():
    """Test a first deployment and an idempotent second run."""
    fake = FakeDataverse()
    plan = _plan(EXAMPLE)

    first = _deploy(fake, plan)
    assert first.ok
    summary = first.summary
    assert summary["publisher"].created == 1
    assert summary["solution"].created == 1
    assert summary["entity"].created == 2
    assert summary["relationship"].created == 1
    assert summary["solution_component"].created == 3
    posts_after_first = fake.calls("POST")

    second = _deploy(fake, plan)
    assert second.ok
    assert all(o.state == ObjectState.SKIPPED for o in second.outcomes)
    assert len(second.outcomes) == len(first.outcomes)
    assert fake.calls("POST") == posts_after_first

    assert sorted(fake.entities) == ["mmd_customer", "mmd_order"]
    assert list(fake.relationships) == ["mmd_Customer_Order"]
    assert len(fake.components) == 3
    assert "mmd_customerid" in fake.attribute_names("mmd_order")


def test_outcomes_follow_lifecycle():
    """Test the recorded states of created objects."""
    fake = FakeDataverse()
    result = _deploy(fake, _plan(EXAMPLE))
    entity = result.get("entity", "mmd_customer")
    assert entity.history == [
        ObjectState.PLANNED,
        ObjectState.CHECKING_EXISTENCE,
        ObjectState.NOT_FOUND,
        ObjectState.CREATING,
        ObjectState.CREATED,
    ]
    assert entity.remote_id == fake.entities["mmd_customer"]["MetadataId"]

    rerun = _deploy(fake, _plan(EXAMPLE))
    assert rerun.get("entity", "mmd_customer").history == [
        ObjectState.PLANNED,
        ObjectState.CHECKING_EXISTENCE,
        ObjectState.EXISTS,
        ObjectState.SKIPPED,
    ]


def test_transient_failures_are_retried_with_backoff():
    """Test retries with doubling delays on transient failures."""
    fake = FakeDataverse()
    fake.fail("POST", "EntityDefinitions", [503, 503, 503])
    sleeps = []
    result = _deploy(fake, _plan(EXAMPLE), sleeps=sleeps)

    customer = result.get("entity", "mmd_customer")
    assert customer.state == ObjectState.CREATED
    # one existence check plus four create attempts
    assert customer.attempts == 5
    assert sleeps == [1.0, 2.0, 4.0]
    assert result.ok


def test_retry_after_overrides_backoff():
    """Test that Retry-After sets the delay between attempts."""
    fake = FakeDataverse()
    fake.fail("POST", "RelationshipDefinitions", [429, 429], headers={"Retry-After": "7"})
    sleeps = []
    result = _deploy(fake, _plan(EXAMPLE), sleeps=sleeps)
    assert sleeps == [7.0, 7.0]
    assert result.get("relationship", "mmd_Customer_Order").state == ObjectState.CREATED


def test_exhausted_retries_fail_only_that_object():
    """Test that running out of attempts fails a single object."""
    fake = FakeDataverse()
    fake.fail("POST", "RelationshipDefinitions", [503] * 5)
    result = _deploy(fake, _plan(EXAMPLE), max_attempts=5)
    rel = result.get("relationship", "mmd_Customer_Order")
    assert rel.state == ObjectState.FAILED
    assert "503" in rel.reason or "injected" in rel.reason
    assert result.get("entity", "mmd_order").state == ObjectState.CREATED
    assert not result.ok


def test_permanent_failure_isolates_siblings_and_dependents():
    """Test that a rejected object fails its dependents but not its siblings."""
    fake = FakeDataverse()
    fake.fail("POST", "EntityDefinitions", [400])
    result = _deploy(fake, _plan(EXAMPLE))

    customer = result.get("entity", "mmd_customer")
    assert customer.state == ObjectState.FAILED
    assert customer.attempts == 2
    assert result.get("entity", "mmd_order").state == ObjectState.CREATED

    rel = result.get("relationship", "mmd_Customer_Order")
    assert rel.state == ObjectState.FAILED
    assert rel.reason == "dependency failed: entity:mmd_customer"
    assert rel.attempts == 0
    assert fake.calls("POST", "RelationshipDefinitions") == 0

    assert result.get("solution_component", "entity:mmd_customer").state == ObjectState.FAILED
    assert result.get("solution_component", "entity:mmd_order").state == ObjectState.CREATED
    assert [o.key for o in result.failed()] == [
        "mmd_customer",
        "mmd_Customer_Order",
        "entity:mmd_customer",
        "relationship:mmd_Customer_Order",
    ]


def test_columns_of_failed_entity_are_not_attempted():
    """Test that columns of a failed entity fail without remote calls."""
    fake = FakeDataverse()
    fake.fail("POST", "EntityDefinitions", [400])
    plan = _plan("erDiagram\n  Ticket {\n    string id PK\n    string subject\n    int priority\n  }\n")
    result = _deploy(fake, plan)
    assert _states(result, "column") == [ObjectState.FAILED, ObjectState.FAILED]
    assert all(o.reason == "dependency failed: entity:mmd_ticket" for o in result.by_category("column"))
    assert fake.calls("POST", "/Attributes") == 0


def test_publisher_prefix_conflict_stops_dependents():
    """Test that a publisher with another prefix blocks the rest of the run."""
    fake = FakeDataverse()
    fake.add_publisher("someone_else", "mmd")
    result = _deploy(fake, _plan(EXAMPLE))
    publisher = result.by_category("publisher")[0]
    assert publisher.state == ObjectState.FAILED
    assert "someone_else" in publisher.reason
    assert all(o.state == ObjectState.FAILED for o in result.outcomes)
    assert fake.calls("POST") == 0


def test_junction_key_created_after_relationships():
    """Test that the junction alternate key waits for both lookups."""
    fake = FakeDataverse()
    plan = _plan(SCHOOL)
    result = _deploy(fake, plan)
    assert result.ok
    junction = fake.entities["mmd_studentcourse"]
    assert list(junction["keys"]) == ["mmd_studentcourse_alternatekey"]
    assert {"mmd_studentid", "mmd_courseid"} <= set(junction["attributes"])

    categories = [o.category for o in result.outcomes]
    assert categories.index("entity_key") > max(i for i, c in enumerate(categories) if c == "relationship")

    rerun = _deploy(fake, plan)
    assert all(o.state == ObjectState.SKIPPED for o in rerun.outcomes)


def test_choice_sets_are_deployed_before_columns():
    """Test that global choice sets exist before choice columns."""
    fake = FakeDataverse()
    choice_sets = [ChoiceSetDef(name="priority", options=[{"label": "Low"}, {"label": "High"}])]
    plan = _plan("erDiagram\n  Ticket {\n    string id PK\n    priority level\n  }\n", choice_sets)
    result = _deploy(fake, plan)
    assert result.ok
    assert list(fake.option_sets) == ["mmd_priority"]
    assert "mmd_level" in fake.attribute_names("mmd_ticket")
    component_types = sorted(c["componenttype"] for c in fake.components.values())
    assert component_types == [1, 2, 9]


def test_failed_choice_set_fails_its_columns():
    """Test that a failed choice set fails the columns bound to it."""
    fake = FakeDataverse()
    fake.fail("POST", "GlobalOptionSetDefinitions", [400])
    choice_sets = [ChoiceSetDef(name="priority", options=[{"label": "Low"}])]
    plan = _plan("erDiagram\n  Ticket {\n    string id PK\n    priority level\n    string subject\n  }\n", choice_sets)
    result = _deploy(fake, plan)
    level = result.get("column", "mmd_ticket.mmd_level")
    assert level.reason == "dependency failed: choice_set:mmd_priority"
    assert result.get("column", "mmd_ticket.mmd_subject").state == ObjectState.CREATED


def test_concurrent_stages_give_the_same_result():
    """Test that concurrency does not change the outcome."""
    sequential, concurrent = FakeDataverse(), FakeDataverse()
    plan = _plan(SCHOOL)
    first = _deploy(sequential, plan)
    second = _deploy(concurrent, plan, concurrency=4)
    assert {k: v.model_dump() for k, v in first.summary.items()} == {
        k: v.model_dump() for k, v in second.summary.items()
    }
    assert sorted(sequential.entities) == sorted(concurrent.entities)


def test_blocked_plan_is_rejected_before_any_call():
    """Test that a plan with errors is refused before contacting the platform."""
    fake = FakeDataverse()
    plan = _plan("erDiagram\n  A {\n    string x PK\n    string y PK\n  }\n")
    with pytest.raises(ValidationError) as exc:
        _deploy(fake, plan)
    assert [f.code for f in exc.value.findings] == ["MULTIPLE_PK"]
    assert fake.requests == []


class BrokenCredentials:
    async def get_token(self, force_refresh: bool = False) -> str:
        raise AuthError("credential expired and cannot be refreshed")


def test_auth_failure_aborts_the_run():
    """Test that an authentication failure ends the deployment."""
    fake = FakeDataverse()
    with pytest.raises(AuthError):
        _deploy(fake, _plan(EXAMPLE), credentials=BrokenCredentials())
    assert fake.requests == []


def test_check_connection():
    """Test the WhoAmI connection check."""
    fake = FakeDataverse()

    async def run():
        async with DeploymentOrchestrator(fake.http()) as orchestrator:
            return await orchestrator.check_connection()

    assert asyncio.run(run())["UserId"] == "user-1"


def test_report_shape():
    """Test the JSON report of a deployment."""
    fake = FakeDataverse()
    report = _deploy(fake, _plan(EXAMPLE)).to_report()
    assert report["ok"] is True
    assert report["solution"] == "mmd_MermaidSolution"
    assert report["summary"]["entity"] == {"created": 2, "skipped": 0, "failed": 0}
    assert {o["status"] for o in report["objects"]} == {"created"}


def test_create_committed_behind_gateway_timeout_counts_as_created():
    """Test that a create the server finished before timing out is confirmed, not failed."""
    fake = FakeDataverse()
    fake.fail_after_commit("POST", "EntityDefinitions", [504])
    sleeps = []
    result = _deploy(fake, _plan(EXAMPLE), sleeps=sleeps)

    customer = result.get("entity", "mmd_customer")
    assert customer.state == ObjectState.CREATED
    assert customer.remote_id == fake.entities["mmd_customer"]["MetadataId"]
    # existence check, timed-out create, duplicate reply, confirming check
    assert customer.attempts == 4
    assert sleeps == [1.0]
    assert result.get("relationship", "mmd_Customer_Order").state == ObjectState.CREATED
    assert result.ok
    assert sorted(fake.entities) == ["mmd_customer", "mmd_order"]


def test_duplicate_reply_is_confirmed_by_lookup():
    """Test that a conflict reply for an object that now exists ends as created."""
    fake = FakeDataverse()
    fake.fail_after_commit("POST", "GlobalOptionSetDefinitions", [409])
    choice_sets = [ChoiceSetDef(name="priority", options=[{"label": "Low"}])]
    result = _deploy(fake, _plan("erDiagram\n  Ticket {\n    string id PK\n    priority level\n  }\n", choice_sets))
    choice = result.get("choice_set", "mmd_priority")
    assert choice.state == ObjectState.CREATED
    assert choice.attempts == 3
    assert result.get("column", "mmd_ticket.mmd_level").state == ObjectState.CREATED
    assert result.ok


def test_conflict_for_missing_object_still_fails():
    """Test that a conflict reply is a failure when the object cannot be found afterwards."""
    fake = FakeDataverse()
    fake.fail("POST", "GlobalOptionSetDefinitions", [409])
    choice_sets = [ChoiceSetDef(name="priority", options=[{"label": "Low"}])]
    result = _deploy(fake, _plan("erDiagram\n  Ticket {\n    string id PK\n    priority level\n  }\n", choice_sets))
    choice = result.get("choice_set", "mmd_priority")
    assert choice.state == ObjectState.FAILED
    assert "409" in choice.reason
    assert fake.option_sets == {}


def test_non_json_reply_fails_only_that_object():
    """Test that a garbled success body fails one object and the run still reports."""
    fake = FakeDataverse()
    fake.garble("GET", "RelationshipDefinitions")
    result = _deploy(fake, _plan(EXAMPLE))

    rel = result.get("relationship", "mmd_Customer_Order")
    assert rel.state == ObjectState.FAILED
    assert "not valid JSON" in rel.reason
    assert result.get("entity", "mmd_customer").state == ObjectState.CREATED
    assert result.get("solution_component", "relationship:mmd_Customer_Order").state == ObjectState.FAILED
    assert not result.ok
    assert result.to_report()["summary"]["relationship"]["failed"] == 1


def test_garbled_solution_component_reply():
    """Test that AddSolutionComponent answering with HTML fails that component only."""
    fake = FakeDataverse()
    fake.garble("POST", "AddSolutionComponent")
    result = _deploy(fake, _plan(EXAMPLE))
    states = _states(result, "solution_component")
    assert states.count(ObjectState.FAILED) == 1
    assert states.count(ObjectState.CREATED) == 2


class ExplodingService:
    category = "entity"

    async def find(self, obj, ctx, stats):
        raise KeyError("MetadataId")

    async def create(self, obj, ctx, stats):
        return None


def test_unexpected_error_becomes_failed_outcome():
    """Test that an error outside the remote error taxonomy is recorded, not raised."""
    outcome = asyncio.run(ensure(ExplodingService(), None, "mmd_x", DeploymentContext(solution_unique_name="s")))
    assert outcome.state == ObjectState.FAILED
    assert outcome.reason.startswith("KeyError")


def test_fatal_error_cancels_running_siblings():
    """Test that an auth failure in one job cancels the others in the same stage."""
    fake = FakeDataverse()
    cancelled = []

    async def slow():
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.append(True)
            raise

    async def broken():
        await asyncio.sleep(0)
        raise AuthError("token revoked")

    async def run():
        async with DeploymentOrchestrator(fake.http(), concurrency=2) as orchestrator:
            await orchestrator._run_stage([slow, broken])

    with pytest.raises(AuthError):
        asyncio.run(run())
    assert cancelled == [True]
