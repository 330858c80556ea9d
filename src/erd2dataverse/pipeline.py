"""Command surface: parse, validate, generate and deploy."""

from typing import List, Optional

import httpx

from erd2dataverse.config.logging import get_logger
from erd2dataverse.config.settings import Settings, get_settings
from erd2dataverse.deployment.auth import ClientCredentialsProvider, CredentialProvider
from erd2dataverse.deployment.orchestrator import DeploymentOrchestrator
from erd2dataverse.generation.generator import SchemaGenerator
from erd2dataverse.generation.naming import NamingConfig
from erd2dataverse.ir.diagram import ChoiceSetDef, DiagramGraph
from erd2dataverse.ir.plan import DeploymentPlan
from erd2dataverse.ir.result import DeploymentResult
from erd2dataverse.ir.validators import ValidationPolicy, ValidationReport, validate_graph
from erd2dataverse.parsing import ParseResult, parse_diagram

logger = get_logger(__name__)


def policy_from_settings(settings: Optional[Settings] = None) -> ValidationPolicy:
    settings = settings or get_settings()
    return ValidationPolicy(synthesize_primary_keys=settings.synthesize_primary_keys)


def parse(text: str) -> ParseResult:
    """
    Parse diagram text.

    Returns:
        (graph, diagnostics); diagnostics is a lazily iterable warning stream

    Raises:
        ParseError: Malformed diagram text
    """
    return parse_diagram(text)


def validate(graph: DiagramGraph, policy: Optional[ValidationPolicy] = None) -> ValidationReport:
    return validate_graph(graph, policy or policy_from_settings())


def generate(
    graph: DiagramGraph,
    choice_sets: Optional[List[ChoiceSetDef]] = None,
    naming: Optional[NamingConfig] = None,
    policy: Optional[ValidationPolicy] = None,
    settings: Optional[Settings] = None,
) -> DeploymentPlan:
    """
    Generate a deployment plan.

    Naming, policy and the junction threshold default to the configured
    settings. The plan carries every finding; check ``plan.blocked`` before
    deploying.
    """
    settings = settings or get_settings()
    generator = SchemaGenerator(
        naming=naming or NamingConfig.from_settings(settings),
        policy=policy or policy_from_settings(settings),
        junction_max_descriptive_fields=settings.junction_max_descriptive_fields,
        detect_standard_tables=settings.detect_standard_tables,
    )
    return generator.generate(graph, choice_sets)


def dry_run(
    text: str,
    choice_sets: Optional[List[ChoiceSetDef]] = None,
    naming: Optional[NamingConfig] = None,
    policy: Optional[ValidationPolicy] = None,
) -> DeploymentPlan:
    """Parse and generate without touching the platform; parse warnings are kept on the plan."""
    graph, diagnostics = parse(text)
    plan = generate(graph, choice_sets, naming=naming, policy=policy)
    plan.findings = list(diagnostics) + plan.findings
    return plan


async def deploy(
    plan: DeploymentPlan,
    credentials: Optional[CredentialProvider] = None,
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    **http_kwargs,
) -> DeploymentResult:
    """
    Deploy a plan to the configured environment.

    Args:
        plan: Plan from ``generate``
        credentials: Token provider; client credentials from settings when omitted
        settings: Settings to use (global settings when omitted)
        transport: Optional httpx transport for the metadata API
        **http_kwargs: Passed to DataverseHttp (e.g. ``sleep``)

    Raises:
        ValidationError: The plan carries validation errors
        AuthError: No credential could be obtained
    """
    settings = settings or get_settings()
    credentials = credentials or ClientCredentialsProvider.from_settings(settings)
    async with DeploymentOrchestrator.from_settings(
        credentials, settings, transport=transport, **http_kwargs
    ) as orchestrator:
        return await orchestrator.deploy(plan)
