"""Typer CLI application."""

import asyncio
import json
from pathlib import Path
from typing import List, Optional

import typer

from erd2dataverse.config.logging import setup_logging
from erd2dataverse.config.settings import get_settings
from erd2dataverse.deployment.auth import ClientCredentialsProvider
from erd2dataverse.deployment.orchestrator import DeploymentOrchestrator
from erd2dataverse.errors import AuthError, Erd2DataverseError, ParseError, ValidationError
from erd2dataverse.ir.diagram import ChoiceSetDef
from erd2dataverse.ir.findings import Finding
from erd2dataverse import pipeline
from erd2dataverse.utils.io import (
    load_choice_sets_from_json,
    load_diagram,
    load_plan_from_json,
    save_plan_to_json,
    save_result_to_json,
)

app = typer.Typer(help="erd2dataverse: Mermaid ER diagrams to Dataverse schemas")


def _echo_findings(findings: List[Finding]) -> None:
    for f in findings:
        typer.echo(f"  [{f.severity}] {f.code} {f.location}: {f.message}", err=f.is_error)


def _parse_file(diagram: Path):
    try:
        return pipeline.parse(load_diagram(diagram))
    except ParseError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def _choice_sets(path: Optional[Path]) -> List[ChoiceSetDef]:
    return load_choice_sets_from_json(path) if path else []


@app.command()
def parse(diagram: Path):
    """
    Parse a diagram and print its graph as JSON.

    Args:
        diagram: Path to the Mermaid erDiagram file
    """
    setup_logging()
    graph, diagnostics = _parse_file(diagram)
    typer.echo(graph.model_dump_json(indent=2))
    if diagnostics:
        typer.echo(f"{len(diagnostics)} parse warnings:", err=True)
        _echo_findings(list(diagnostics))


@app.command()
def validate(diagram: Path):
    """
    Parse and validate a diagram; exits with 1 when errors are found.

    Args:
        diagram: Path to the Mermaid erDiagram file
    """
    setup_logging()
    graph, diagnostics = _parse_file(diagram)
    report = pipeline.validate(graph)
    findings = list(diagnostics) + report.findings
    _echo_findings(findings)
    if not report.passed:
        typer.echo(f"Validation failed with {len(report.errors)} errors", err=True)
        raise typer.Exit(1)
    typer.echo(f"✓ Valid: {len(graph.entities)} entities, {len(graph.relationships)} relationships")


@app.command()
def generate(
    diagram: Path,
    out_plan: Path,
    choice_sets: Optional[Path] = typer.Option(None, help="Choice-set side document (JSON)"),
):
    """
    Generate a deployment plan without touching the platform.

    Args:
        diagram: Path to the Mermaid erDiagram file
        out_plan: Output path for the plan JSON
    """
    setup_logging()
    graph, diagnostics = _parse_file(diagram)
    plan = pipeline.generate(graph, _choice_sets(choice_sets))
    plan.findings = list(diagnostics) + plan.findings
    _echo_findings(plan.findings)

    typer.echo(f"Writing plan to {out_plan}")
    save_plan_to_json(plan, out_plan)
    if plan.blocked:
        typer.echo("Error: plan has validation errors and cannot be deployed", err=True)
        raise typer.Exit(1)
    typer.echo(f"✓ Plan: {plan.summary()}")


@app.command()
def deploy(
    source: Path,
    out_report: Optional[Path] = typer.Option(None, help="Where to write the deployment report"),
    choice_sets: Optional[Path] = typer.Option(None, help="Choice-set side document (JSON)"),
):
    """
    Deploy a diagram (or a plan JSON written by ``generate``) to the configured environment.

    Args:
        source: Path to a Mermaid erDiagram file or a plan JSON file
    """
    setup_logging()
    if source.suffix.lower() == ".json":
        plan = load_plan_from_json(source)
    else:
        graph, diagnostics = _parse_file(source)
        plan = pipeline.generate(graph, _choice_sets(choice_sets))
        plan.findings = list(diagnostics) + plan.findings

    try:
        result = asyncio.run(pipeline.deploy(plan))
    except ValidationError as e:
        typer.echo(f"Error: {e}", err=True)
        _echo_findings(e.findings)
        raise typer.Exit(1)
    except (AuthError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    report = result.to_report()
    if out_report:
        typer.echo(f"Writing report to {out_report}")
        save_result_to_json(result, out_report)
    typer.echo(json.dumps(report["summary"], indent=2))
    for outcome in result.failed():
        typer.echo(f"  failed {outcome.category} {outcome.key}: {outcome.reason}", err=True)
    if not result.ok:
        raise typer.Exit(1)
    typer.echo(f"✓ Deployment complete for solution {result.solution_unique_name}")


@app.command()
def check():
    """Verify credentials and connectivity with a WhoAmI call."""
    setup_logging()
    settings = get_settings()

    async def run():
        credentials = ClientCredentialsProvider.from_settings(settings)
        async with DeploymentOrchestrator.from_settings(credentials, settings) as orchestrator:
            return await orchestrator.check_connection()

    try:
        body = asyncio.run(run())
    except (Erd2DataverseError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    typer.echo(f"✓ Connected to {settings.dataverse_url} as user {body.get('UserId')}")


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
