"""Utilities for loading and saving diagrams, choice sets, plans and results."""

import json
from pathlib import Path
from typing import List

from pydantic import TypeAdapter

from erd2dataverse.generation.choices import load_choice_sets
from erd2dataverse.ir.diagram import ChoiceSetDef
from erd2dataverse.ir.plan import DeploymentPlan
from erd2dataverse.ir.result import DeploymentResult


def _read_nonempty(path: Path, what: str) -> str:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"{what} file not found: {path}")
    content = path.read_text(encoding="utf-8")
    if not content.strip():
        raise ValueError(f"{what} file is empty: {path}")
    return content


def _write(path: Path, content: str) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def load_diagram(path: Path) -> str:
    """Read Mermaid diagram text from a file."""
    return _read_nonempty(path, "Diagram")


def load_choice_sets_from_json(path: Path) -> List[ChoiceSetDef]:
    """
    Load a choice-set side document.

    Accepts either a JSON list of choice sets or an object with a
    ``choiceSets`` (or ``choice_sets``) list.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file is empty or not shaped like a choice-set document
    """
    content = _read_nonempty(path, "Choice set")
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise ValueError(f"Choice set file {path} is not valid JSON: {e}") from e
    if isinstance(data, dict):
        data = data.get("choiceSets", data.get("choice_sets"))
    if not isinstance(data, list):
        raise ValueError(f"Choice set file {path} must hold a list of choice sets")
    return load_choice_sets(data)


def load_plan_from_json(path: Path) -> DeploymentPlan:
    """
    Load a DeploymentPlan written by ``save_plan_to_json``.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file is empty or corrupted
    """
    content = _read_nonempty(path, "Plan")
    try:
        return TypeAdapter(DeploymentPlan).validate_json(content)
    except Exception as e:
        raise ValueError(f"Failed to load plan from {path}: {e}") from e


def save_plan_to_json(plan: DeploymentPlan, path: Path) -> None:
    """Save a plan; parent directories are created as needed."""
    _write(path, plan.model_dump_json(indent=2))


def save_result_to_json(result: DeploymentResult, path: Path) -> None:
    """Save the deployment report (per-category counts and per-object detail)."""
    _write(path, json.dumps(result.to_report(), indent=2))
