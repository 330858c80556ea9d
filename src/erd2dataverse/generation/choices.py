"""Global choice sets: side-document merge and plan construction."""

from typing import Any, Dict, List, Tuple

from erd2dataverse.errors import GenerationError
from erd2dataverse.ir.diagram import ChoiceSetDef, DiagramGraph
from erd2dataverse.ir.findings import Finding
from erd2dataverse.ir.plan import ChoiceSetPlan

from .naming import logical_name, pascal_case
from .payloads import choice_set_payload

# Option set names the platform already uses for its own columns
RESERVED_CHOICE_SET_NAMES = {
    "statecode",
    "statuscode",
    "state",
    "status",
    "ownershipcode",
    "componentstate",
    "boolean",
    "picklist",
    "optionset",
}


def load_choice_sets(records: List[Dict[str, Any]]) -> List[ChoiceSetDef]:
    """Build ChoiceSetDefs from side-document records (``displayName`` keys accepted)."""
    return [ChoiceSetDef.model_validate(record) for record in records]


def merge_choice_sets(graph: DiagramGraph, choice_sets: List[ChoiceSetDef]) -> Tuple[DiagramGraph, List[Finding]]:
    """
    Merge side-document choice sets into a copy of the graph by name.

    A set named twice keeps the later definition and produces a warning.
    """
    findings: List[Finding] = []
    merged: Dict[str, ChoiceSetDef] = {c.name: c for c in graph.choice_sets}
    seen = set()
    for choice_set in choice_sets:
        if choice_set.name in seen or choice_set.name in merged:
            findings.append(
                Finding(
                    stage="generation",
                    code="DUPLICATE_CHOICE_SET",
                    severity="warning",
                    location=choice_set.name,
                    message=f"choice set '{choice_set.name}' is defined more than once; the last definition wins",
                )
            )
        seen.add(choice_set.name)
        merged[choice_set.name] = choice_set
    return graph.model_copy(update={"choice_sets": list(merged.values())}), findings


def build_choice_set_plan(choice_set: ChoiceSetDef, prefix: str, language_code: int = 1033) -> ChoiceSetPlan:
    """
    Render one choice set.

    Raises:
        GenerationError: For a reserved name or repeated option values
    """
    if pascal_case(choice_set.name).lower() in RESERVED_CHOICE_SET_NAMES:
        raise GenerationError(
            f"'{choice_set.name}' is reserved by the platform",
            location=choice_set.name,
            code="RESERVED_NAME",
        )
    values = [o.value for o in choice_set.options]
    duplicates = sorted({v for v in values if values.count(v) > 1})
    if duplicates:
        raise GenerationError(
            f"option values {duplicates} are used more than once",
            location=choice_set.name,
            code="DUPLICATE_OPTION_VALUE",
        )

    name = logical_name(prefix, choice_set.name)
    options = [{"value": o.value, "label": o.label, "description": o.description} for o in choice_set.options]
    return ChoiceSetPlan(
        name=name,
        source_name=choice_set.name,
        option_values=values,
        payload=choice_set_payload(
            name,
            choice_set.display_name or choice_set.name,
            choice_set.description,
            options,
            language_code,
        ),
    )
