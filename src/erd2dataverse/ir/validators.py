"""Structural validators for diagram graphs and deployment plans."""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set

from erd2dataverse.config.logging import get_logger
from erd2dataverse.generation.junction import resolve_reference
from erd2dataverse.generation.naming import PRIMARY_NAME_FIELD, pascal_case
from .diagram import DiagramGraph
from .findings import Finding, Severity
from .plan import DeploymentPlan

logger = get_logger(__name__)

# Columns every table already has; a custom column with one of these names is rejected
SYSTEM_OWNED_COLUMNS = {"ownerid", "statecode", "statuscode"}

# Entity names that shadow standard tables
RESERVED_ENTITY_NAMES = {"User", "Role", "Group", "System", "Admin"}


@dataclass
class ValidationPolicy:
    """
    Controls how strict graph validation is.

    Attributes:
        synthesize_primary_keys: Missing primary keys are warnings because the
            generator will synthesize one
        downgrade: Finding codes the caller chooses to treat as warnings
    """

    synthesize_primary_keys: bool = True
    downgrade: Set[str] = field(default_factory=set)


@dataclass
class ValidationReport:
    """Findings of one validation run plus the verdict."""

    findings: List[Finding] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not any(f.is_error for f in self.findings)

    @property
    def errors(self) -> List[Finding]:
        return [f for f in self.findings if f.is_error]

    @property
    def warnings(self) -> List[Finding]:
        return [f for f in self.findings if not f.is_error]

    def codes(self) -> List[str]:
        return [f.code for f in self.findings]


def _finding(code: str, severity: Severity, location: str, message: str, **details) -> Finding:
    return Finding(stage="validation", code=code, severity=severity, location=location, message=message, details=details)


def check_primary_keys(graph: DiagramGraph, policy: ValidationPolicy) -> List[Finding]:
    """Exactly one finding per entity without a primary key; an error for more than one."""
    issues = []
    for entity in graph.entities:
        pks = entity.primary_keys
        if not pks:
            severity: Severity = "warning" if policy.synthesize_primary_keys else "error"
            suffix = "; a surrogate key will be synthesized" if policy.synthesize_primary_keys else ""
            issues.append(
                _finding("MISSING_PK", severity, entity.name, f"{entity.name}: no primary key{suffix}", entity=entity.name)
            )
        elif len(pks) > 1:
            issues.append(
                _finding(
                    "MULTIPLE_PK",
                    "error",
                    entity.name,
                    f"{entity.name}: {len(pks)} primary keys ({', '.join(f.name for f in pks)}); only one is allowed",
                    entity=entity.name,
                    fields=[f.name for f in pks],
                )
            )
    return issues


def check_self_references(graph: DiagramGraph, policy: ValidationPolicy) -> List[Finding]:
    return [
        _finding(
            "SELF_REFERENCE",
            "warning",
            rel.source,
            f"{rel.source} references itself ('{rel.label}')",
            label=rel.label,
        )
        for rel in graph.relationships
        if rel.is_self_reference
    ]


def check_orphans(graph: DiagramGraph, policy: ValidationPolicy) -> List[Finding]:
    return [
        _finding("ORPHAN_ENTITY", "warning", entity.name, f"{entity.name} takes part in no relationship")
        for entity in graph.entities
        if not graph.relationships_of(entity.name)
    ]


def check_naming_collisions(graph: DiagramGraph, policy: ValidationPolicy) -> List[Finding]:
    """Entities, or fields of one entity, that collapse to the same technical identifier."""
    issues = []

    def collisions(names: List[str]) -> Dict[str, List[str]]:
        groups: Dict[str, List[str]] = {}
        for name in names:
            groups.setdefault(pascal_case(name).lower(), []).append(name)
        return groups

    for normalized, names in collisions(graph.entity_names).items():
        if not normalized:
            issues.extend(
                _finding("INVALID_NAME", "error", n, f"entity '{n}' has no usable characters for a technical name")
                for n in names
            )
        elif len(names) > 1:
            issues.append(
                _finding(
                    "NAME_COLLISION",
                    "error",
                    names[0],
                    f"entities {names} all map to the technical name '{normalized}'",
                    names=names,
                )
            )

    for entity in graph.entities:
        for normalized, names in collisions([f.name for f in entity.fields]).items():
            if not normalized:
                issues.extend(
                    _finding("INVALID_NAME", "error", f"{entity.name}.{n}", f"field '{n}' has no usable characters")
                    for n in names
                )
            elif len(names) > 1:
                issues.append(
                    _finding(
                        "NAME_COLLISION",
                        "error",
                        f"{entity.name}.{names[0]}",
                        f"{entity.name}: fields {names} all map to the technical name '{normalized}'",
                        names=names,
                    )
                )
    return issues


def check_relationship_endpoints(graph: DiagramGraph, policy: ValidationPolicy) -> List[Finding]:
    known = set(graph.entity_names)
    issues = []
    for rel in graph.relationships:
        for end in (rel.source, rel.target):
            if end not in known:
                issues.append(
                    _finding(
                        "UNKNOWN_ENTITY",
                        "error",
                        end,
                        f"relationship '{rel.label}' references unknown entity '{end}'",
                        label=rel.label,
                    )
                )
    return issues


def check_reserved_columns(graph: DiagramGraph, policy: ValidationPolicy) -> List[Finding]:
    issues = []
    for entity in graph.entities:
        for f in entity.fields:
            lowered = f.name.lower()
            if lowered in SYSTEM_OWNED_COLUMNS:
                issues.append(
                    _finding(
                        "SYSTEM_COLUMN_CLASH",
                        "error",
                        f"{entity.name}.{f.name}",
                        f"{entity.name}.{f.name} clashes with a column every table already has",
                    )
                )
            elif lowered == PRIMARY_NAME_FIELD and not f.is_primary_key:
                issues.append(
                    _finding(
                        "PRIMARY_NAME_CLASH",
                        "warning",
                        f"{entity.name}.{f.name}",
                        f"{entity.name}.{f.name} is folded into the primary name column",
                    )
                )
    return issues


def check_reserved_entities(graph: DiagramGraph, policy: ValidationPolicy) -> List[Finding]:
    return [
        _finding(
            "RESERVED_ENTITY_NAME",
            "warning",
            entity.name,
            f"{entity.name} may be confused with the standard table of the same name",
        )
        for entity in graph.entities
        if pascal_case(entity.name) in RESERVED_ENTITY_NAMES
    ]


def check_empty_entities(graph: DiagramGraph, policy: ValidationPolicy) -> List[Finding]:
    return [
        _finding("EMPTY_ENTITY", "warning", entity.name, f"{entity.name} declares no attributes")
        for entity in graph.entities
        if not entity.fields
    ]


def check_foreign_keys(graph: DiagramGraph, policy: ValidationPolicy) -> List[Finding]:
    names = graph.entity_names
    issues = []
    for entity in graph.entities:
        self_related = any(r.is_self_reference and r.source == entity.name for r in graph.relationships)
        for f in entity.foreign_keys:
            if resolve_reference(f.name, names) is None and not self_related:
                issues.append(
                    _finding(
                        "UNMATCHED_FK",
                        "warning",
                        f"{entity.name}.{f.name}",
                        f"{entity.name}.{f.name} is marked FK but matches no entity by name; kept as a plain column",
                    )
                )
    return issues


GRAPH_CHECKS: List[Callable[[DiagramGraph, ValidationPolicy], List[Finding]]] = [
    check_primary_keys,
    check_self_references,
    check_orphans,
    check_naming_collisions,
    check_relationship_endpoints,
    check_reserved_columns,
    check_reserved_entities,
    check_empty_entities,
    check_foreign_keys,
]


def validate_graph(graph: DiagramGraph, policy: Optional[ValidationPolicy] = None) -> ValidationReport:
    """
    Run every structural check against a graph without modifying it.

    Args:
        graph: Parsed graph
        policy: Strictness settings (defaults: synthesize missing keys)

    Returns:
        ValidationReport; ``passed`` is False when any error remains
    """
    policy = policy or ValidationPolicy()
    findings: List[Finding] = []
    for check in GRAPH_CHECKS:
        findings.extend(check(graph, policy))

    for f in findings:
        if f.code in policy.downgrade and f.is_error:
            f.severity = "warning"

    report = ValidationReport(findings=findings)
    if report.errors:
        logger.warning(f"Graph validation found {len(report.errors)} errors and {len(report.warnings)} warnings")
    else:
        logger.info(f"Graph validation passed with {len(report.warnings)} warnings")
    return report


def validate_plan(plan: DeploymentPlan) -> List[Finding]:
    """
    Checks that only make sense on generated objects.

    Every relationship must be non-owning, so no entity ends up with more
    than one parental relationship, and every external key must be unique
    within its category.
    """
    issues: List[Finding] = []
    parental: Dict[str, List[str]] = {}
    for rel in plan.relationships:
        if rel.is_parental:
            parental.setdefault(rel.referencing_entity, []).append(rel.schema_name)
    for entity, rels in parental.items():
        if len(rels) > 1:
            issues.append(
                _finding(
                    "MULTIPLE_PARENTAL",
                    "error",
                    entity,
                    f"{entity} has {len(rels)} parental relationships: {rels}",
                    relationships=rels,
                )
            )

    for category, keys in plan.object_keys().items():
        seen: Set[str] = set()
        for key in keys:
            if key in seen:
                issues.append(_finding("DUPLICATE_KEY", "error", key, f"{category} '{key}' is planned twice"))
            seen.add(key)

    if issues:
        logger.warning(f"Plan validation found {len(issues)} issues")
    else:
        logger.info("Plan validation passed")
    return issues
