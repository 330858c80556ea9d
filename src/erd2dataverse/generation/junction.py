"""Foreign-key resolution and many-to-many lowering onto junction entities."""

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from erd2dataverse.config.logging import get_logger
from erd2dataverse.ir.diagram import Constraint, DiagramGraph, EntityDef, FieldDef, RelationshipDef
from erd2dataverse.ir.findings import Finding

from .naming import humanize, pascal_case

logger = get_logger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9]")
_SUFFIXES = ("id", "fk", "key", "ref")
_PREFIXES = ("fk", "id")


def _norm(text: str) -> str:
    return _NON_ALNUM.sub("", text.lower())


def resolve_reference(field_name: str, entity_names: Iterable[str]) -> Optional[str]:
    """
    Guess which entity a foreign-key field points at from its name.

    ``customer_id``, ``customerId``, ``CustomerID``, ``fk_customer`` and plain
    ``customer`` all resolve to an entity named ``Customer``.
    """
    by_norm = {_norm(name): name for name in entity_names}
    base = _norm(field_name)
    candidates = [base]
    for suffix in _SUFFIXES:
        if base.endswith(suffix) and len(base) > len(suffix):
            candidates.append(base[: -len(suffix)])
    for prefix in _PREFIXES:
        if base.startswith(prefix) and len(base) > len(prefix):
            candidates.append(base[len(prefix):])
    for candidate in candidates:
        if candidate in by_norm:
            return by_norm[candidate]
    return None


def foreign_key_targets(entity: EntityDef, entity_names: Iterable[str]) -> Dict[str, str]:
    """Map each resolvable FK field of an entity to the entity it references."""
    names = [n for n in entity_names]
    targets = {}
    for f in entity.foreign_keys:
        target = resolve_reference(f.name, names)
        if target is not None:
            targets[f.name] = target
    return targets


def descriptive_fields(entity: EntityDef) -> List[FieldDef]:
    """Fields that are neither primary nor foreign keys."""
    return [f for f in entity.fields if not f.is_primary_key and not f.is_foreign_key]


@dataclass
class JunctionCandidate:
    entity: str
    references: Set[str]
    is_junction: bool  # False when too many business fields make it ambiguous


@dataclass
class Junction:
    """A junction entity standing in for one many-to-many relationship."""

    entity: str
    left: str
    right: str
    left_field: str
    right_field: str
    synthesized: bool


@dataclass
class LoweredGraph:
    graph: DiagramGraph
    junctions: List[Junction] = field(default_factory=list)
    findings: List[Finding] = field(default_factory=list)


def find_junction_candidates(graph: DiagramGraph, max_descriptive_fields: int = 2) -> List[JunctionCandidate]:
    """
    Entities whose foreign keys reference two or more distinct other entities.

    A candidate with more than ``max_descriptive_fields`` non-key fields is
    reported as ambiguous (``is_junction`` False).
    """
    candidates = []
    names = graph.entity_names
    for entity in graph.entities:
        others = set(foreign_key_targets(entity, names).values()) - {entity.name}
        if len(others) < 2:
            continue
        candidates.append(
            JunctionCandidate(
                entity=entity.name,
                references=others,
                is_junction=len(descriptive_fields(entity)) <= max_descriptive_fields,
            )
        )
    return candidates


def _fk_field_for(entity: EntityDef, target: str, names: List[str], exclude: Optional[str] = None) -> Optional[str]:
    for f in entity.foreign_keys:
        if f.name != exclude and resolve_reference(f.name, names) == target:
            return f.name
    return None


def _junction_name(taken: Set[str], rel: RelationshipDef) -> str:
    base = f"{pascal_case(rel.source)}{pascal_case(rel.target)}"
    if base in taken:
        base = f"{base}{pascal_case(rel.label)}"
    name, n = base, 2
    while name in taken:
        name = f"{base}{n}"
        n += 1
    return name


def _synthesize(graph: DiagramGraph, name: str, rel: RelationshipDef) -> Tuple[EntityDef, str, str]:
    left_field = f"{rel.source}_id"
    right_field = f"{rel.target}_id"
    if rel.is_self_reference:
        right_field = f"related_{rel.target}_id"
    source = graph.entity(rel.source)
    target = graph.entity(rel.target)
    display = f"{source.display_name if source else humanize(rel.source)} {target.display_name if target else humanize(rel.target)}"
    entity = EntityDef(
        name=name,
        display_name=display,
        fields=[
            FieldDef(name=left_field, type_name="guid", constraints=[Constraint.FOREIGN_KEY]),
            FieldDef(name=right_field, type_name="guid", constraints=[Constraint.FOREIGN_KEY]),
        ],
        is_junction_candidate=True,
        synthesized=True,
        line=rel.line,
    )
    return entity, left_field, right_field


def lower_many_to_many(graph: DiagramGraph, max_descriptive_fields: int = 2) -> LoweredGraph:
    """
    Rewrite every many-to-many relationship as two one-to-many relationships.

    A many-to-many between A and B goes through an existing junction entity
    with foreign keys to both when there is exactly one; otherwise a junction
    named ``AB`` is synthesized. Ambiguous candidates are left as ordinary
    entities and reported as warnings. The input graph is not modified.

    Args:
        graph: Parsed graph
        max_descriptive_fields: Non-key fields a detected junction may carry

    Returns:
        LoweredGraph with only one-to-many relationships
    """
    entities = [e.model_copy(deep=True) for e in graph.entities]
    work = DiagramGraph(entities=entities, relationships=[], choice_sets=list(graph.choice_sets))
    candidates = find_junction_candidates(graph, max_descriptive_fields)
    result = LoweredGraph(graph=work)
    taken = set(graph.entity_names)
    pairs = {(r.source, r.target) for r in graph.relationships if r.cardinality == "one_to_many"}
    warned: Set[str] = set()

    for rel in graph.relationships:
        if rel.cardinality != "many_to_many":
            work.relationships.append(rel.model_copy())
            continue

        wanted = {rel.source, rel.target}
        matches = [c for c in candidates if wanted <= c.references]
        usable = [c for c in matches if c.is_junction]
        for c in matches:
            if not c.is_junction and c.entity not in warned:
                warned.add(c.entity)
                result.findings.append(
                    Finding(
                        stage="generation",
                        code="AMBIGUOUS_JUNCTION",
                        severity="warning",
                        location=c.entity,
                        message=(
                            f"{c.entity} references {', '.join(sorted(c.references))} but carries "
                            f"more than {max_descriptive_fields} business fields; kept as a regular entity"
                        ),
                        details={"references": sorted(c.references)},
                    )
                )

        junction: Optional[Junction] = None
        if len(usable) == 1 and not rel.is_self_reference:
            j = work.entity(usable[0].entity)
            j.is_junction_candidate = True
            left_field = _fk_field_for(j, rel.source, work.entity_names)
            right_field = _fk_field_for(j, rel.target, work.entity_names, exclude=left_field)
            junction = Junction(j.name, rel.source, rel.target, left_field, right_field, synthesized=False)
            logger.info(f"Using {j.name} as junction for {rel.source} <-> {rel.target}")
        else:
            if len(usable) > 1:
                result.findings.append(
                    Finding(
                        stage="generation",
                        code="AMBIGUOUS_JUNCTION",
                        severity="warning",
                        location=f"{rel.source}.{rel.target}",
                        message=(
                            f"several junction candidates ({', '.join(c.entity for c in usable)}) link "
                            f"{rel.source} and {rel.target}; a dedicated junction was synthesized"
                        ),
                    )
                )
            name = _junction_name(taken, rel)
            taken.add(name)
            entity, left_field, right_field = _synthesize(work, name, rel)
            work.entities.append(entity)
            junction = Junction(name, rel.source, rel.target, left_field, right_field, synthesized=True)
            logger.info(f"Synthesized junction {name} for {rel.source} <-> {rel.target}")

        result.junctions.append(junction)
        for side, lookup in ((junction.left, junction.left_field), (junction.right, junction.right_field)):
            if (side, junction.entity) in pairs and not junction.synthesized:
                # The diagram already draws this leg explicitly
                continue
            pairs.add((side, junction.entity))
            work.relationships.append(
                RelationshipDef(
                    source=side,
                    target=junction.entity,
                    cardinality="one_to_many",
                    label=rel.label,
                    token=rel.token,
                    lookup_field=lookup,
                    line=rel.line,
                )
            )
    return result
