"""Schema generator: diagram graph to deployment plan."""

from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

from erd2dataverse.config.logging import get_logger
from erd2dataverse.errors import GenerationError
from erd2dataverse.ir.diagram import ChoiceSetDef, DiagramGraph, EntityDef, FieldDef, RelationshipDef
from erd2dataverse.ir.findings import Finding
from erd2dataverse.ir.plan import (
    AttributeKind,
    ChoiceSetPlan,
    ColumnPlan,
    DeploymentPlan,
    EntityKeyPlan,
    EntityPlan,
    PublisherPlan,
    RelationshipPlan,
    SolutionPlan,
)
from erd2dataverse.ir.validators import ValidationPolicy, validate_graph, validate_plan

from . import payloads
from .cdm import cdm_findings, detect_cdm_entities
from .choices import build_choice_set_plan, merge_choice_sets
from .junction import LoweredGraph, lower_many_to_many, resolve_reference
from .naming import (
    PRIMARY_NAME_FIELD,
    NamingConfig,
    default_lookup_name,
    humanize,
    pascal_case,
    relationship_schema_name,
    technical_name,
)
from .type_mapping import match_choice_set, resolve_kind

logger = get_logger(__name__)


def dedupe_relationships(graph: DiagramGraph) -> Tuple[DiagramGraph, List[Finding]]:
    """
    Drop relationship lines that repeat an earlier one.

    Two lines are duplicates when they join the same entities in the same
    direction with the same cardinality and label. The first occurrence is
    kept and each repeat becomes a warning. The input graph is not modified.
    """
    seen: Set[Tuple[str, str, str, str, Optional[str]]] = set()
    kept: List[RelationshipDef] = []
    findings: List[Finding] = []
    for rel in graph.relationships:
        key = (rel.source, rel.target, rel.cardinality, rel.label.strip().lower(), rel.lookup_field)
        if key in seen:
            where = f" (line {rel.line})" if rel.line else ""
            findings.append(
                Finding(
                    stage="generation",
                    code="DUPLICATE_RELATIONSHIP",
                    severity="warning",
                    location=f"{rel.source}->{rel.target}",
                    message=(
                        f"Relationship '{rel.label}' between {rel.source} and {rel.target} "
                        f"is declared more than once{where}; the repeat is ignored"
                    ),
                    details={"label": rel.label, "cardinality": rel.cardinality},
                )
            )
            continue
        seen.add(key)
        kept.append(rel)
    if not findings:
        return graph, findings
    logger.warning(f"Ignoring {len(findings)} duplicate relationship line(s)")
    return graph.model_copy(update={"relationships": kept}), findings


@dataclass
class _Lookup:
    """Where the lookup column of a one-to-many relationship comes from."""

    rel: RelationshipDef
    field_name: Optional[str]


class SchemaGenerator:
    """
    Builds a DeploymentPlan from a graph.

    Generation never raises for problems in the input: structural issues come
    back as validation findings, and an object whose name cannot be built is
    left out of the plan with a generation-stage error finding while its
    siblings are still generated.
    """

    def __init__(
        self,
        naming: Optional[NamingConfig] = None,
        policy: Optional[ValidationPolicy] = None,
        junction_max_descriptive_fields: int = 2,
        detect_standard_tables: bool = True,
    ):
        self.naming = naming or NamingConfig()
        self.policy = policy or ValidationPolicy()
        self.junction_max_descriptive_fields = junction_max_descriptive_fields
        self.detect_standard_tables = detect_standard_tables
        self.prefix = self.naming.publisher_prefix
        self.lang = self.naming.language_code

    def generate(self, graph: DiagramGraph, choice_sets: Optional[List[ChoiceSetDef]] = None) -> DeploymentPlan:
        """
        Generate the plan.

        Args:
            graph: Parsed graph (not modified)
            choice_sets: Side-document choice sets merged by name before generation

        Returns:
            DeploymentPlan carrying every finding produced on the way
        """
        self.findings: List[Finding] = []
        merged, merge_findings = merge_choice_sets(graph, choice_sets or [])
        self.findings.extend(merge_findings)
        merged, duplicate_findings = dedupe_relationships(merged)
        self.findings.extend(duplicate_findings)
        self.findings.extend(validate_graph(merged, self.policy).findings)
        if self.detect_standard_tables:
            self.findings.extend(cdm_findings(detect_cdm_entities(merged)))

        lowered = lower_many_to_many(merged, self.junction_max_descriptive_fields)
        self.findings.extend(lowered.findings)

        choice_plans, choice_by_source = self._choice_sets(lowered.graph)
        lookups = self._assign_lookups(lowered.graph)
        entity_plans, entity_by_name = self._entities(lowered.graph, lookups, choice_by_source)
        relationship_plans, legs = self._relationships(lowered.graph, lookups, entity_by_name)
        key_plans = self._junction_keys(lowered, entity_by_name, legs)

        publisher = self._publisher()
        plan = DeploymentPlan(
            publisher=publisher,
            solution=SolutionPlan(
                unique_name=self.naming.resolved_solution_unique_name,
                display_name=self.naming.solution_name,
                publisher_key=publisher.key,
                payload=payloads.solution_payload(
                    self.naming.resolved_solution_unique_name, self.naming.solution_name
                ),
            ),
            choice_sets=choice_plans,
            entities=entity_plans,
            relationships=relationship_plans,
            entity_keys=key_plans,
            language_code=self.lang,
        )
        self.findings.extend(validate_plan(plan))
        plan.findings = self.findings
        logger.info(
            f"Generated plan: {len(entity_plans)} entities, {len(plan.columns)} columns, "
            f"{len(relationship_plans)} relationships, {len(choice_plans)} choice sets, {len(key_plans)} keys"
        )
        return plan

    # helpers

    def _error(self, exc: GenerationError, **details) -> None:
        logger.error(f"Generation failed for {exc.location}: {exc}")
        self.findings.append(
            Finding(
                stage="generation",
                code=exc.code,
                severity="error",
                location=exc.location,
                message=str(exc),
                details=details,
            )
        )

    def _publisher(self) -> PublisherPlan:
        unique_name = self.naming.resolved_publisher_unique_name
        payload = payloads.publisher_payload(unique_name, self.naming.publisher_name, self.prefix)
        return PublisherPlan(
            unique_name=unique_name,
            display_name=self.naming.publisher_name,
            prefix=self.prefix,
            option_value_prefix=payload["customizationoptionvalueprefix"],
            payload=payload,
        )

    def _choice_sets(self, graph: DiagramGraph) -> Tuple[List[ChoiceSetPlan], Dict[str, Optional[str]]]:
        """Plans plus a map of source name to plan key (None when generation failed)."""
        plans: List[ChoiceSetPlan] = []
        by_source: Dict[str, Optional[str]] = {}
        used: Set[str] = set()
        for choice_set in graph.choice_sets:
            try:
                plan = build_choice_set_plan(choice_set, self.prefix, self.lang)
                if plan.name in used:
                    raise GenerationError(
                        f"technical name '{plan.name}' is already used by another choice set",
                        location=choice_set.name,
                        code="NAME_COLLISION",
                    )
            except GenerationError as exc:
                self._error(exc, category="choice_set")
                by_source[choice_set.name] = None
                continue
            used.add(plan.name)
            plans.append(plan)
            by_source[choice_set.name] = plan.name
        return plans, by_source

    def _assign_lookups(self, graph: DiagramGraph) -> List[_Lookup]:
        """Decide which FK field, if any, backs each relationship's lookup."""
        names = graph.entity_names
        consumed: Set[Tuple[str, str]] = set()
        lookups: List[_Lookup] = []
        for rel in graph.relationships:
            target = graph.entity(rel.target)
            chosen = rel.lookup_field
            if chosen is None and target is not None:
                fks = [f for f in target.foreign_keys if (rel.target, f.name) not in consumed]
                chosen = next((f.name for f in fks if resolve_reference(f.name, names) == rel.source), None)
                if chosen is None and rel.is_self_reference:
                    chosen = next((f.name for f in fks if resolve_reference(f.name, names) is None), None)
            if chosen is not None:
                consumed.add((rel.target, chosen))
            lookups.append(_Lookup(rel=rel, field_name=chosen))
        return lookups

    def _primary_name(self, entity: EntityDef) -> Tuple[str, Dict, bool]:
        pks = entity.primary_keys
        name_field = entity.field(PRIMARY_NAME_FIELD)
        if pks:
            display = humanize(pks[0].name)
        elif name_field is not None:
            display = humanize(name_field.name)
        else:
            display = "Name"
        schema = technical_name(self.prefix, PRIMARY_NAME_FIELD)
        return schema, payloads.primary_name_payload(schema, display, self.lang), not pks

    def _entities(
        self,
        graph: DiagramGraph,
        lookups: List[_Lookup],
        choice_by_source: Dict[str, Optional[str]],
    ) -> Tuple[List[EntityPlan], Dict[str, EntityPlan]]:
        consumed = {(lk.rel.target, lk.field_name) for lk in lookups if lk.field_name}
        plans: List[EntityPlan] = []
        by_name: Dict[str, EntityPlan] = {}
        used: Set[str] = set()

        for entity in graph.entities:
            try:
                schema = technical_name(self.prefix, entity.name)
                if schema.lower() in used:
                    raise GenerationError(
                        f"technical name '{schema.lower()}' is already used by another entity",
                        location=entity.name,
                        code="NAME_COLLISION",
                    )
            except GenerationError as exc:
                self._error(exc, category="entity")
                continue
            used.add(schema.lower())

            primary_schema, primary_payload, synthesized_key = self._primary_name(entity)
            description = f"Generated from ER diagram entity {entity.name}"
            plan = EntityPlan(
                logical_name=schema.lower(),
                schema_name=schema,
                display_name=entity.display_name,
                source_name=entity.name,
                primary_name_attribute=primary_schema.lower(),
                synthesized=entity.synthesized,
                synthesized_key=synthesized_key,
                payload=payloads.entity_payload(schema, entity.display_name, description, primary_payload, self.lang),
            )

            # The platform adds the primary id column {logical}id itself
            taken = {plan.primary_name_attribute, f"{plan.logical_name}id"}
            for f in entity.fields:
                if f.is_primary_key or f.name.lower() == PRIMARY_NAME_FIELD or (entity.name, f.name) in consumed:
                    continue
                column = self._column(plan, f, taken, choice_by_source)
                if column is not None:
                    taken.add(column.logical_name)
                    plan.columns.append(column)

            plans.append(plan)
            by_name[entity.name] = plan
        return plans, by_name

    def _column(
        self,
        entity: EntityPlan,
        f: FieldDef,
        taken: Set[str],
        choice_by_source: Dict[str, Optional[str]],
    ) -> Optional[ColumnPlan]:
        location = f"{entity.source_name}.{f.name}"
        try:
            schema = technical_name(self.prefix, f.name)
            if schema.lower() in taken:
                raise GenerationError(
                    f"technical name '{schema.lower()}' is already used in {entity.source_name}",
                    location=location,
                    code="NAME_COLLISION",
                )
            kind = resolve_kind(f, choice_by_source.keys())
            choice_key = None
            if kind == AttributeKind.CHOICE:
                source = match_choice_set(f.type_name, choice_by_source.keys())
                choice_key = choice_by_source.get(source)
                if choice_key is None:
                    raise GenerationError(
                        f"choice set '{source}' could not be generated",
                        location=location,
                        code="CHOICE_SET_UNAVAILABLE",
                    )
        except GenerationError as exc:
            self._error(exc, category="column")
            return None

        display = humanize(f.name)
        return ColumnPlan(
            entity_key=entity.logical_name,
            logical_name=schema.lower(),
            schema_name=schema,
            source_name=f.name,
            kind=kind,
            required=f.is_required,
            choice_set_key=choice_key,
            payload=payloads.attribute_payload(
                kind,
                schema,
                display,
                description=f.description,
                required=f.is_required,
                language_code=self.lang,
                choice_set=choice_key,
            ),
        )

    def _relationships(
        self,
        graph: DiagramGraph,
        lookups: List[_Lookup],
        entity_by_name: Dict[str, EntityPlan],
    ) -> Tuple[List[RelationshipPlan], Dict[Tuple[str, str], List[str]]]:
        plans: List[RelationshipPlan] = []
        used_schema: Set[str] = set()
        columns_by_entity: Dict[str, Set[str]] = {
            p.logical_name: {c.logical_name for c in p.columns} | {p.primary_name_attribute, f"{p.logical_name}id"}
            for p in entity_by_name.values()
        }
        legs: Dict[Tuple[str, str], List[str]] = {}

        for lk in lookups:
            rel = lk.rel
            location = f"{rel.source}->{rel.target}"
            referenced = entity_by_name.get(rel.source)
            referencing = entity_by_name.get(rel.target)
            try:
                if referenced is None or referencing is None:
                    missing = rel.source if referenced is None else rel.target
                    raise GenerationError(
                        f"endpoint '{missing}' is not part of the plan",
                        location=location,
                        code="DEPENDENCY_NOT_GENERATED",
                    )
                schema = relationship_schema_name(self.prefix, rel.source, rel.target)
                if schema in used_schema:
                    schema = relationship_schema_name(self.prefix, rel.source, rel.target, rel.label)
                if schema in used_schema and lk.field_name:
                    schema = relationship_schema_name(self.prefix, rel.source, rel.target, lk.field_name)
                if schema in used_schema:
                    raise GenerationError(
                        f"relationship name '{schema}' is already used",
                        location=location,
                        code="NAME_COLLISION",
                    )

                if lk.field_name:
                    lookup_schema = technical_name(self.prefix, lk.field_name)
                else:
                    lookup_schema = default_lookup_name(self.prefix, rel.source, rel.target)
                entity_columns = columns_by_entity[referencing.logical_name]
                if lookup_schema.lower() in entity_columns:
                    base = lookup_schema[: -len("Id")] if lookup_schema.endswith("Id") else lookup_schema
                    lookup_schema = f"{base}{pascal_case(rel.label)}Id"
                if lookup_schema.lower() in entity_columns:
                    raise GenerationError(
                        f"lookup column '{lookup_schema.lower()}' is already used in {rel.target}",
                        location=location,
                        code="NAME_COLLISION",
                    )
            except GenerationError as exc:
                self._error(exc, category="relationship")
                continue

            used_schema.add(schema)
            entity_columns.add(lookup_schema.lower())
            legs.setdefault((rel.source, rel.target), []).append(lookup_schema.lower())
            lookup_display = humanize(lk.field_name) if lk.field_name else referenced.display_name
            plans.append(
                RelationshipPlan(
                    schema_name=schema,
                    referenced_entity=referenced.logical_name,
                    referencing_entity=referencing.logical_name,
                    lookup_logical_name=lookup_schema.lower(),
                    lookup_schema_name=lookup_schema,
                    label=rel.label,
                    cascade=dict(payloads.REFERENTIAL_CASCADE),
                    junction_side=referencing.synthesized,
                    payload=payloads.relationship_payload(
                        schema,
                        referenced.logical_name,
                        referencing.logical_name,
                        lookup_schema,
                        lookup_display,
                        self.lang,
                    ),
                )
            )
        return plans, legs

    def _junction_keys(
        self,
        lowered: LoweredGraph,
        entity_by_name: Dict[str, EntityPlan],
        legs: Dict[Tuple[str, str], List[str]],
    ) -> List[EntityKeyPlan]:
        """Alternate key across the two lookups of each junction entity."""
        plans: List[EntityKeyPlan] = []
        keyed: Set[str] = set()
        for junction in lowered.junctions:
            entity = entity_by_name.get(junction.entity)
            if entity is None:
                continue
            attributes: List[str] = []
            for side in (junction.left, junction.right):
                for lookup in legs.get((side, junction.entity), []):
                    if lookup not in attributes:
                        attributes.append(lookup)
                        break
            entity.is_junction = True
            if len(attributes) != 2 or entity.logical_name in keyed:
                continue
            keyed.add(entity.logical_name)
            schema = f"{entity.schema_name}_AlternateKey"
            plans.append(
                EntityKeyPlan(
                    entity_key=entity.logical_name,
                    logical_name=schema.lower(),
                    schema_name=schema,
                    key_attributes=attributes,
                    payload=payloads.entity_key_payload(
                        schema, f"{entity.display_name} Key", attributes, self.lang
                    ),
                )
            )
        return plans


def generate_plan(
    graph: DiagramGraph,
    choice_sets: Optional[List[ChoiceSetDef]] = None,
    naming: Optional[NamingConfig] = None,
    policy: Optional[ValidationPolicy] = None,
    junction_max_descriptive_fields: int = 2,
    detect_standard_tables: bool = True,
) -> DeploymentPlan:
    """Convenience wrapper around SchemaGenerator.generate."""
    generator = SchemaGenerator(naming, policy, junction_max_descriptive_fields, detect_standard_tables)
    return generator.generate(graph, choice_sets)
