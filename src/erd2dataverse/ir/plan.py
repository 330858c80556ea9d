"""Deployment plan: the ordered metadata objects to create on the platform."""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field

from .findings import Finding


class AttributeKind(str, Enum):
    """Platform column kinds the generator can emit."""

    STRING = "string"
    MEMO = "memo"
    EMAIL = "email"
    PHONE = "phone"
    URL = "url"
    TICKER = "ticker"
    INTEGER = "integer"
    DECIMAL = "decimal"
    FLOAT = "float"
    BOOLEAN = "boolean"
    DATE_ONLY = "date_only"
    DATETIME = "datetime"
    MONEY = "money"
    AUTONUMBER = "autonumber"
    FILE = "file"
    IMAGE = "image"
    CHOICE = "choice"


Category = Literal[
    "publisher",
    "solution",
    "choice_set",
    "entity",
    "column",
    "relationship",
    "entity_key",
    "solution_component",
]

# Dispatch order of categories; solution components are added last
CATEGORY_ORDER: List[str] = [
    "publisher",
    "solution",
    "choice_set",
    "entity",
    "column",
    "relationship",
    "entity_key",
    "solution_component",
]


class PublisherPlan(BaseModel):
    unique_name: str
    display_name: str
    prefix: str
    option_value_prefix: int
    payload: Dict[str, Any]

    @property
    def key(self) -> str:
        return self.unique_name


class SolutionPlan(BaseModel):
    unique_name: str
    display_name: str
    publisher_key: str
    payload: Dict[str, Any]  # publisher binding is added at deploy time

    @property
    def key(self) -> str:
        return self.unique_name


class ChoiceSetPlan(BaseModel):
    name: str  # logical name of the global choice set
    source_name: str  # name used in the side document and diagram types
    option_values: List[int] = Field(default_factory=list)
    payload: Dict[str, Any]

    @property
    def key(self) -> str:
        return self.name


class ColumnPlan(BaseModel):
    entity_key: str
    logical_name: str
    schema_name: str
    source_name: str
    kind: AttributeKind
    required: bool = False
    choice_set_key: Optional[str] = None
    payload: Dict[str, Any]

    @property
    def key(self) -> str:
        return f"{self.entity_key}.{self.logical_name}"


class EntityPlan(BaseModel):
    logical_name: str
    schema_name: str
    display_name: str
    source_name: str
    primary_name_attribute: str
    columns: List[ColumnPlan] = Field(default_factory=list)
    is_junction: bool = False
    synthesized: bool = False  # the entity itself was created by junction lowering
    synthesized_key: bool = False  # no primary key was declared
    payload: Dict[str, Any]

    @property
    def key(self) -> str:
        return self.logical_name


CascadeBehavior = Literal["Cascade", "Active", "NoCascade", "UserOwned", "RemoveLink", "Restrict"]


class RelationshipPlan(BaseModel):
    """A one-to-many referential relationship with its lookup column."""

    schema_name: str
    referenced_entity: str
    referencing_entity: str
    lookup_logical_name: str
    lookup_schema_name: str
    label: str
    behavior: Literal["Referential", "Parental"] = "Referential"
    cascade: Dict[str, CascadeBehavior] = Field(default_factory=dict)
    junction_side: bool = False
    payload: Dict[str, Any]

    @property
    def key(self) -> str:
        return self.schema_name

    @property
    def cardinality(self) -> str:
        return "one_to_many"

    @property
    def is_parental(self) -> bool:
        """True when deleting the parent would cascade-delete its children."""
        return self.behavior == "Parental" or self.cascade.get("Delete") == "Cascade"


class EntityKeyPlan(BaseModel):
    """Alternate key across the lookup columns of a junction entity."""

    entity_key: str
    logical_name: str
    schema_name: str
    key_attributes: List[str]
    payload: Dict[str, Any]

    @property
    def key(self) -> str:
        return f"{self.entity_key}.{self.logical_name}"


class DeploymentPlan(BaseModel):
    """Everything the orchestrator needs, plus the findings gathered on the way."""

    publisher: PublisherPlan
    solution: SolutionPlan
    choice_sets: List[ChoiceSetPlan] = Field(default_factory=list)
    entities: List[EntityPlan] = Field(default_factory=list)
    relationships: List[RelationshipPlan] = Field(default_factory=list)
    entity_keys: List[EntityKeyPlan] = Field(default_factory=list)
    findings: List[Finding] = Field(default_factory=list)
    language_code: int = 1033

    @property
    def blocked(self) -> bool:
        """A plan is not deployable while validation reported errors."""
        return any(f.is_error and f.stage != "generation" for f in self.findings)

    @property
    def columns(self) -> List[ColumnPlan]:
        return [c for e in self.entities for c in e.columns]

    def entity(self, key: str) -> Optional[EntityPlan]:
        for e in self.entities:
            if e.logical_name == key:
                return e
        return None

    def choice_set(self, key: str) -> Optional[ChoiceSetPlan]:
        for c in self.choice_sets:
            if c.name == key:
                return c
        return None

    def object_keys(self) -> Dict[str, List[str]]:
        """Deterministic external keys per category, in dispatch order."""
        return {
            "publisher": [self.publisher.key],
            "solution": [self.solution.key],
            "choice_set": [c.key for c in self.choice_sets],
            "entity": [e.key for e in self.entities],
            "column": [c.key for c in self.columns],
            "relationship": [r.key for r in self.relationships],
            "entity_key": [k.key for k in self.entity_keys],
        }

    def summary(self) -> Dict[str, int]:
        return {category: len(keys) for category, keys in self.object_keys().items()}
