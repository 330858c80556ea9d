"""Diagram graph model: entities, fields, relationships and choice sets."""

from enum import Enum
from typing import Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator


class SemanticType(str, Enum):
    """Semantic field type resolved from the raw type written in the diagram."""

    STRING = "string"
    TEXT = "text"
    INTEGER = "integer"
    DECIMAL = "decimal"
    FLOAT = "float"
    BOOLEAN = "boolean"
    DATETIME = "datetime"
    DATE = "date"
    MONEY = "money"
    GUID = "guid"
    EMAIL = "email"
    PHONE = "phone"
    URL = "url"
    AUTONUMBER = "autonumber"
    FILE = "file"
    IMAGE = "image"
    UNKNOWN = "unknown"


# Raw diagram type (lower-cased, parameters stripped) -> semantic type
RAW_TYPE_ALIASES: Dict[str, SemanticType] = {
    "string": SemanticType.STRING,
    "str": SemanticType.STRING,
    "varchar": SemanticType.STRING,
    "nvarchar": SemanticType.STRING,
    "char": SemanticType.STRING,
    "text": SemanticType.TEXT,
    "memo": SemanticType.TEXT,
    "longtext": SemanticType.TEXT,
    "int": SemanticType.INTEGER,
    "integer": SemanticType.INTEGER,
    "smallint": SemanticType.INTEGER,
    "bigint": SemanticType.INTEGER,
    "long": SemanticType.INTEGER,
    "decimal": SemanticType.DECIMAL,
    "numeric": SemanticType.DECIMAL,
    "number": SemanticType.DECIMAL,
    "float": SemanticType.FLOAT,
    "double": SemanticType.FLOAT,
    "real": SemanticType.FLOAT,
    "bool": SemanticType.BOOLEAN,
    "boolean": SemanticType.BOOLEAN,
    "bit": SemanticType.BOOLEAN,
    "datetime": SemanticType.DATETIME,
    "timestamp": SemanticType.DATETIME,
    "date": SemanticType.DATE,
    "dateonly": SemanticType.DATE,
    "money": SemanticType.MONEY,
    "currency": SemanticType.MONEY,
    "guid": SemanticType.GUID,
    "uuid": SemanticType.GUID,
    "uniqueidentifier": SemanticType.GUID,
    "email": SemanticType.EMAIL,
    "phone": SemanticType.PHONE,
    "url": SemanticType.URL,
    "autonumber": SemanticType.AUTONUMBER,
    "file": SemanticType.FILE,
    "image": SemanticType.IMAGE,
}


def resolve_semantic_type(raw_type: str) -> SemanticType:
    """Resolve a raw diagram type such as ``varchar(255)`` to its semantic type."""
    base = raw_type.split("(", 1)[0].rstrip("[]").strip().lower()
    return RAW_TYPE_ALIASES.get(base, SemanticType.UNKNOWN)


class Constraint(str, Enum):
    """Key and nullability constraints on a field."""

    PRIMARY_KEY = "PK"
    FOREIGN_KEY = "FK"
    UNIQUE = "UK"
    NOT_NULL = "NOT NULL"


class FieldDef(BaseModel):
    """A typed attribute of an entity."""

    name: str
    type_name: str  # raw type exactly as written in the diagram
    constraints: List[Constraint] = Field(default_factory=list)
    description: Optional[str] = None
    line: Optional[int] = None

    @property
    def semantic_type(self) -> SemanticType:
        return resolve_semantic_type(self.type_name)

    @property
    def is_primary_key(self) -> bool:
        return Constraint.PRIMARY_KEY in self.constraints

    @property
    def is_foreign_key(self) -> bool:
        return Constraint.FOREIGN_KEY in self.constraints

    @property
    def is_unique(self) -> bool:
        return Constraint.UNIQUE in self.constraints

    @property
    def is_required(self) -> bool:
        return Constraint.NOT_NULL in self.constraints or self.is_primary_key


class EntityDef(BaseModel):
    """An entity block of the diagram."""

    name: str
    display_name: str
    fields: List[FieldDef] = Field(default_factory=list)
    is_junction_candidate: bool = False
    implicit: bool = False  # only referenced by relationships, never declared
    synthesized: bool = False  # created by junction lowering
    line: Optional[int] = None

    @property
    def primary_keys(self) -> List[FieldDef]:
        return [f for f in self.fields if f.is_primary_key]

    @property
    def foreign_keys(self) -> List[FieldDef]:
        return [f for f in self.fields if f.is_foreign_key]

    def field(self, name: str) -> Optional[FieldDef]:
        for f in self.fields:
            if f.name == name:
                return f
        return None


Cardinality = Literal["one_to_many", "many_to_many"]


class RelationshipDef(BaseModel):
    """
    A relationship line of the diagram.

    For one-to-many relationships ``source`` is the "one" side (the referenced
    entity) and ``target`` is the "many" side that will hold the lookup column.
    """

    source: str
    target: str
    cardinality: Cardinality = "one_to_many"
    label: str
    token: Optional[str] = None  # cardinality notation as written
    lookup_field: Optional[str] = None  # field on target holding the reference, when known
    line: Optional[int] = None

    @property
    def is_self_reference(self) -> bool:
        return self.source == self.target


CHOICE_VALUE_BASE = 100_000_000


class ChoiceOptionDef(BaseModel):
    """One option of a choice set."""

    value: Optional[int] = None
    label: str
    description: Optional[str] = None


class ChoiceSetDef(BaseModel):
    """A global choice set supplied by the side document."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    display_name: Optional[str] = Field(default=None, alias="displayName")
    description: Optional[str] = None
    options: List[ChoiceOptionDef] = Field(default_factory=list)

    @model_validator(mode="after")
    def assign_missing_values(self) -> "ChoiceSetDef":
        """Give options without a value the next free sequential value."""
        taken = {o.value for o in self.options if o.value is not None}
        next_value = CHOICE_VALUE_BASE
        for option in self.options:
            if option.value is not None:
                continue
            while next_value in taken:
                next_value += 1
            option.value = next_value
            taken.add(next_value)
            next_value += 1
        if self.display_name is None:
            self.display_name = self.name
        return self


class DiagramGraph(BaseModel):
    """Parsed entity/relationship graph, optionally merged with choice sets."""

    entities: List[EntityDef] = Field(default_factory=list)
    relationships: List[RelationshipDef] = Field(default_factory=list)
    choice_sets: List[ChoiceSetDef] = Field(default_factory=list)

    def entity(self, name: str) -> Optional[EntityDef]:
        for e in self.entities:
            if e.name == name:
                return e
        return None

    @property
    def entity_names(self) -> List[str]:
        return [e.name for e in self.entities]

    def relationships_of(self, entity_name: str) -> List[RelationshipDef]:
        """All relationships in which the entity takes part."""
        return [
            r for r in self.relationships
            if r.source == entity_name or r.target == entity_name
        ]

    def choice_set(self, name: str) -> Optional[ChoiceSetDef]:
        for c in self.choice_sets:
            if c.name == name:
                return c
        return None
