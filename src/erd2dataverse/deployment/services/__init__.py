"""Remote object services, one per kind of platform object."""

from dataclasses import dataclass

from ..http import DataverseHttp
from .base import DeploymentContext, RemoteObjectService, dependency_failed, ensure
from .choice_set import ChoiceSetService
from .entity import ColumnService, EntityKeyService, EntityService
from .publisher import PublisherService
from .relationship import RelationshipService
from .solution import COMPONENT_TYPES, SolutionComponent, SolutionComponentService, SolutionService


@dataclass
class Services:
    """One instance of each service, all sharing the same HTTP caller."""

    publisher: PublisherService
    solution: SolutionService
    choice_set: ChoiceSetService
    entity: EntityService
    column: ColumnService
    relationship: RelationshipService
    entity_key: EntityKeyService
    solution_component: SolutionComponentService

    @classmethod
    def create(cls, http: DataverseHttp) -> "Services":
        return cls(
            publisher=PublisherService(http),
            solution=SolutionService(http),
            choice_set=ChoiceSetService(http),
            entity=EntityService(http),
            column=ColumnService(http),
            relationship=RelationshipService(http),
            entity_key=EntityKeyService(http),
            solution_component=SolutionComponentService(http),
        )


__all__ = [
    "COMPONENT_TYPES",
    "ChoiceSetService",
    "ColumnService",
    "DeploymentContext",
    "EntityKeyService",
    "EntityService",
    "PublisherService",
    "RelationshipService",
    "RemoteObjectService",
    "Services",
    "SolutionComponent",
    "SolutionComponentService",
    "SolutionService",
    "dependency_failed",
    "ensure",
]
