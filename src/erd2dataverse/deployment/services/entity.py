"""Table, column and alternate key services."""

from typing import Optional

from erd2dataverse.ir.plan import ColumnPlan, EntityKeyPlan, EntityPlan

from ..http import CallStats
from .base import BaseService, DeploymentContext, entity_id_from, odata_literal


def entity_path(logical_name: str) -> str:
    return f"EntityDefinitions(LogicalName={odata_literal(logical_name)})"


class EntityService(BaseService):
    category = "entity"

    async def find(self, obj: EntityPlan, ctx: DeploymentContext, stats: CallStats) -> Optional[str]:
        body = await self.http.get_json(
            entity_path(obj.logical_name),
            params={"$select": "MetadataId,LogicalName"},
            not_found_ok=True,
            stats=stats,
        )
        if body is None:
            return None
        return body.get("MetadataId") or ""

    async def create(self, obj: EntityPlan, ctx: DeploymentContext, stats: CallStats) -> Optional[str]:
        response = await self.http.post("EntityDefinitions", obj.payload, stats=stats)
        return entity_id_from(response)


class ColumnService(BaseService):
    category = "column"

    async def find(self, obj: ColumnPlan, ctx: DeploymentContext, stats: CallStats) -> Optional[str]:
        body = await self.http.get_json(
            f"{entity_path(obj.entity_key)}/Attributes(LogicalName={odata_literal(obj.logical_name)})",
            params={"$select": "MetadataId,LogicalName"},
            not_found_ok=True,
            stats=stats,
        )
        if body is None:
            return None
        return body.get("MetadataId") or ""

    async def create(self, obj: ColumnPlan, ctx: DeploymentContext, stats: CallStats) -> Optional[str]:
        response = await self.http.post(f"{entity_path(obj.entity_key)}/Attributes", obj.payload, stats=stats)
        return entity_id_from(response)


class EntityKeyService(BaseService):
    category = "entity_key"

    async def find(self, obj: EntityKeyPlan, ctx: DeploymentContext, stats: CallStats) -> Optional[str]:
        body = await self.http.get_json(
            f"{entity_path(obj.entity_key)}/Keys(LogicalName={odata_literal(obj.logical_name)})",
            params={"$select": "MetadataId,LogicalName"},
            not_found_ok=True,
            stats=stats,
        )
        if body is None:
            return None
        return body.get("MetadataId") or ""

    async def create(self, obj: EntityKeyPlan, ctx: DeploymentContext, stats: CallStats) -> Optional[str]:
        response = await self.http.post(f"{entity_path(obj.entity_key)}/Keys", obj.payload, stats=stats)
        return entity_id_from(response)
