"""One-to-many relationship service."""

from typing import Optional

from erd2dataverse.ir.plan import RelationshipPlan

from ..http import CallStats
from .base import BaseService, DeploymentContext, entity_id_from, odata_literal


class RelationshipService(BaseService):
    category = "relationship"

    async def find(self, obj: RelationshipPlan, ctx: DeploymentContext, stats: CallStats) -> Optional[str]:
        body = await self.http.get_json(
            f"RelationshipDefinitions(SchemaName={odata_literal(obj.schema_name)})",
            params={"$select": "MetadataId,SchemaName"},
            not_found_ok=True,
            stats=stats,
        )
        if body is None:
            return None
        return body.get("MetadataId") or ""

    async def create(self, obj: RelationshipPlan, ctx: DeploymentContext, stats: CallStats) -> Optional[str]:
        response = await self.http.post("RelationshipDefinitions", obj.payload, stats=stats)
        return entity_id_from(response)
