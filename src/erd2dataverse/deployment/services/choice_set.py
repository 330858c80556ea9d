"""Global choice set service."""

from typing import Optional

from erd2dataverse.ir.plan import ChoiceSetPlan

from ..http import CallStats
from .base import BaseService, DeploymentContext, entity_id_from, odata_literal


class ChoiceSetService(BaseService):
    category = "choice_set"

    async def find(self, obj: ChoiceSetPlan, ctx: DeploymentContext, stats: CallStats) -> Optional[str]:
        body = await self.http.get_json(
            f"GlobalOptionSetDefinitions(Name={odata_literal(obj.name)})",
            params={"$select": "MetadataId,Name"},
            not_found_ok=True,
            stats=stats,
        )
        if body is None:
            return None
        return body.get("MetadataId") or ""

    async def create(self, obj: ChoiceSetPlan, ctx: DeploymentContext, stats: CallStats) -> Optional[str]:
        response = await self.http.post("GlobalOptionSetDefinitions", obj.payload, stats=stats)
        return entity_id_from(response)
