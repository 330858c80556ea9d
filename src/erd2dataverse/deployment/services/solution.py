"""Solution ensure-or-create and solution component membership."""

from dataclasses import dataclass
from typing import Optional

from erd2dataverse.ir.plan import SolutionPlan

from ..http import CallStats, decode_json
from .base import BaseService, DeploymentContext, entity_id_from, odata_literal

# Solution component types of the platform
COMPONENT_TYPES = {
    "entity": 1,
    "column": 2,
    "choice_set": 9,
    "relationship": 10,
}


class SolutionService(BaseService):
    category = "solution"

    async def find(self, obj: SolutionPlan, ctx: DeploymentContext, stats: CallStats) -> Optional[str]:
        body = await self.http.get_json(
            "solutions",
            params={
                "$filter": f"uniquename eq {odata_literal(obj.unique_name)}",
                "$select": "solutionid,uniquename",
            },
            stats=stats,
        )
        rows = (body or {}).get("value", [])
        if not rows:
            return None
        ctx.solution_id = rows[0].get("solutionid")
        return ctx.solution_id or ""

    async def create(self, obj: SolutionPlan, ctx: DeploymentContext, stats: CallStats) -> Optional[str]:
        payload = dict(obj.payload)
        payload["publisherid@odata.bind"] = f"/publishers({ctx.publisher_id})"
        response = await self.http.post("solutions", payload, stats=stats)
        ctx.solution_id = entity_id_from(response)
        return ctx.solution_id


@dataclass
class SolutionComponent:
    """A plan object to be listed in the solution."""

    category: str
    key: str
    component_id: str

    @property
    def component_type(self) -> int:
        return COMPONENT_TYPES[self.category]


class SolutionComponentService(BaseService):
    """Adds created or reused objects to the solution with AddSolutionComponent."""

    category = "solution_component"

    async def find(self, obj: SolutionComponent, ctx: DeploymentContext, stats: CallStats) -> Optional[str]:
        if not ctx.solution_id:
            return None
        body = await self.http.get_json(
            "solutioncomponents",
            params={
                "$filter": f"objectid eq {obj.component_id} and _solutionid_value eq {ctx.solution_id}",
                "$select": "solutioncomponentid",
            },
            stats=stats,
        )
        rows = (body or {}).get("value", [])
        if not rows:
            return None
        return rows[0].get("solutioncomponentid") or ""

    async def create(self, obj: SolutionComponent, ctx: DeploymentContext, stats: CallStats) -> Optional[str]:
        response = await self.http.post(
            "AddSolutionComponent",
            {
                "ComponentId": obj.component_id,
                "ComponentType": obj.component_type,
                "SolutionUniqueName": ctx.solution_unique_name,
                "AddRequiredComponents": False,
                "DoNotIncludeSubcomponents": obj.category == "entity",
            },
            stats=stats,
        )
        return decode_json(response).get("id")
