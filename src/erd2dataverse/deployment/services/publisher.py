"""Publisher ensure-or-create."""

from typing import Optional

from erd2dataverse.errors import PermanentRemoteError
from erd2dataverse.ir.plan import PublisherPlan

from ..http import CallStats
from .base import BaseService, DeploymentContext, entity_id_from, odata_literal


class PublisherService(BaseService):
    category = "publisher"

    async def find(self, obj: PublisherPlan, ctx: DeploymentContext, stats: CallStats) -> Optional[str]:
        """
        Look the publisher up by unique name, then make sure its prefix is free.

        Raises:
            PermanentRemoteError: The prefix belongs to a different publisher
        """
        select = "publisherid,uniquename,customizationprefix"
        body = await self.http.get_json(
            "publishers",
            params={"$filter": f"uniquename eq {odata_literal(obj.unique_name)}", "$select": select},
            stats=stats,
        )
        rows = (body or {}).get("value", [])
        if rows:
            ctx.publisher_id = rows[0].get("publisherid")
            return ctx.publisher_id or ""

        body = await self.http.get_json(
            "publishers",
            params={"$filter": f"customizationprefix eq {odata_literal(obj.prefix)}", "$select": select},
            stats=stats,
        )
        owners = (body or {}).get("value", [])
        if owners:
            owner = owners[0].get("uniquename")
            raise PermanentRemoteError(
                409,
                f"prefix '{obj.prefix}' already belongs to publisher '{owner}'",
            )
        return None

    async def create(self, obj: PublisherPlan, ctx: DeploymentContext, stats: CallStats) -> Optional[str]:
        response = await self.http.post("publishers", obj.payload, stats=stats)
        ctx.publisher_id = entity_id_from(response)
        return ctx.publisher_id
