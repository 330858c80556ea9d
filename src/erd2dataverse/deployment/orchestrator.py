"""Deployment orchestrator: runs a plan against the platform in dependency order."""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

from erd2dataverse.config.logging import get_logger
from erd2dataverse.config.settings import Settings, get_settings
from erd2dataverse.errors import ValidationError
from erd2dataverse.ir.plan import DeploymentPlan
from erd2dataverse.ir.result import DeploymentResult, ObjectOutcome, ObjectState

from .auth import CredentialProvider
from .http import DataverseHttp
from .services import (
    COMPONENT_TYPES,
    DeploymentContext,
    Services,
    SolutionComponent,
    dependency_failed,
    ensure,
)

logger = get_logger(__name__)

Job = Callable[[], Awaitable[ObjectOutcome]]


def succeeded(outcome: Optional[ObjectOutcome]) -> bool:
    return outcome is not None and outcome.state in (ObjectState.CREATED, ObjectState.SKIPPED)


class DeploymentOrchestrator:
    """
    Creates every object of a plan that does not exist yet.

    Stages run in a fixed order: publisher, solution, choice sets, entities,
    columns, relationships, junction keys, solution components. Each object is
    checked for existence before it is created, so running the same plan again
    reports everything as skipped. A failed object never stops its siblings;
    objects depending on it are reported failed without any remote call.

    Usage:
        async with DeploymentOrchestrator(http) as orchestrator:
            result = await orchestrator.deploy(plan)
    """

    def __init__(self, http: DataverseHttp, concurrency: int = 1):
        """
        Initialize the orchestrator.

        Args:
            http: Shared retrying HTTP caller
            concurrency: Sibling objects processed at once within a stage
        """
        self.http = http
        self.services = Services.create(http)
        self.concurrency = max(1, concurrency)

    @classmethod
    def from_settings(
        cls,
        credentials: CredentialProvider,
        settings: Optional[Settings] = None,
        **http_kwargs,
    ) -> "DeploymentOrchestrator":
        settings = settings or get_settings()
        http = DataverseHttp.from_settings(credentials, settings, **http_kwargs)
        return cls(http, concurrency=settings.deploy_concurrency)

    async def __aenter__(self) -> "DeploymentOrchestrator":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self.http.close()

    async def check_connection(self) -> Dict[str, Any]:
        """Call WhoAmI; returns the caller's user, business unit and organization ids."""
        body = await self.http.get_json("WhoAmI")
        logger.info(f"Connected as user {body.get('UserId')} in organization {body.get('OrganizationId')}")
        return body

    async def _run_stage(self, jobs: List[Job]) -> List[ObjectOutcome]:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def run(job: Job) -> ObjectOutcome:
            async with semaphore:
                return await job()

        tasks = [asyncio.ensure_future(run(job)) for job in jobs]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            # A fatal error (auth, cancellation) stops the stage; siblings must
            # not keep using the client after it is closed
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    def _job(self, service, obj, key: str, ctx: DeploymentContext, blockers: List[Optional[str]]) -> Job:
        """Ensure job, or an immediate dependency failure when a prerequisite failed."""

        async def job() -> ObjectOutcome:
            failed = next((b for b in blockers if b is not None), None)
            if failed is not None:
                return dependency_failed(service.category, key, failed)
            return await ensure(service, obj, key, ctx)

        return job

    async def deploy(self, plan: DeploymentPlan) -> DeploymentResult:
        """
        Deploy a plan.

        Args:
            plan: Plan produced by the generator

        Returns:
            DeploymentResult with one outcome per plan object

        Raises:
            ValidationError: The plan still carries validation errors
            AuthError: No credential could be obtained; fatal to the run
        """
        if plan.blocked:
            raise ValidationError([f for f in plan.findings if f.is_error and f.stage != "generation"])

        svc = self.services
        result = DeploymentResult(solution_unique_name=plan.solution.unique_name)
        ctx = DeploymentContext(solution_unique_name=plan.solution.unique_name, language_code=plan.language_code)
        logger.info(f"Deploying plan for solution {plan.solution.unique_name}: {plan.summary()}")

        def blocker(category: str, key: str) -> Optional[str]:
            """Name of the dependency if it did not succeed, else None."""
            return None if succeeded(result.get(category, key)) else f"{category}:{key}"

        # 1-2. publisher, then the solution bound to it
        result.add(await ensure(svc.publisher, plan.publisher, plan.publisher.key, ctx))
        publisher_blocker = blocker("publisher", plan.publisher.key)
        solution_job = self._job(svc.solution, plan.solution, plan.solution.key, ctx, [publisher_blocker])
        result.add(await solution_job())

        # 3. global choice sets, so choice columns can bind to them
        for outcome in await self._run_stage(
            [self._job(svc.choice_set, c, c.key, ctx, [publisher_blocker]) for c in plan.choice_sets]
        ):
            result.add(outcome)

        # 4. entities, then their columns
        for outcome in await self._run_stage(
            [self._job(svc.entity, e, e.key, ctx, [publisher_blocker]) for e in plan.entities]
        ):
            result.add(outcome)
        column_jobs = []
        for column in plan.columns:
            blockers = [blocker("entity", column.entity_key)]
            if column.choice_set_key:
                blockers.append(blocker("choice_set", column.choice_set_key))
            column_jobs.append(self._job(svc.column, column, column.key, ctx, blockers))
        for outcome in await self._run_stage(column_jobs):
            result.add(outcome)

        # 5. relationships once both endpoints exist
        for outcome in await self._run_stage(
            [
                self._job(
                    svc.relationship,
                    r,
                    r.key,
                    ctx,
                    [blocker("entity", r.referenced_entity), blocker("entity", r.referencing_entity)],
                )
                for r in plan.relationships
            ]
        ):
            result.add(outcome)

        # 6. junction alternate keys once both lookups exist
        key_jobs = []
        for key_plan in plan.entity_keys:
            legs = [
                r for r in plan.relationships
                if r.referencing_entity == key_plan.entity_key and r.lookup_logical_name in key_plan.key_attributes
            ]
            blockers = [blocker("entity", key_plan.entity_key)] + [blocker("relationship", r.key) for r in legs]
            key_jobs.append(self._job(svc.entity_key, key_plan, key_plan.key, ctx, blockers))
        for outcome in await self._run_stage(key_jobs):
            result.add(outcome)

        # 7. solution membership for everything created or reused
        for outcome in await self._run_stage(self._component_jobs(result, ctx)):
            result.add(outcome)

        summary = {k: v.model_dump() for k, v in result.summary.items()}
        if result.ok:
            logger.info(f"Deployment finished: {summary}")
        else:
            logger.warning(f"Deployment finished with {len(result.failed())} failed objects: {summary}")
        return result

    def _component_jobs(self, result: DeploymentResult, ctx: DeploymentContext) -> List[Job]:
        svc = self.services.solution_component
        solution = result.by_category("solution")
        solution_blocker = None if solution and succeeded(solution[0]) else f"solution:{ctx.solution_unique_name}"
        jobs: List[Job] = []
        for outcome in list(result.outcomes):
            if outcome.category not in COMPONENT_TYPES:
                continue
            key = f"{outcome.category}:{outcome.key}"
            if not succeeded(outcome):
                jobs.append(self._job(svc, None, key, ctx, [key]))
                continue
            if not outcome.remote_id:
                jobs.append(self._job(svc, None, key, ctx, [f"{key} (no component id reported)"]))
                continue
            component = SolutionComponent(outcome.category, outcome.key, outcome.remote_id)
            jobs.append(self._job(svc, component, key, ctx, [solution_blocker]))
        return jobs
