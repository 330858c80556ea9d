"""Shared shape of remote object services and the ensure state machine."""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

import httpx

from erd2dataverse.config.logging import get_logger
from erd2dataverse.errors import AuthError, RemoteError
from erd2dataverse.ir.result import ObjectOutcome, ObjectState

from ..http import CallStats, DataverseHttp
from ..retry import is_duplicate

logger = get_logger(__name__)

_ENTITY_ID = re.compile(r"\(([0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12})\)\s*$")


@dataclass
class DeploymentContext:
    """Values discovered during a run that later objects depend on."""

    solution_unique_name: str
    language_code: int = 1033
    publisher_id: Optional[str] = None
    solution_id: Optional[str] = None
    metadata_ids: Dict[str, str] = field(default_factory=dict)  # "category:key" -> id


class RemoteObjectService(Protocol):
    """Existence check plus create for one kind of platform object."""

    category: str

    async def find(self, obj: Any, ctx: DeploymentContext, stats: CallStats) -> Optional[str]:
        """Remote id of the existing object ("" when it exists without a readable id), or None."""
        ...

    async def create(self, obj: Any, ctx: DeploymentContext, stats: CallStats) -> Optional[str]:
        """Create the object and return its remote id when the platform reports one."""
        ...


def odata_literal(value: str) -> str:
    """Quote a string for use inside an OData key or filter."""
    return "'" + value.replace("'", "''") + "'"


def entity_id_from(response: httpx.Response) -> Optional[str]:
    """Id of a created record from the OData-EntityId header (or the body, if returned)."""
    header = response.headers.get("OData-EntityId") or response.headers.get("Location")
    if header:
        m = _ENTITY_ID.search(header)
        if m:
            return m.group(1)
    if response.content:
        try:
            body = response.json()
        except ValueError:
            return None
        if isinstance(body, dict):
            return body.get("MetadataId") or body.get("id")
    return None


class BaseService:
    """Holds the shared HTTP caller; subclasses implement find/create."""

    category = "object"

    def __init__(self, http: DataverseHttp):
        self.http = http


async def _confirm_create(
    service: RemoteObjectService,
    obj: Any,
    key: str,
    ctx: DeploymentContext,
    stats: CallStats,
    error: RemoteError,
) -> Optional[str]:
    """
    Look the object up again after a create call failed.

    A create the platform committed can still come back as a gateway timeout,
    and the retried POST then reports a duplicate. Returns the remote id ("" when
    unreadable) if the object exists, else None.
    """
    if not (stats.transient_errors or is_duplicate(error)):
        return None
    logger.warning(f"Create of {service.category} {key} failed ({error}); checking whether it was committed")
    try:
        return await service.find(obj, ctx, stats)
    except RemoteError as e:
        logger.warning(f"Could not confirm {service.category} {key}: {e}")
        return None


async def ensure(service: RemoteObjectService, obj: Any, key: str, ctx: DeploymentContext) -> ObjectOutcome:
    """
    Bring one object to existence and record how it got there.

    PLANNED -> CHECKING_EXISTENCE -> (EXISTS -> SKIPPED) | (NOT_FOUND -> CREATING -> CREATED | FAILED)

    A failed create is followed by a second existence check when the failure
    may hide a committed create; an object found then counts as CREATED.
    Any other error ends in FAILED with the reason. Authentication failures
    propagate since no further call could succeed.
    """
    outcome = ObjectOutcome(category=service.category, key=key)
    stats = CallStats()
    try:
        outcome.advance(ObjectState.CHECKING_EXISTENCE)
        remote_id = await service.find(obj, ctx, stats)
        if remote_id is not None:
            outcome.advance(ObjectState.EXISTS)
            outcome.remote_id = remote_id or None
            outcome.advance(ObjectState.SKIPPED)
            logger.info(f"{service.category} {key} already exists, skipping")
        else:
            outcome.advance(ObjectState.NOT_FOUND)
            outcome.advance(ObjectState.CREATING)
            try:
                outcome.remote_id = await service.create(obj, ctx, stats)
            except RemoteError as e:
                confirmed = await _confirm_create(service, obj, key, ctx, stats, e)
                if confirmed is None:
                    raise
                outcome.remote_id = confirmed or None
            outcome.advance(ObjectState.CREATED)
            logger.info(f"Created {service.category} {key}")
    except RemoteError as e:
        outcome.fail(e.reason if e.status_code == 0 else str(e))
        logger.error(f"Failed to ensure {service.category} {key}: {e}")
    except AuthError:
        raise
    except Exception as e:
        outcome.fail(f"{type(e).__name__}: {e}")
        logger.exception(f"Unexpected error while ensuring {service.category} {key}")
    finally:
        outcome.attempts = stats.attempts
    if outcome.remote_id:
        ctx.metadata_ids[f"{service.category}:{key}"] = outcome.remote_id
    return outcome


def dependency_failed(category: str, key: str, dependency: str) -> ObjectOutcome:
    """Outcome for an object whose prerequisite did not make it; no remote call is made."""
    outcome = ObjectOutcome(category=category, key=key)
    outcome.fail(f"dependency failed: {dependency}")
    logger.warning(f"Skipping {category} {key}: dependency failed: {dependency}")
    return outcome
