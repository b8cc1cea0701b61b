"""API endpoints for jobs, milestones, chat and contact disclosure"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query, status

from conveysafe.api.deps import require_role
from conveysafe.container import ServiceContainer, get_container
from conveysafe.schemas.jobs import (
    ChatMessageCreate,
    ContactUnlockRequest,
    JobCreate,
    MilestoneCreate,
)
from conveysafe.services.contact_policy import can_reveal, contact_policy_to_dict
from conveysafe.services.errors import AuthorizationError, NotFoundError
from conveysafe.services.insights import build_compliance_summary
from conveysafe.utils.security import (
    CONTACT_UNLOCK_SCOPE,
    derive_scoped_token,
    verify_scoped_token,
)

logger = logging.getLogger(__name__)
router = APIRouter()

PARTICIPANTS = ("buyer", "seller", "conveyancer", "admin", "finance_admin")
ADMINS = ("admin", "finance_admin")


def _job_not_found(job_id: str) -> NotFoundError:
    return NotFoundError("job_not_found", f"Job {job_id} not found")


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_job(
    payload: JobCreate,
    _: str = Depends(require_role(*PARTICIPANTS)),
    container: ServiceContainer = Depends(get_container),
) -> dict[str, Any]:
    job = container.jobs.create_job(
        payload.customer_id,
        conveyancer_id=payload.conveyancer_id,
        state=payload.state,
        property_type=payload.property_type,
        status=payload.status,
        contact_overrides=payload.contact_overrides,
    )
    return job.to_dict()


@router.get("")
async def list_jobs(
    account_id: str | None = Query(None),
    limit: int = Query(25),
    _: str = Depends(require_role(*PARTICIPANTS)),
    container: ServiceContainer = Depends(get_container),
) -> dict[str, Any]:
    jobs = container.jobs.list_jobs(account_id, limit)
    return {"jobs": [job.to_dict() for job in jobs], "count": len(jobs)}


@router.get("/compliance/summary")
async def compliance_summary(
    _: str = Depends(require_role(*ADMINS)),
    container: ServiceContainer = Depends(get_container),
) -> dict[str, Any]:
    return build_compliance_summary(container.jobs)


@router.get("/{job_id}")
async def get_job(
    job_id: str,
    _: str = Depends(require_role(*PARTICIPANTS)),
    container: ServiceContainer = Depends(get_container),
) -> dict[str, Any]:
    job = container.jobs.get_job(job_id)
    if job is None:
        raise _job_not_found(job_id)
    return job.to_dict()


@router.post("/{job_id}/milestones", status_code=status.HTTP_201_CREATED)
async def add_milestone(
    job_id: str,
    payload: MilestoneCreate,
    _: str = Depends(require_role("conveyancer", "admin")),
    container: ServiceContainer = Depends(get_container),
) -> dict[str, Any]:
    milestone = container.jobs.add_milestone(job_id, payload.name, payload.amount_cents, payload.due_date)
    return milestone.to_dict()


@router.get("/{job_id}/milestones")
async def list_milestones(
    job_id: str,
    _: str = Depends(require_role(*PARTICIPANTS)),
    container: ServiceContainer = Depends(get_container),
) -> dict[str, Any]:
    milestones = container.jobs.list_milestones(job_id)
    if milestones is None:
        raise _job_not_found(job_id)
    return {"milestones": [milestone.to_dict() for milestone in milestones]}


@router.post("/{job_id}/chat", status_code=status.HTTP_201_CREATED)
async def post_message(
    job_id: str,
    payload: ChatMessageCreate,
    _: str = Depends(require_role(*PARTICIPANTS)),
    container: ServiceContainer = Depends(get_container),
) -> dict[str, Any]:
    """Append a chat message; the response lists any compliance flags it raised"""
    message = container.jobs.add_message(job_id, payload.sender, payload.body)
    return message.to_dict()


@router.get("/{job_id}/chat")
async def list_messages(
    job_id: str,
    _: str = Depends(require_role(*PARTICIPANTS)),
    container: ServiceContainer = Depends(get_container),
) -> dict[str, Any]:
    messages = container.jobs.list_messages(job_id)
    if messages is None:
        raise _job_not_found(job_id)
    return {"messages": [message.to_dict() for message in messages]}


@router.get("/{job_id}/contact")
async def get_contact(
    job_id: str,
    actor_role: str = Depends(require_role(*PARTICIPANTS)),
    container: ServiceContainer = Depends(get_container),
) -> dict[str, Any]:
    """Contact details: masked by default, full once unlocked or for finance/admin"""
    policy = container.jobs.get_contact_policy(job_id)
    if policy is None:
        raise _job_not_found(job_id)

    include_internal = actor_role == "admin"
    token = None
    if include_internal:
        token = derive_scoped_token(CONTACT_UNLOCK_SCOPE, job_id, container.settings.service_api_key)
    return contact_policy_to_dict(
        policy,
        reveal_full=can_reveal(actor_role, policy),
        include_internal=include_internal,
        unlock_token=token,
    )


@router.post("/{job_id}/contact/unlock")
async def unlock_contact(
    job_id: str,
    payload: ContactUnlockRequest,
    actor_role: str = Depends(require_role(*PARTICIPANTS)),
    container: ServiceContainer = Depends(get_container),
) -> dict[str, Any]:
    if container.jobs.get_contact_policy(job_id) is None:
        raise _job_not_found(job_id)

    secret = container.settings.service_api_key
    if not verify_scoped_token(CONTACT_UNLOCK_SCOPE, job_id, payload.token, secret):
        container.jobs.record_failed_unlock(job_id)
        raise AuthorizationError("invalid_token", "Unlock token does not match this job")

    policy = container.jobs.unlock_contact(job_id, actor_role)
    return contact_policy_to_dict(
        policy,
        reveal_full=True,
        include_internal=actor_role == "admin",
        unlock_token=derive_scoped_token(CONTACT_UNLOCK_SCOPE, job_id, secret) if actor_role == "admin" else None,
    )
