"""Job workflow store: jobs, milestones, chat messages and contact unlocking"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Mapping

from conveysafe.models import ContactPolicy, Job, Message, Milestone
from conveysafe.services import compliance
from conveysafe.services.contact_policy import generate_contact_policy, unlock
from conveysafe.services.errors import NotFoundError, ValidationError
from conveysafe.utils.clock import SystemClock, is_iso_date
from conveysafe.utils.ids import IdGenerator, UuidIdGenerator

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 25
MAX_LIST_LIMIT = 100


def _copy_policy(policy: ContactPolicy) -> ContactPolicy:
    return replace(policy, parties={role: replace(party) for role, party in policy.parties.items()})


def _copy_job(job: Job) -> Job:
    return replace(
        job,
        contact_policy=_copy_policy(job.contact_policy),
        milestones=list(job.milestones),
        messages=list(job.messages),
        compliance_flags=list(job.compliance_flags),
    )


class JobStore:
    """In-memory job store; one lock covers every job"""

    def __init__(
        self,
        id_generator: IdGenerator | None = None,
        clock: SystemClock | None = None,
        contact_domain: str = "clients.conveysafe.au",
    ):
        self._ids = id_generator or UuidIdGenerator()
        self._clock = clock or SystemClock()
        self._contact_domain = contact_domain
        self._lock = threading.Lock()
        self._jobs: dict[str, Job] = {}

    def create_job(
        self,
        customer_id: str,
        conveyancer_id: str = "",
        state: str = "",
        property_type: str = "",
        status: str = "quote_pending",
        contact_overrides: Mapping[str, str] | None = None,
    ) -> Job:
        if not customer_id:
            raise ValidationError("missing_required_fields", "customer_id is required")

        job_id = self._ids.new_id("job_")
        job = Job(
            id=job_id,
            customer_id=customer_id,
            conveyancer_id=conveyancer_id,
            state=state,
            property_type=property_type,
            status=status or "quote_pending",
            created_at=self._clock.now_iso(),
            contact_policy=generate_contact_policy(
                job_id,
                conveyancer_id,
                customer_id=customer_id,
                overrides=contact_overrides,
                domain=self._contact_domain,
            ),
        )
        with self._lock:
            self._jobs[job_id] = job
            snapshot = _copy_job(job)

        logger.info("Created job", extra={"job_id": job_id, "customer_id": customer_id})
        return snapshot

    def get_job(self, job_id: str) -> Job | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return _copy_job(job) if job else None

    def list_jobs(self, account_id: str | None = None, limit: int = DEFAULT_LIST_LIMIT) -> list[Job]:
        """Jobs for a customer or conveyancer (all jobs without an account), oldest first"""
        limit = min(max(limit, 1), MAX_LIST_LIMIT)
        with self._lock:
            jobs = [
                job for job in self._jobs.values()
                if not account_id or account_id in (job.customer_id, job.conveyancer_id)
            ]
            return [_copy_job(job) for job in jobs[:limit]]

    def add_milestone(self, job_id: str, name: str, amount_cents: int, due_date: str) -> Milestone:
        if not name:
            raise ValidationError("missing_required_fields", "Milestone name is required")
        if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
            raise ValidationError("invalid_amount", "amount_cents must be a positive integer")
        if not is_iso_date(due_date):
            raise ValidationError("invalid_date", "due_date must be YYYY-MM-DD")

        milestone_id = self._ids.new_id("ms_")
        with self._lock:
            job = self._require(job_id)
            milestone = Milestone(
                id=milestone_id, job_id=job_id, name=name, amount_cents=amount_cents, due_date=due_date
            )
            job.milestones.append(milestone)
        return milestone

    def list_milestones(self, job_id: str) -> list[Milestone] | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return list(job.milestones) if job else None

    def add_message(self, job_id: str, sender: str, body: str) -> Message:
        """Append a chat message and record any compliance flags it raises"""
        if not sender or not body:
            raise ValidationError("missing_required_fields", "sender and body are required")

        scan = compliance.scan_message(body)
        message_id = self._ids.new_id("msg_")
        created_at = self._clock.now_iso()
        with self._lock:
            job = self._require(job_id)
            flags = compliance.flags_for(message_id, scan, job.contact_policy.unlocked)
            message = Message(
                id=message_id,
                job_id=job_id,
                sender=sender,
                body=body,
                created_at=created_at,
                flags=tuple(flags),
            )
            job.messages.append(message)
            job.compliance_flags.extend(flags)

        if flags:
            logger.warning(
                "Compliance flags raised on job message",
                extra={"job_id": job_id, "message_id": message_id, "flags": flags},
            )
        return message

    def list_messages(self, job_id: str) -> list[Message] | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return list(job.messages) if job else None

    def compliance_flags(self, job_id: str) -> list[str] | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return list(job.compliance_flags) if job else None

    def get_contact_policy(self, job_id: str) -> ContactPolicy | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return _copy_policy(job.contact_policy) if job else None

    def unlock_contact(self, job_id: str, actor_role: str) -> ContactPolicy:
        """Unlock full contact details; repeat calls leave the first stamp intact"""
        unlocked_at = self._clock.now_iso()
        with self._lock:
            job = self._require(job_id)
            changed = unlock(job.contact_policy, actor_role, unlocked_at)
            snapshot = _copy_policy(job.contact_policy)

        if changed:
            logger.info("Contact details unlocked", extra={"job_id": job_id, "actor_role": actor_role})
        return snapshot

    def record_failed_unlock(self, job_id: str) -> int:
        with self._lock:
            job = self._require(job_id)
            job.contact_policy.unlock_attempts += 1
            attempts = job.contact_policy.unlock_attempts

        logger.warning("Rejected contact unlock token", extra={"job_id": job_id, "attempts": attempts})
        return attempts

    def list_all(self) -> list[Job]:
        with self._lock:
            return [_copy_job(job) for job in self._jobs.values()]

    def _require(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise NotFoundError("job_not_found", f"Job {job_id} not found")
        return job
