"""Per-job contact disclosure policy

Each job carries buyer, seller and conveyancer contact details in full and
masked form. Only the masked form is shown until the contact is unlocked
(one-way) or the viewer holds an admin or finance role.
"""

import hashlib
import logging
import re
from typing import Any, Mapping

from conveysafe.models import ContactParty, ContactPolicy, ContactRole

logger = logging.getLogger(__name__)

MASK = "•"
REVEALING_ROLES = frozenset({"admin", "finance_admin"})

_NON_DIGITS = re.compile(r"\D")
_SLUG_UNSAFE = re.compile(r"[^a-z0-9]+")


def mask_email(email: str) -> str:
    """`jane.citizen@example.com` → `ja•••@example.com`"""
    local, at, domain = email.partition("@")
    if not at:
        return MASK * 3
    return f"{local[:2]}{MASK * 3}@{domain}"


def mask_phone(phone: str) -> str:
    """Keep the last three digits; every earlier digit becomes a bullet"""
    digits = _NON_DIGITS.sub("", phone)
    if len(digits) <= 3:
        return digits
    return MASK * (len(digits) - 3) + digits[-3:]


def _slug(value: str) -> str:
    return _SLUG_UNSAFE.sub("-", value.lower()).strip("-") or "account"


def _synthetic_phone(seed: str) -> str:
    digest = int(hashlib.sha256(seed.encode("utf-8")).hexdigest(), 16)
    number = f"{digest % 10**8:08d}"
    return f"04{number[:2]} {number[2:5]} {number[5:]}"


def build_party(name: str, email: str, phone: str) -> ContactParty:
    return ContactParty(
        name=name,
        email=email,
        phone=phone,
        masked_email=mask_email(email),
        masked_phone=mask_phone(phone),
    )


def generate_contact_policy(
    job_id: str,
    conveyancer_id: str,
    customer_id: str = "",
    overrides: Mapping[str, str] | None = None,
    domain: str = "clients.conveysafe.au",
) -> ContactPolicy:
    """Build a locked contact policy for a job

    Details are synthesized deterministically from the job and account
    ids. Any of `<role>_name`, `<role>_email` or `<role>_phone` in
    `overrides` replaces the synthesized value.
    """
    overrides = overrides or {}
    job_slug = _slug(job_id)
    defaults = {
        ContactRole.BUYER: (
            f"Buyer {customer_id or job_id}",
            f"buyer.{_slug(customer_id) if customer_id else job_slug}@{domain}",
            _synthetic_phone(f"{job_id}:buyer:{customer_id}"),
        ),
        ContactRole.SELLER: (
            f"Seller {job_id}",
            f"seller.{job_slug}@{domain}",
            _synthetic_phone(f"{job_id}:seller"),
        ),
        ContactRole.CONVEYANCER: (
            f"Conveyancer {conveyancer_id or 'unassigned'}",
            f"{_slug(conveyancer_id or 'conveyancer')}@{domain}",
            _synthetic_phone(f"{job_id}:conveyancer:{conveyancer_id}"),
        ),
    }

    parties = {}
    for role, (name, email, phone) in defaults.items():
        parties[role] = build_party(
            name=overrides.get(f"{role.value}_name", name),
            email=overrides.get(f"{role.value}_email", email),
            phone=overrides.get(f"{role.value}_phone", phone),
        )
    return ContactPolicy(job_id=job_id, parties=parties)


def unlock(policy: ContactPolicy, actor_role: str, unlocked_at: str) -> bool:
    """Unlock the policy; returns False if it was already unlocked"""
    if policy.unlocked:
        return False
    policy.unlocked = True
    policy.unlocked_at = unlocked_at
    policy.unlocked_by_role = actor_role
    return True


def can_reveal(actor_role: str | None, policy: ContactPolicy) -> bool:
    return policy.unlocked or actor_role in REVEALING_ROLES


def contact_policy_to_dict(
    policy: ContactPolicy,
    reveal_full: bool,
    include_internal: bool,
    unlock_token: str | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "job_id": policy.job_id,
        "unlocked": policy.unlocked,
        "masked": {
            role.value: {
                "name": party.name,
                "email": party.masked_email,
                "phone": party.masked_phone,
            }
            for role, party in policy.parties.items()
        },
    }
    if reveal_full:
        payload["full"] = {
            role.value: {"name": party.name, "email": party.email, "phone": party.phone}
            for role, party in policy.parties.items()
        }
    if include_internal:
        payload["internal"] = {
            "unlock_token": unlock_token,
            "unlocked_at": policy.unlocked_at,
            "unlocked_by_role": policy.unlocked_by_role,
            "failed_unlock_attempts": policy.unlock_attempts,
        }
    return payload
