"""Conveyancer loyalty tiers and service fee resolution"""

from __future__ import annotations

import logging
import threading
from typing import Any, Sequence

from conveysafe.models import LoyaltyTier, MemberStatus

logger = logging.getLogger(__name__)

DEFAULT_TIERS: tuple[LoyaltyTier, ...] = (
    LoyaltyTier(threshold=0, rate=0.018, name="Launch", badge="ConveySafe Launch"),
    LoyaltyTier(threshold=3, rate=0.015, name="Trusted Partner", badge="ConveySafe Trusted"),
    LoyaltyTier(threshold=8, rate=0.012, name="Preferred Partner", badge="ConveySafe Preferred"),
)


def validate_tiers(tiers: Sequence[LoyaltyTier]) -> tuple[LoyaltyTier, ...]:
    """Check a tier table is usable: starts at zero, strictly ascending
    thresholds, and fees that never rise with volume"""
    if not tiers:
        raise ValueError("At least one loyalty tier is required")
    ordered = tuple(tiers)
    if ordered[0].threshold != 0:
        raise ValueError("The first loyalty tier must have a threshold of 0")
    for lower, upper in zip(ordered, ordered[1:]):
        if upper.threshold <= lower.threshold:
            raise ValueError("Loyalty tier thresholds must be strictly ascending")
        if upper.rate > lower.rate:
            raise ValueError(f"Tier {upper.name} charges more than {lower.name}")
    for tier in ordered:
        if not 0.0 <= tier.rate <= 1.0:
            raise ValueError(f"Tier {tier.name} rate must be between 0 and 1")
    return ordered


class LoyaltyEngine:
    """Counts distinct completed jobs per conveyancer and maps them to fee tiers"""

    def __init__(self, tiers: Sequence[LoyaltyTier] = DEFAULT_TIERS):
        self.tiers = validate_tiers(tiers)
        self._lock = threading.Lock()
        self._completed_jobs: dict[str, set[str]] = {}

    def resolve_tier(self, completed_jobs: int) -> LoyaltyTier:
        """Highest tier whose threshold the count reaches"""
        result = self.tiers[0]
        for tier in self.tiers:
            if completed_jobs >= tier.threshold:
                result = tier
        return result

    def resolve_rate(self, conveyancer_id: str | None) -> float:
        if not conveyancer_id:
            return self.tiers[0].rate
        return self.resolve_tier(self.completed_jobs(conveyancer_id)).rate

    def record_checkout(self, conveyancer_id: str | None, job_id: str) -> bool:
        """Credit a completed job; returns False when it was already credited"""
        if not conveyancer_id or not job_id:
            return False
        with self._lock:
            jobs = self._completed_jobs.setdefault(conveyancer_id, set())
            if job_id in jobs:
                return False
            jobs.add(job_id)
            count = len(jobs)

        logger.info(
            "Loyalty credit recorded",
            extra={"conveyancer_id": conveyancer_id, "job_id": job_id, "completed_jobs": count},
        )
        return True

    def completed_jobs(self, conveyancer_id: str | None) -> int:
        if not conveyancer_id:
            return 0
        with self._lock:
            return len(self._completed_jobs.get(conveyancer_id, ()))

    def describe_member(self, conveyancer_id: str | None) -> MemberStatus:
        count = self.completed_jobs(conveyancer_id)
        return MemberStatus(completed_jobs=count, tier=self.resolve_tier(count))

    def schedule(self) -> list[dict[str, Any]]:
        return [
            {"name": tier.name, "threshold": tier.threshold, "fee_rate": tier.rate, "badge": tier.badge}
            for tier in self.tiers
        ]

    def summaries(self) -> dict[str, Any]:
        """Member counts per tier, each member counted once in its top tier"""
        with self._lock:
            counts = [len(jobs) for jobs in self._completed_jobs.values()]

        members_per_tier = {tier.name: 0 for tier in self.tiers}
        for count in counts:
            members_per_tier[self.resolve_tier(count).name] += 1

        tiers = []
        for entry in self.schedule():
            entry["members"] = members_per_tier[entry["name"]]
            tiers.append(entry)
        return {"members": len(counts), "tiers": tiers}
