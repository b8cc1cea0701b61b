"""Tests for loyalty tiers and fee resolution"""

import pytest

from conveysafe.models import LoyaltyTier
from conveysafe.services.loyalty import DEFAULT_TIERS, LoyaltyEngine, validate_tiers


class TestLoyaltyEngine:
    def test_new_conveyancer_pays_launch_rate(self, loyalty):
        assert loyalty.resolve_rate("conv_1") == 0.018
        assert loyalty.resolve_rate(None) == 0.018

    def test_three_distinct_jobs_reach_trusted(self, loyalty):
        for job_id in ("job_1", "job_2", "job_3"):
            assert loyalty.record_checkout("conv_1", job_id) is True

        assert loyalty.resolve_rate("conv_1") == 0.015

        assert loyalty.record_checkout("conv_1", "job_2") is False
        assert loyalty.completed_jobs("conv_1") == 3
        assert loyalty.describe_member("conv_1").tier.name == "Trusted Partner"

    def test_preferred_tier(self, loyalty):
        for index in range(8):
            loyalty.record_checkout("conv_1", f"job_{index}")

        status = loyalty.describe_member("conv_1")
        assert status.to_dict() == {
            "completed_jobs": 8,
            "tier": "Preferred Partner",
            "badge": "ConveySafe Preferred",
            "fee_rate": 0.012,
        }

    def test_rate_never_rises_with_volume(self, loyalty):
        rates = [loyalty.resolve_tier(count).rate for count in range(20)]
        assert rates == sorted(rates, reverse=True)

    def test_blank_ids_are_not_credited(self, loyalty):
        assert loyalty.record_checkout("", "job_1") is False
        assert loyalty.record_checkout("conv_1", "") is False
        assert loyalty.completed_jobs("conv_1") == 0

    def test_summaries_count_members_once(self, loyalty):
        loyalty.record_checkout("conv_1", "job_1")
        for index in range(3):
            loyalty.record_checkout("conv_2", f"job_{index}")

        summary = loyalty.summaries()
        members = {tier["name"]: tier["members"] for tier in summary["tiers"]}
        assert summary["members"] == 2
        assert members == {"Launch": 1, "Trusted Partner": 1, "Preferred Partner": 0}

    def test_custom_tiers(self):
        engine = LoyaltyEngine([LoyaltyTier(0, 0.02, "Base", "B"), LoyaltyTier(1, 0.01, "Repeat", "R")])
        engine.record_checkout("conv_1", "job_1")
        assert engine.resolve_rate("conv_1") == 0.01


class TestValidateTiers:
    def test_default_tiers_valid(self):
        assert validate_tiers(DEFAULT_TIERS) == DEFAULT_TIERS

    @pytest.mark.parametrize(
        "tiers",
        [
            [],
            [LoyaltyTier(1, 0.02, "A", "A")],
            [LoyaltyTier(0, 0.02, "A", "A"), LoyaltyTier(0, 0.01, "B", "B")],
            [LoyaltyTier(0, 0.01, "A", "A"), LoyaltyTier(3, 0.02, "B", "B")],
        ],
    )
    def test_rejects_unusable_tables(self, tiers):
        with pytest.raises(ValueError):
            validate_tiers(tiers)
