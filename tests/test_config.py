"""Tests for settings, scoped tokens, ids and clocks"""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError as SettingsValidationError

from conveysafe.config import DEFAULT_SECRET, Settings
from conveysafe.utils.clock import FixedClock, is_iso_date, is_iso_datetime
from conveysafe.utils.ids import SequentialIdGenerator, UuidIdGenerator, build_id_generator
from conveysafe.utils.security import CONTACT_UNLOCK_SCOPE, derive_scoped_token, verify_scoped_token


class TestSettings:
    def test_defaults(self):
        config = Settings()
        assert config.app_port == 9103
        assert config.max_service_fee_rate == 0.25
        assert config.default_payout_reference == "ESCROW_PAYOUT"

    @pytest.mark.parametrize(
        "overrides",
        [{"max_service_fee_rate": 0}, {"max_service_fee_rate": 1.5}, {"id_strategy": "random"}, {"log_format": "xml"}],
    )
    def test_rejects_bad_values(self, overrides):
        with pytest.raises(SettingsValidationError):
            Settings(**overrides)

    def test_production_checks(self):
        issues = Settings(app_env="production", app_debug=True, id_strategy="sequential").validate_configuration()
        assert "Default service API key used in production" in issues["errors"]
        assert len(issues["warnings"]) >= 2

    def test_development_is_clean(self):
        issues = Settings(app_env="development", service_api_key=DEFAULT_SECRET).validate_configuration()
        assert issues["errors"] == []


class TestScopedTokens:
    def test_token_shape(self):
        token = derive_scoped_token(CONTACT_UNLOCK_SCOPE, "job_1", "secret")
        prefix, _, digest = token.rpartition("_")
        assert prefix == CONTACT_UNLOCK_SCOPE
        assert len(digest) == 24
        assert digest == digest.upper()

    def test_verify(self):
        token = derive_scoped_token(CONTACT_UNLOCK_SCOPE, "job_1", "secret")
        assert verify_scoped_token(CONTACT_UNLOCK_SCOPE, "job_1", token, "secret")
        assert not verify_scoped_token(CONTACT_UNLOCK_SCOPE, "job_2", token, "secret")
        assert not verify_scoped_token(CONTACT_UNLOCK_SCOPE, "job_1", token, "other-secret")
        assert not verify_scoped_token(CONTACT_UNLOCK_SCOPE, "job_1", None, "secret")

    def test_non_ascii_token_does_not_match(self):
        assert not verify_scoped_token(CONTACT_UNLOCK_SCOPE, "job_1", "contact_unlock_é", "secret")


class TestIds:
    def test_sequential_counters_per_prefix(self):
        ids = SequentialIdGenerator()
        assert [ids.new_id("hold_"), ids.new_id("hold_"), ids.new_id("inv_")] == [
            "hold_00001",
            "hold_00002",
            "inv_00001",
        ]

    def test_uuid_ids_unique(self):
        ids = UuidIdGenerator()
        generated = {ids.new_id("hold_") for _ in range(1000)}
        assert len(generated) == 1000
        assert all(len(value) == len("hold_") + 12 for value in generated)

    def test_build_from_strategy(self):
        assert isinstance(build_id_generator("sequential"), SequentialIdGenerator)
        assert isinstance(build_id_generator("uuid"), UuidIdGenerator)


class TestClock:
    def test_fixed_clock_formats(self):
        clock = FixedClock(datetime(2024, 3, 1, 0, 0, 0, 123456, tzinfo=timezone.utc))
        assert clock.now_iso() == "2024-03-01T00:00:00.123Z"
        assert clock.today() == "2024-03-01"

    @pytest.mark.parametrize(
        "value,expected",
        [("2024-03-01T00:00:00Z", True), ("2024-03-01T00:00:00.5Z", True), ("2024-03-01 00:00:00", False), ("", False)],
    )
    def test_is_iso_datetime(self, value, expected):
        assert is_iso_datetime(value) is expected

    def test_is_iso_date(self):
        assert is_iso_date("2024-03-01")
        assert not is_iso_date("2024-3-1")
        assert not is_iso_date(None)
