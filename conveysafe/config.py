"""Application configuration using Pydantic Settings"""


from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SECRET = "local-dev-api-key"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: str = Field(default="development")
    app_debug: bool = Field(default=True)
    app_host: str = Field(default="0.0.0.0")
    app_port: int = Field(default=9103)

    # Security
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:3001"]
    )
    service_api_key: str = Field(default=DEFAULT_SECRET)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    # Checkout
    max_service_fee_rate: float = Field(default=0.25)
    default_line_description: str = Field(default="Conveyancing milestone")
    default_service_fee_description: str = Field(default="Payment processing fee")
    default_payout_reference: str = Field(default="ESCROW_PAYOUT")
    recent_checkout_limit: int = Field(default=5, ge=0)

    # Identifiers: "uuid" in production, "sequential" for reproducible runs
    id_strategy: str = Field(default="uuid")

    # Synthesized contact details
    contact_domain: str = Field(default="clients.conveysafe.au")

    @field_validator("max_service_fee_rate")
    @classmethod
    def validate_max_service_fee_rate(cls, v):
        """Fee cap must be a usable fraction"""
        if v <= 0 or v > 1:
            raise ValueError("max_service_fee_rate must be in (0, 1]")
        return v

    @field_validator("id_strategy")
    @classmethod
    def validate_id_strategy(cls, v):
        if v not in ("uuid", "sequential"):
            raise ValueError("id_strategy must be 'uuid' or 'sequential'")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        if v not in ("json", "text"):
            raise ValueError("log_format must be 'json' or 'text'")
        return v

    def validate_configuration(self) -> dict[str, list[str]]:
        """Validate configuration and return any issues"""
        issues = {"errors": [], "warnings": []}

        if self.app_env == "production":
            if self.app_debug:
                issues["warnings"].append("Debug mode enabled in production")
            if self.service_api_key == DEFAULT_SECRET:
                issues["errors"].append("Default service API key used in production")
            if self.id_strategy == "sequential":
                issues["warnings"].append("Sequential ids are guessable in production")

        if self.recent_checkout_limit > 50:
            issues["warnings"].append(
                f"recent_checkout_limit of {self.recent_checkout_limit} inflates metrics payloads"
            )

        return issues


settings = Settings()
