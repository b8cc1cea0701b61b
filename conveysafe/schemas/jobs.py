"""Pydantic schemas for the jobs API"""

from pydantic import BaseModel, Field, StrictInt, field_validator


class JobCreate(BaseModel):
    customer_id: str = Field(..., min_length=1)
    conveyancer_id: str = ""
    state: str = Field(default="", max_length=3)
    property_type: str = ""
    status: str = "quote_pending"
    contact_overrides: dict[str, str] = Field(default_factory=dict)

    @field_validator("contact_overrides")
    @classmethod
    def validate_contact_overrides(cls, v: dict[str, str]) -> dict[str, str]:
        allowed_roles = ("buyer", "seller", "conveyancer")
        allowed_fields = ("name", "email", "phone")
        for key in v:
            role, _, field_name = key.partition("_")
            if role not in allowed_roles or field_name not in allowed_fields:
                raise ValueError(f"Unknown contact override {key!r}")
        return v


class MilestoneCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    amount_cents: StrictInt
    due_date: str = Field(..., min_length=1)


class ChatMessageCreate(BaseModel):
    sender: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1, max_length=10000)


class ContactUnlockRequest(BaseModel):
    token: str = Field(..., min_length=1)
