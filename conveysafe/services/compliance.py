"""Chat compliance signals

Two independent heuristics run over every job message:

- contact coordinates: an email address or an Australian phone number.
  Flagged only while the job's contact details are still locked.
- off-platform hints: phrases asking to move the conversation elsewhere.
  Always flagged.

These are review signals for a human, not a guarantee that leakage is
blocked.
"""

import re
from dataclasses import dataclass, field

EMAIL_PATTERN = re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE)

PHONE_PATTERN = re.compile(
    r"(?:(?:\+?61|0)[\s-]?)?"      # country code or trunk prefix
    r"(?:\(?0?[2-9]\)?[\s-]?)?"     # area code
    r"[0-9]{3}[\s-]?[0-9]{3}[\s-]?[0-9]{3,4}"
    r"|(?<!\d)[2-9][0-9]{3}[\s-]?[0-9]{4}(?!\d)"  # 8-digit local landline
)

OFF_PLATFORM_TERMS = (
    "whatsapp",
    "signal",
    "telegram",
    "zoom",
    "meet link",
    "call me",
    "text me",
    "email me",
    "offline payment",
)

OFF_PLATFORM_PATTERN = re.compile(
    r"\b(?:" + "|".join(term.replace(" ", r"\s+") for term in OFF_PLATFORM_TERMS) + r")\b",
    re.IGNORECASE,
)

CONTACT_COORDINATES_FLAG = "contact_coordinates"
OFF_PLATFORM_HINT_FLAG = "off_platform_hint"


@dataclass(frozen=True)
class ComplianceScan:
    contact_coordinates: bool
    off_platform_hint: bool
    matches: tuple[str, ...] = field(default_factory=tuple)

    @property
    def clean(self) -> bool:
        return not (self.contact_coordinates or self.off_platform_hint)


def scan_message(body: str) -> ComplianceScan:
    body = body or ""
    email = EMAIL_PATTERN.search(body)
    phone = PHONE_PATTERN.search(body)
    hint = OFF_PLATFORM_PATTERN.search(body)

    return ComplianceScan(
        contact_coordinates=bool(email or phone),
        off_platform_hint=bool(hint),
        matches=tuple(found.group(0) for found in (email, phone, hint) if found),
    )


def flags_for(message_id: str, scan: ComplianceScan, contact_unlocked: bool) -> list[str]:
    """Tagged flags to append to the job for this message"""
    flags = []
    if scan.contact_coordinates and not contact_unlocked:
        flags.append(f"{CONTACT_COORDINATES_FLAG}:{message_id}")
    if scan.off_platform_hint:
        flags.append(f"{OFF_PLATFORM_HINT_FLAG}:{message_id}")
    return flags


def flag_kind(flag: str) -> str:
    return flag.split(":", 1)[0]
