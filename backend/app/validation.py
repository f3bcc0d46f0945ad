from __future__ import annotations

from typing import Annotated, Literal, Optional

from pydantic import BeforeValidator, StringConstraints


def _to_upper_str(v):
    if v is None:
        return v
    return str(v).strip().upper()


def _to_lower_str(v):
    if v is None:
        return v
    return str(v).strip().lower()


def _blank_to_none(v):
    if v is None:
        return None
    s = str(v).strip()
    return s or None


# Canonical values mirror the CHECK constraints in `backend/db/migrations/001_init.sql`.
UserRole = Annotated[Literal["superadmin", "book_admin", "counter_admin", "japa_admin"], BeforeValidator(_to_lower_str)]
PaymentType = Annotated[Literal["emi", "pay_later"], BeforeValidator(_to_lower_str)]
LeadStatus = Annotated[Literal["new", "contacted", "interested", "converted", "lost"], BeforeValidator(_to_lower_str)]
LeadPriority = Annotated[Literal["low", "medium", "high"], BeforeValidator(_to_lower_str)]
AuditAction = Annotated[Literal["CREATE", "UPDATE", "DELETE", "ASSIGN", "SELL", "ADJUST"], BeforeValidator(_to_upper_str)]
LotKind = Literal["purchase", "adjustment"]


# Loose on purpose: accepts "555-123-4567", "(555) 123 4567", "+5551234567".
PHONE_PATTERN = r"^[+]?[(]?[0-9]{3}[)]?[-\s.]?[0-9]{3}[-\s.]?[0-9]{4,6}$"

PhoneNumber = Annotated[
    str,
    BeforeValidator(lambda v: str(v).strip() if v is not None else v),
    StringConstraints(pattern=PHONE_PATTERN),
]

# Empty form fields come through as "", which means "not provided".
OptionalText = Annotated[Optional[str], BeforeValidator(_blank_to_none)]
OptionalPhone = Annotated[Optional[PhoneNumber], BeforeValidator(_blank_to_none)]

RequiredText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]

EmailAddress = Annotated[
    str,
    BeforeValidator(_to_lower_str),
    StringConstraints(min_length=3, max_length=254, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$"),
]
