"""Lead identity normalization: emails, phone numbers and their comparison keys."""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

_EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
_E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")
_PHONE_LIKE = re.compile(r"^\+?[\d\s\-().]+$")


class PhoneFormat(Enum):
    E164 = "e164"
    DIGITS = "digits"
    INVALID = "invalid"


@dataclass(frozen=True)
class IdentityKeys:
    email: str = ""
    phone: str = ""

    def matches(self, other: "IdentityKeys") -> bool:
        return bool(
            (self.email and self.email == other.email)
            or (self.phone and self.phone == other.phone)
        )


def normalize_email(email: Optional[str]) -> Optional[str]:
    if not email:
        return None
    normalized = email.strip().lower()
    return normalized if _EMAIL_PATTERN.match(normalized) else None


def normalize_phone(phone: Optional[str], min_length: int = 10) -> Tuple[Optional[str], PhoneFormat]:
    """
    Normalize a phone number to E.164.

    Inbound WhatsApp/Telegram senders arrive in all sorts of shapes
    ("+1 (416) 555-0100", "14165550100", "416.555.0100"). Numbers already
    carrying a country code are kept; bare 10 or 11 digit numbers are assumed
    North American.
    """
    if not phone:
        return None, PhoneFormat.INVALID

    cleaned = phone.strip()
    if not _PHONE_LIKE.match(cleaned):
        return None, PhoneFormat.INVALID

    compact = re.sub(r"[^\d+]", "", cleaned)
    if _E164_PATTERN.match(compact):
        return compact, PhoneFormat.E164

    digits = re.sub(r"\D+", "", cleaned)
    if len(digits) < min_length:
        return None, PhoneFormat.INVALID
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}", PhoneFormat.E164
    if len(digits) == 10:
        return f"+1{digits}", PhoneFormat.E164
    return digits, PhoneFormat.DIGITS


def email_key(email: Optional[str]) -> str:
    """Comparison key for lead identity; empty means "no email"."""
    return (email or "").strip().lower()


def phone_key(phone: Optional[str]) -> str:
    """Comparison key for lead identity; E.164 when it can be inferred."""
    if not phone or not phone.strip():
        return ""
    normalized, _ = normalize_phone(phone)
    if normalized:
        return normalized
    return re.sub(r"[^\d+]", "", phone.strip()) or phone.strip()


def identity_keys(email: Optional[str] = None, phone: Optional[str] = None) -> IdentityKeys:
    return IdentityKeys(email=email_key(email), phone=phone_key(phone))


def looks_like_email(value: Optional[str]) -> bool:
    return normalize_email(value) is not None


def looks_like_phone(value: Optional[str]) -> bool:
    return bool(value) and bool(_PHONE_LIKE.match(value.strip())) and any(c.isdigit() for c in value)
