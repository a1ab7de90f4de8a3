"""Input validation helpers."""

import hashlib
import re
from typing import Optional
from urllib.parse import urlparse

from database.models import Contact


EMAIL_RE = re.compile(r"^[A-Za-z0-9._%+\-]+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,}$")


def validate_email(value: Optional[str]) -> bool:
    if not value:
        return False
    stripped = value.strip()
    if len(stripped) > 254:
        return False
    return bool(EMAIL_RE.match(stripped))


def normalize_email(value: Optional[str]) -> Optional[str]:
    if not value or not value.strip():
        return None
    return value.strip().lower()


def validate_phone(value: Optional[str]) -> bool:
    """Validate phone numbers - accepts any international format"""
    if not value:
        return False

    clean_phone = re.sub(r'[\s\-\(\)\.]', '', value)

    # E.164: 7 to 15 digits, optional leading +
    if re.match(r'^\+?[0-9]{7,15}$', clean_phone):
        return True

    return False


def normalize_phone(value: Optional[str]) -> Optional[str]:
    """Normalize phone number to a +digits form"""
    if not value or not value.strip():
        return None

    clean_phone = re.sub(r'[\s\-\(\)\.]', '', value)

    if clean_phone.startswith('00') and len(clean_phone) > 9:
        return '+' + clean_phone[2:]

    if not clean_phone.startswith('+') and len(clean_phone) >= 7:
        return '+' + clean_phone

    return clean_phone


def validate_photo_url(value: Optional[str]) -> bool:
    if not value:
        return False
    parsed = urlparse(value.strip())
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def derive_fingerprint(
    contact: Contact,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Optional[str]:
    """Stable participant identity used for entry limits.

    Prefers the normalized email, then the phone, then the host customer id,
    and only falls back to the network signature when no contact was given.
    Returns None when nothing identifies the participant.
    """
    email = normalize_email(contact.email)
    if email:
        source = f"email:{email}"
    elif normalize_phone(contact.phone):
        source = f"phone:{normalize_phone(contact.phone)}"
    elif contact.customer_id and contact.customer_id.strip():
        source = f"customer:{contact.customer_id.strip()}"
    elif ip_address and user_agent:
        source = f"device:{ip_address.strip()}|{user_agent.strip()}"
    else:
        return None
    return hashlib.sha256(source.encode("utf-8")).hexdigest()
