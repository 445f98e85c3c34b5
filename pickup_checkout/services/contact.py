"""
Buyer contact validation.

Normalizes the email and phone a buyer submits at checkout so orders store
one canonical form:
- email: syntax-checked and normalized by email-validator (no DNS lookups)
- phone: parsed by phonenumbers and stored in E.164 (e.g. "+12127365000")
"""

import logging
from typing import Optional

import phonenumbers
from email_validator import EmailNotValidError, validate_email
from phonenumbers.phonenumberutil import NumberParseException

from ..config import DEFAULT_PHONE_REGION
from ..errors import ValidationError

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    if not email or not email.strip():
        raise ValidationError("Buyer email is required")
    try:
        # check_deliverability=False - syntax only, bounces are handled later
        result = validate_email(email.strip(), check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid buyer email: {e}")
    return result.normalized


def normalize_phone(phone: str, region: Optional[str] = None) -> str:
    if not phone or not phone.strip():
        raise ValidationError("Buyer phone is required")
    region = region or DEFAULT_PHONE_REGION
    try:
        parsed = phonenumbers.parse(phone.strip(), region)
    except NumberParseException as e:
        logger.debug("Phone parse failed: %s", e)
        raise ValidationError("Buyer phone number could not be understood")

    if not phonenumbers.is_valid_number(parsed):
        raise ValidationError("Buyer phone number is not valid")
    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)
