# Overview: Checkout-time validation of zip codes, emails and phone numbers.

"""
Address validation helpers used by the checkout form before an order is
placed. None of these touch the database.
"""

from __future__ import annotations

import re

from ..errors import InvalidArgumentError
from ..validation import EMAIL_RE


SERVICEABLE_AREAS = ["standard", "express"]
STANDARD_DELIVERY_DAYS = 3

# Zip prefixes we cannot deliver to, with nearby replacements to suggest
UNSERVICEABLE_PREFIX = "9"
SUGGESTED_PREFIXES = (("1", 0.9), ("2", 0.8))

DEFAULT_COUNTRY_CODE = "+91"
INDIAN_MOBILE_RE = re.compile(r"^[6-9]\d{9}$")


def validate_zip_code(zip_code: str, country: str | None = None) -> dict:
    """
    Returns {"valid": bool, ...}.

    Valid: serviceable_areas + estimated_delivery_days.
    Invalid: message + suggestions [{"zip_code", "confidence"}].

    Raises:
        InvalidArgumentError: zip shorter than 5 or longer than 10 characters
    """
    zip_code = (zip_code or "").strip()
    if not 5 <= len(zip_code) <= 10:
        raise InvalidArgumentError("Invalid zip code", {"zip_code": "must be 5-10 characters"})

    if zip_code.startswith(UNSERVICEABLE_PREFIX):
        return {
            "valid": False,
            "zip_code": zip_code,
            "message": "We do not deliver to this zip code yet",
            "suggestions": [
                {"zip_code": prefix + zip_code[1:], "confidence": confidence}
                for prefix, confidence in SUGGESTED_PREFIXES
            ],
        }

    return {
        "valid": True,
        "zip_code": zip_code,
        "country": country,
        "serviceable_areas": list(SERVICEABLE_AREAS),
        "estimated_delivery_days": STANDARD_DELIVERY_DAYS,
    }


def validate_email(email: str) -> dict:
    email = (email or "").strip()
    if not email:
        raise InvalidArgumentError("Invalid email data", {"email": "is required"})
    is_valid = bool(EMAIL_RE.match(email))
    return {
        "valid": is_valid,
        "email": email,
        "domain": email.split("@", 1)[1] if "@" in email else None,
        "suggestions": [] if is_valid else ["Please check the email format"],
    }


def validate_phone(phone: str, country_code: str | None = None) -> dict:
    """
    +91 numbers must be 10 digits starting 6-9 and are formatted
    +91-XXXXX-XXXXX. Other country codes accept 7-15 digits.
    """
    country_code = (country_code or DEFAULT_COUNTRY_CODE).strip()
    digits = re.sub(r"\D", "", phone or "")
    if not digits:
        raise InvalidArgumentError("Invalid phone data", {"phone": "is required"})

    if country_code == DEFAULT_COUNTRY_CODE:
        # Accept numbers typed with the country prefix
        if len(digits) == 12 and digits.startswith("91"):
            digits = digits[2:]
        is_valid = bool(INDIAN_MOBILE_RE.match(digits))
        formatted = f"{country_code}-{digits[:5]}-{digits[5:]}" if is_valid else None
    else:
        is_valid = 7 <= len(digits) <= 15
        formatted = f"{country_code}-{digits}" if is_valid else None

    return {
        "valid": is_valid,
        "phone": digits,
        "country_code": country_code,
        "formatted": formatted,
    }
