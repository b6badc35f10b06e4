"""Shared validation utilities"""

import re
from datetime import datetime
from typing import Optional

REGISTRATION_PATTERN = re.compile(r"^[A-Z]{1,3}[0-9]{1,4}[A-Z]{1,3}$")
TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def normalize_registration(registration: str) -> str:
    """Uppercase and strip all whitespace from a number plate"""
    return re.sub(r"\s+", "", registration or "").upper()


def is_valid_registration(registration: str) -> bool:
    """
    Check a UK registration number.

    Spaces are ignored; the cleaned value must be 5-8 characters and match
    the letters-digits-letters shape used by current and older plates.
    """
    cleaned = normalize_registration(registration)
    if len(cleaned) < 5 or len(cleaned) > 8:
        return False
    return bool(REGISTRATION_PATTERN.match(cleaned))


def normalize_postcode(postcode: str) -> str:
    return re.sub(r"\s+", "", postcode or "").upper()


def validate_time_string(value: Optional[str]) -> Optional[str]:
    """
    Validate a 24h "HH:MM" time.

    Raises:
        ValueError: If the value is not a valid time
    """
    if value is None:
        return value
    if not TIME_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM format")
    return value


def validate_date_string(value: Optional[str]) -> Optional[str]:
    """Validate a "YYYY-MM-DD" date"""
    if value is None:
        return value
    if not DATE_PATTERN.match(value):
        raise ValueError("Date must be in YYYY-MM-DD format")
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError as e:
        raise ValueError("Date must be a valid calendar date") from e
    return value


def validate_uk_phone(phone: Optional[str]) -> Optional[str]:
    """
    Validate and normalize a UK phone number to E.164 format (+44XXXXXXXXXX).

    Raises:
        ValueError: If phone number is invalid
    """
    if not phone:
        return phone

    digits = re.sub(r"\D", "", phone)

    if digits.startswith("44"):
        digits = digits[2:]
    elif digits.startswith("0"):
        digits = digits[1:]

    if len(digits) != 10:
        raise ValueError("Phone number must be a valid UK number")

    return f"+44{digits}"


def normalize_status_filter(status: Optional[str]) -> Optional[str]:
    """Turn a ?status= query value into a stored status, or None for no filter ('', 'all')"""
    if not status or not status.strip() or status.strip().lower() == "all":
        return None
    return status.strip().upper()
