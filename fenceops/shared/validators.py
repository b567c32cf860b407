"""Shared validation utilities"""

import re
from typing import Optional

# US state abbreviations to full names mapping
US_STATES = {
    'AL': 'Alabama', 'AK': 'Alaska', 'AZ': 'Arizona', 'AR': 'Arkansas', 'CA': 'California',
    'CO': 'Colorado', 'CT': 'Connecticut', 'DE': 'Delaware', 'FL': 'Florida', 'GA': 'Georgia',
    'HI': 'Hawaii', 'ID': 'Idaho', 'IL': 'Illinois', 'IN': 'Indiana', 'IA': 'Iowa',
    'KS': 'Kansas', 'KY': 'Kentucky', 'LA': 'Louisiana', 'ME': 'Maine', 'MD': 'Maryland',
    'MA': 'Massachusetts', 'MI': 'Michigan', 'MN': 'Minnesota', 'MS': 'Mississippi', 'MO': 'Missouri',
    'MT': 'Montana', 'NE': 'Nebraska', 'NV': 'Nevada', 'NH': 'New Hampshire', 'NJ': 'New Jersey',
    'NM': 'New Mexico', 'NY': 'New York', 'NC': 'North Carolina', 'ND': 'North Dakota', 'OH': 'Ohio',
    'OK': 'Oklahoma', 'OR': 'Oregon', 'PA': 'Pennsylvania', 'RI': 'Rhode Island', 'SC': 'South Carolina',
    'SD': 'South Dakota', 'TN': 'Tennessee', 'TX': 'Texas', 'UT': 'Utah', 'VT': 'Vermont',
    'VA': 'Virginia', 'WA': 'Washington', 'WV': 'West Virginia', 'WI': 'Wisconsin', 'WY': 'Wyoming',
    'DC': 'District of Columbia'
}

# Reverse mapping for lookups
STATE_NAMES_TO_ABBREV = {v.lower(): k for k, v in US_STATES.items()}

TENANT_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,63}$")


def normalize_zipcode(zipcode: Optional[str]) -> Optional[str]:
    """Normalize ZIP code to 5-digit format, None if it is not a ZIP or ZIP+4."""
    if not zipcode:
        return None

    # Remove all non-digits
    digits = re.sub(r"\D", "", zipcode)

    if len(digits) == 5:
        return digits
    elif len(digits) == 9:
        return digits[:5]
    return None


def validate_zipcode(zipcode: Optional[str]) -> Optional[str]:
    """
    Validate a US ZIP code.

    Raises:
        ValueError: If a value was given but is not a ZIP or ZIP+4
    """
    if not zipcode:
        return None
    normalized = normalize_zipcode(zipcode)
    if not normalized:
        raise ValueError("ZIP code must be 5 digits (or ZIP+4)")
    return normalized


def normalize_state(state: Optional[str]) -> Optional[str]:
    """
    Normalize a state to its two-letter code.

    Accepts either the abbreviation or the full name ("texas" -> "TX").

    Raises:
        ValueError: If the value is not a US state
    """
    if not state:
        return None
    value = state.strip()
    if value.upper() in US_STATES:
        return value.upper()
    abbrev = STATE_NAMES_TO_ABBREV.get(value.lower())
    if abbrev:
        return abbrev
    raise ValueError(f"Unknown US state: {state}")


def validate_us_phone(phone: Optional[str]) -> Optional[str]:
    """
    Validate and normalize US phone number to E.164 format.

    Args:
        phone: Phone number string in various formats

    Returns:
        Normalized phone number in E.164 format (+1XXXXXXXXXX)

    Raises:
        ValueError: If phone number is invalid
    """
    if not phone:
        return phone

    # Remove all non-digit characters
    digits = re.sub(r"\D", "", phone)

    # Handle +1 prefix
    if digits.startswith("1") and len(digits) == 11:
        digits = digits[1:]

    # US phone numbers should have 10 digits
    if len(digits) != 10:
        raise ValueError("Phone number must be 10 digits for US numbers")

    return f"+1{digits}"


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

    if not re.match(email_pattern, email):
        raise ValueError("Invalid email format")

    return email


def validate_tenant_id(tenant_id: Optional[str]) -> bool:
    """Tenant ids are short slugs issued by the multi-tenant layer"""
    return bool(tenant_id) and bool(TENANT_ID_PATTERN.match(tenant_id))
