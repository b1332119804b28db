"""Input validation utilities."""

import re


def validate_phone_number(phone: str) -> bool:
    """
    Validate phone number format.

    Args:
        phone: Phone number string

    Returns:
        True if valid, False otherwise
    """
    if not phone:
        return False

    # Remove common formatting characters
    cleaned = re.sub(r'[\s\-\(\)\.]+', '', phone)

    # Check for valid E.164 format or 10-digit US number
    pattern = r'^\+?1?\d{10,15}$'
    return bool(re.match(pattern, cleaned))


def normalize_phone_number(phone: str) -> str:
    """
    Normalize phone number to E.164 format.

    Args:
        phone: Phone number string

    Returns:
        Normalized phone number, or the input unchanged if it is not a number
    """
    if not validate_phone_number(phone):
        return phone

    cleaned = re.sub(r'[\s\-\(\)\.]+', '', phone)

    # Add +1 for US numbers if not present
    if not cleaned.startswith('+'):
        if not cleaned.startswith('1'):
            cleaned = '1' + cleaned
        cleaned = '+' + cleaned

    return cleaned


def sanitize_input(text: str, max_length: int = 1000) -> str:
    """
    Sanitize caller input (speech results, SMS bodies).

    Args:
        text: Input text
        max_length: Maximum allowed length

    Returns:
        Sanitized text
    """
    if not text:
        return ""

    # Truncate to max length
    sanitized = text[:max_length]

    # Remove potentially harmful characters
    sanitized = re.sub(r'[<>]', '', sanitized)

    return sanitized.strip()
