"""
Field extractors - pull an email address or phone number out of free text
"""
import re
from typing import Optional, Pattern

EMAIL_PATTERN: Pattern = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

# Optional country prefix followed by digits with common separators
PHONE_PATTERN: Pattern = re.compile(r"(?:\+?[1-9])?[\s\-\.\(\)]*(?:\d[\s\-\.\(\)]*){7,14}")
PHONE_SEPARATORS: Pattern = re.compile(r"[\s\-\(\)\.]")

MIN_PHONE_DIGITS = 10


def extract_email(text: Optional[str]) -> Optional[str]:
    """Return the first email address in text, lowercased"""
    if not text:
        return None
    match = EMAIL_PATTERN.search(text)
    return match.group(0).lower() if match else None


def extract_phone(text: Optional[str]) -> Optional[str]:
    """
    Return the first number in text with at least 10 digits, separators removed.

    "+1 (555) 123-4567" -> "+15551234567"
    "order 1234567" -> None
    """
    if not text:
        return None
    for match in PHONE_PATTERN.finditer(text):
        phone = PHONE_SEPARATORS.sub("", match.group(0))
        if sum(c.isdigit() for c in phone) >= MIN_PHONE_DIGITS:
            return phone
    return None
