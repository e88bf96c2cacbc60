import re

from ...exceptions import PhoneFormatInvalid

_E164 = re.compile(r"^\+[1-9][0-9]{6,14}$")
_SEPARATORS = re.compile(r"[\s\-()]")


def normalize_phone_number(phone: str, default_country_code: str = "39") -> str:
    """Return phone in E.164 form or raise PhoneFormatInvalid.

    Handles the shapes customers actually type: separators, a 00 international
    prefix, and 10-digit national mobile numbers (leading 3) without a prefix.
    """
    normalized = _SEPARATORS.sub("", phone or "")

    if normalized.startswith("00"):
        normalized = "+" + normalized[2:]

    if normalized.startswith("3") and len(normalized) == 10:
        normalized = f"+{default_country_code}{normalized}"

    if not _E164.match(normalized):
        raise PhoneFormatInvalid(
            f"Invalid phone number format: {phone}. Expected E.164 format (e.g., +393331234567)"
        )
    return normalized
