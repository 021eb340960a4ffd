"""
Zambian mobile-money numbers.

`is_valid_phone` only judges the canonical local shape `0XXXXXXXXX`.
Numbers typed at the UI in international form (`+260...`) must go through
`normalize_phone` first.
"""
import re
from typing import Optional

COUNTRY_CODE = "260"

PROVIDER_PREFIXES = {
    "mtn": "097",
    "airtel": "096",
    "zamtel": "095",
}

PROVIDER_NAMES = {
    "mtn": "MTN Mobile Money",
    "airtel": "Airtel Money",
    "zamtel": "Zamtel Kwacha",
}

_LOCAL_PATTERNS = {
    provider: re.compile(rf"^{prefix}\d{{7}}$") for provider, prefix in PROVIDER_PREFIXES.items()
}
_SEPARATORS = re.compile(r"[\s\-\.\(\)]")


def is_valid_phone(phone: Optional[str], provider: Optional[str]) -> bool:
    if not phone or provider not in _LOCAL_PATTERNS:
        return False
    sanitized = re.sub(r"\s", "", phone)
    return bool(_LOCAL_PATTERNS[provider].match(sanitized))


def normalize_phone(phone: str) -> str:
    """Turn +260XXXXXXXXX / 260XXXXXXXXX / XXXXXXXXX into 0XXXXXXXXX."""
    cleaned = _SEPARATORS.sub("", phone or "")
    if cleaned.startswith("+" + COUNTRY_CODE) and len(cleaned) == 13:
        return "0" + cleaned[4:]
    if cleaned.startswith(COUNTRY_CODE) and len(cleaned) == 12:
        return "0" + cleaned[3:]
    if cleaned.isdigit() and len(cleaned) == 9 and not cleaned.startswith("0"):
        return "0" + cleaned
    return cleaned


def to_international(phone: str) -> str:
    local = normalize_phone(phone)
    if local.startswith("0"):
        return f"+{COUNTRY_CODE}{local[1:]}"
    return local


def detect_provider(phone: Optional[str]) -> Optional[str]:
    if not phone:
        return None
    local = normalize_phone(phone)
    for provider, pattern in _LOCAL_PATTERNS.items():
        if pattern.match(local):
            return provider
    return None


def format_phone_for_display(phone: str) -> str:
    local = normalize_phone(phone)
    if len(local) == 10 and local.isdigit():
        return f"{local[:3]} {local[3:6]} {local[6:]}"
    return phone
