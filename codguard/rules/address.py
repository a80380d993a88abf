# codguard/rules/address.py
import re
from typing import Dict, Optional

SPAIN_NAMES = {"spain", "es", "españa", "espana"}
ITALY_NAMES = {"italy", "it", "italia"}

# Spain: 5 digits, province prefix 01-52. Italy: any 5 digits.
POSTAL_PATTERNS = {
    "ES": re.compile(r"^(0[1-9]|[1-4][0-9]|5[0-2])[0-9]{3}$"),
    "IT": re.compile(r"^[0-9]{5}$"),
}

HOUSE_NUMBER_RE = re.compile(r"\d")

def country_code(country: Optional[str]) -> Optional[str]:
    c = (country or "").strip().lower()
    if c in SPAIN_NAMES:
        return "ES"
    if c in ITALY_NAMES:
        return "IT"
    return None

def is_valid_postal_code(postal_code: Optional[str], country: Optional[str]) -> bool:
    """Countries without a known pattern are accepted as-is."""
    pattern = POSTAL_PATTERNS.get(country_code(country) or "")
    if pattern is None:
        return True
    return bool(pattern.match((postal_code or "").strip()))

def has_house_number(address_line: Optional[str]) -> bool:
    return bool(HOUSE_NUMBER_RE.search(address_line or ""))

def validate_address(postal_code: Optional[str], address_line: Optional[str],
                     country: Optional[str]) -> Dict[str, bool]:
    valid = is_valid_postal_code(postal_code, country)
    house = has_house_number(address_line)
    return {
        "is_valid": valid,
        "has_house_number": house,
        "address_verified": valid and house,
    }

# ---------- language detection ----------
VOICE_LANGUAGES = {"IT": "it-IT", "ES": "es-ES"}
DEFAULT_VOICE_LANGUAGE = "es-ES"

NOTIFICATION_LANGUAGES = {"IT": "it", "ES": "es"}
DEFAULT_NOTIFICATION_LANGUAGE = "en"

def voice_language(country: Optional[str]) -> str:
    """IVR locale; Spanish covers Spain and every unmapped country."""
    return VOICE_LANGUAGES.get(country_code(country) or "", DEFAULT_VOICE_LANGUAGE)

def notification_language(country: Optional[str]) -> str:
    return NOTIFICATION_LANGUAGES.get(country_code(country) or "", DEFAULT_NOTIFICATION_LANGUAGE)

def format_address(line1: Optional[str], city: Optional[str],
                   province: Optional[str], postal_code: Optional[str]) -> str:
    return ", ".join(p for p in (line1, city, province, postal_code) if p)
