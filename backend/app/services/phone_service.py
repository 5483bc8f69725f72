"""
Phone number validation for West African mobile numbers.

The chat stores the international form (+221771234567); the formatted form
is only used in replies.
"""
import re
import logging
from dataclasses import dataclass
from typing import Dict, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CountryPhoneRule:
    code: str
    prefix: str
    pattern: re.Pattern
    display_format: str


COUNTRY_RULES: Dict[str, CountryPhoneRule] = {
    "SN": CountryPhoneRule("SN", "+221", re.compile(r"^7[0-8]\d{7}$"), "XX XXX XX XX"),
    "CI": CountryPhoneRule("CI", "+225", re.compile(r"^(?:0[1-8]\d{8}|[457]\d{7})$"), "XX XX XX XX XX"),
    "BF": CountryPhoneRule("BF", "+226", re.compile(r"^[567]\d{7}$"), "XX XX XX XX"),
    "ML": CountryPhoneRule("ML", "+223", re.compile(r"^[67]\d{7}$"), "XX XX XX XX"),
    "GN": CountryPhoneRule("GN", "+224", re.compile(r"^6\d{8}$"), "XXX XX XX XX"),
}


@dataclass
class PhoneValidation:
    is_valid: bool
    formatted: str
    international: str
    error: Optional[str] = None


def clean_phone_number(phone: str) -> str:
    """Drop separators and a leading + / 00."""
    cleaned = re.sub(r"[\s.\-()/]", "", phone or "")
    if cleaned.startswith("+"):
        cleaned = cleaned[1:]
    elif cleaned.startswith("00"):
        cleaned = cleaned[2:]
    return cleaned


def format_digits(digits: str, display_format: str) -> str:
    """Group digits like the country's display format ("XX XXX XX XX")."""
    groups, index = [], 0
    for group in display_format.split():
        if index >= len(digits):
            break
        groups.append(digits[index:index + len(group)])
        index += len(group)
    if index < len(digits):
        groups.append(digits[index:])
    return " ".join(groups)


def validate_phone(phone: str, country: str = "SN") -> PhoneValidation:
    """
    Validate and format a mobile number for `country`.

    Examples:
        validate_phone("77 123 45 67")       -> valid, "+221771234567"
        validate_phone("+221 77 123 45 67")  -> valid, "+221771234567"
        validate_phone("12345")              -> invalid
    """
    rule = COUNTRY_RULES.get((country or "").upper())
    if rule is None:
        return PhoneValidation(False, phone, phone, "Pays non supporté")

    cleaned = clean_phone_number(phone)
    if not cleaned.isdigit():
        return PhoneValidation(False, phone, phone, f"Format attendu : {rule.display_format} ({rule.prefix})")

    country_digits = rule.prefix[1:]
    if cleaned.startswith(country_digits) and len(cleaned) > len(country_digits) + 6:
        cleaned = cleaned[len(country_digits):]
    # CI numbers legitimately start with 0; elsewhere a leading 0 is a trunk prefix
    if rule.code != "CI":
        cleaned = cleaned.lstrip("0")

    if not rule.pattern.match(cleaned):
        logger.debug(f"[PhoneService] Rejected number for {rule.code}: {len(cleaned)} digits")
        return PhoneValidation(False, phone, phone, f"Format attendu : {rule.display_format} ({rule.prefix})")

    formatted = format_digits(cleaned, rule.display_format)
    return PhoneValidation(True, formatted, f"{rule.prefix}{cleaned}")


def help_text(country: str = "SN") -> str:
    rule = COUNTRY_RULES.get((country or "").upper())
    if rule is None:
        return ""
    return f"Format : {rule.display_format} ({rule.prefix})"
