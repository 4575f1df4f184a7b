# Overview: Built-in column type contracts (text, numeric, temporal, contact, misc).

from __future__ import annotations

import math
import re
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from urllib.parse import urlparse

from ..time_utils import parse_iso_datetime, to_utc_z
from .country import convert_to_country_code, is_blank_country_token
from .registry import TypeContract, is_blank


EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
TIME_RE = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])(?::([0-5][0-9]))?$")
COLOR_RE = re.compile(r"^#?([0-9A-Fa-f]{3}|[0-9A-Fa-f]{6}|[0-9A-Fa-f]{8})$")
INTEGER_TEXT_RE = re.compile(r"^[+-]?\d+$")

# (pattern, group order) for accepted date spellings
DATE_PATTERNS = (
    (re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$"), ("y", "m", "d")),
    (re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$"), ("m", "d", "y")),
    (re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$"), ("m", "d", "y")),
    (re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})$"), ("y", "m", "d")),
    (re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{4})$"), ("d", "m", "y")),
)
MIN_YEAR = 1900
MAX_YEAR = 2100

TRUE_TOKENS = frozenset({"true", "1", "yes", "on"})
FALSE_TOKENS = frozenset({"false", "0", "no", "off"})


def parse_number(raw: Any, message: str = "Must be a number") -> int | float:
    """Parse a finite number; integral values come back as int."""
    if isinstance(raw, bool):
        raise ValueError(message)
    if isinstance(raw, int):
        return raw
    if isinstance(raw, (float, Decimal)):
        value = float(raw)
    elif isinstance(raw, str):
        s = raw.strip()
        if INTEGER_TEXT_RE.match(s):
            return int(s)
        if "_" in s:
            raise ValueError(message)
        try:
            value = float(s)
        except ValueError:
            raise ValueError(message)
    else:
        raise ValueError(message)

    if not math.isfinite(value):
        raise ValueError(message)
    if value.is_integer():
        return int(value)
    return value


def parse_flexible_date(raw: Any) -> date:
    """
    Accept YYYY-MM-DD, MM/DD/YYYY, MM-DD-YYYY, YYYY/MM/DD, DD.MM.YYYY or an ISO datetime.
    """
    message = "Invalid date format (use YYYY-MM-DD)"
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if not isinstance(raw, str):
        raise ValueError(message)

    s = raw.strip()
    for pattern, order in DATE_PATTERNS:
        match = pattern.match(s)
        if not match:
            continue
        parts = dict(zip(order, (int(g) for g in match.groups())))
        if not MIN_YEAR <= parts["y"] <= MAX_YEAR:
            raise ValueError(message)
        try:
            return date(parts["y"], parts["m"], parts["d"])
        except ValueError:
            raise ValueError(message)

    try:
        parsed = parse_iso_datetime(s)
    except ValueError:
        raise ValueError(message)
    if parsed is None or not MIN_YEAR <= parsed.year <= MAX_YEAR:
        raise ValueError(message)
    return parsed.date()


class _NumericMixin:
    def suggest_fix(self, raw: Any) -> Optional[str]:
        try:
            parse_number(raw)
        except ValueError:
            return "Remove non-numeric characters"
        return None


class TextType(TypeContract):
    type_id = "text"
    description = "Any text value"
    example = "Hello World"

    def convert(self, raw: Any) -> str:
        if isinstance(raw, str):
            return raw.strip()
        if isinstance(raw, (dict, list)):
            raise ValueError("Must be text")
        if isinstance(raw, bool):
            return "true" if raw else "false"
        return str(raw)


class TextareaType(TextType):
    type_id = "textarea"
    description = "Multi-line text value"
    example = "First line\nSecond line"

    def convert(self, raw: Any) -> str:
        if isinstance(raw, str):
            # Interior line breaks are content; keep them
            return raw
        return super().convert(raw)


class SelectType(TextType):
    type_id = "select"
    description = "One option from a list (membership is checked by the caller)"
    example = "Option A"


class NumberType(_NumericMixin, TypeContract):
    type_id = "number"
    description = "Any number (deprecated, prefer integer or float)"
    example = "42"

    def convert(self, raw: Any) -> int | float:
        return parse_number(raw)


class IntegerType(_NumericMixin, TypeContract):
    type_id = "integer"
    description = "Whole number"
    example = "42"

    def convert(self, raw: Any) -> int:
        value = parse_number(raw, "Must be an integer")
        if not isinstance(value, int):
            raise ValueError("Must be an integer")
        return value


class FloatType(_NumericMixin, TypeContract):
    type_id = "float"
    description = "Decimal number"
    example = "3.14"

    def convert(self, raw: Any) -> float:
        return float(parse_number(raw))


class CurrencyType(_NumericMixin, TypeContract):
    type_id = "currency"
    description = "Money amount with at most 2 decimal places"
    example = "19.99"

    def convert(self, raw: Any) -> Decimal:
        number = parse_number(raw)
        text = raw.strip() if isinstance(raw, str) else repr(number)
        try:
            amount = Decimal(text)
        except InvalidOperation:
            amount = Decimal(str(number))
        cents = amount.quantize(Decimal("0.01"))
        if cents != amount:
            raise ValueError("Currency must have at most 2 decimal places")
        return cents

    def to_storage(self, value: Any) -> Any:
        return float(value) if isinstance(value, Decimal) else value


class PercentageType(_NumericMixin, TypeContract):
    type_id = "percentage"
    description = "Number between 0 and 100"
    example = "75"

    def convert(self, raw: Any) -> int | float:
        value = parse_number(raw)
        if not 0 <= value <= 100:
            raise ValueError("Percentage must be between 0 and 100")
        return value


class RatingType(_NumericMixin, TypeContract):
    type_id = "rating"
    description = "Whole number from 1 to 5, or a fraction from 0 to 1"
    example = "4"

    def convert(self, raw: Any) -> int | float:
        value = parse_number(raw)
        if isinstance(value, int) and 1 <= value <= 5:
            return value
        if 0 <= value <= 1:
            return value
        raise ValueError("Rating must be 1-5 or between 0 and 1")


class BooleanType(TypeContract):
    type_id = "boolean"
    description = "true/false, yes/no, on/off, or 1/0"
    example = "true"

    def convert(self, raw: Any) -> bool:
        if isinstance(raw, bool):
            return raw
        if isinstance(raw, (int, float)) and raw in (0, 1):
            return bool(raw)
        if isinstance(raw, str):
            token = raw.strip().lower()
            if token in TRUE_TOKENS:
                return True
            if token in FALSE_TOKENS:
                return False
        raise ValueError("Must be true/false, yes/no, or 1/0")


class DateType(TypeContract):
    type_id = "date"
    description = "Calendar date"
    example = "2024-01-15"

    def convert(self, raw: Any) -> date:
        return parse_flexible_date(raw)

    def suggest_fix(self, raw: Any) -> Optional[str]:
        return "Use format: YYYY-MM-DD (e.g., 2024-01-15)"

    def to_storage(self, value: Any) -> Any:
        return value.isoformat() if isinstance(value, date) else value


class TimeType(TypeContract):
    type_id = "time"
    description = "Time of day, 24-hour clock"
    example = "14:30"

    def convert(self, raw: Any) -> time:
        if isinstance(raw, time):
            return raw
        match = TIME_RE.match(raw.strip()) if isinstance(raw, str) else None
        if not match:
            raise ValueError("Invalid time format (use HH:MM or HH:MM:SS)")
        hour, minute, second = match.groups()
        return time(int(hour), int(minute), int(second or 0))

    def suggest_fix(self, raw: Any) -> Optional[str]:
        return "Use format: HH:MM or HH:MM:SS (e.g., 14:30)"

    def to_storage(self, value: Any) -> Any:
        if not isinstance(value, time):
            return value
        if value.second:
            return value.isoformat(timespec="seconds")
        return value.isoformat(timespec="minutes")


class DateTimeType(TypeContract):
    type_id = "datetime"
    description = "Date and time (ISO 8601)"
    example = "2024-01-15T14:30:00Z"

    def convert(self, raw: Any) -> datetime:
        message = "Invalid datetime format (use ISO 8601, e.g., 2024-01-15T14:30:00Z)"
        if isinstance(raw, datetime):
            return raw
        if not isinstance(raw, str):
            raise ValueError(message)
        try:
            parsed = parse_iso_datetime(raw)
        except ValueError:
            raise ValueError(message)
        if parsed is None:
            raise ValueError(message)
        return parsed

    def suggest_fix(self, raw: Any) -> Optional[str]:
        return "Use format: YYYY-MM-DDTHH:MM:SSZ (e.g., 2024-01-15T14:30:00Z)"

    def to_storage(self, value: Any) -> Any:
        return to_utc_z(value) if isinstance(value, datetime) else value


class EmailType(TypeContract):
    type_id = "email"
    description = "Email address"
    example = "user@example.com"

    def convert(self, raw: Any) -> str:
        if not isinstance(raw, str) or not EMAIL_RE.match(raw.strip()):
            raise ValueError("Invalid email address")
        return raw.strip()

    def suggest_fix(self, raw: Any) -> Optional[str]:
        if isinstance(raw, str) and "@" not in raw:
            return "Add @ symbol and domain (e.g., user@example.com)"
        return None


class UrlType(TypeContract):
    type_id = "url"
    description = "Web address including scheme"
    example = "https://example.com"

    def convert(self, raw: Any) -> str:
        message = "Invalid URL format (include a scheme such as https://)"
        if not isinstance(raw, str):
            raise ValueError(message)
        s = raw.strip()
        parsed = urlparse(s)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(message)
        return s

    def suggest_fix(self, raw: Any) -> Optional[str]:
        if isinstance(raw, str) and not raw.strip().lower().startswith("http"):
            return f"Try adding https:// prefix: https://{raw.strip()}"
        return None


class ColorType(TypeContract):
    type_id = "color"
    description = "Hex color (#RGB, #RRGGBB or #RRGGBBAA)"
    example = "#ff0000"

    def convert(self, raw: Any) -> str:
        if not isinstance(raw, str) or not COLOR_RE.match(raw.strip()):
            raise ValueError("Invalid color format (use hex: #RGB, #RRGGBB, or #RRGGBBAA)")
        return raw.strip()

    def suggest_fix(self, raw: Any) -> Optional[str]:
        return "Use hex format: #RGB or #RRGGBB (e.g., #ff0000)"


class CountryType(TypeContract):
    type_id = "country"
    description = "Country name, ISO2 or ISO3 code (stored as ISO2)"
    example = "US"

    def convert(self, raw: Any) -> str:
        return convert_to_country_code(raw)

    def is_blank(self, raw: Any) -> bool:
        return is_blank(raw) or is_blank_country_token(raw)

    def suggest_fix(self, raw: Any) -> Optional[str]:
        return "Use 2-letter ISO code (e.g., US, GB, DE)"


BUILTIN_TYPES = (
    TextType(),
    TextareaType(),
    SelectType(),
    NumberType(),
    IntegerType(),
    FloatType(),
    CurrencyType(),
    PercentageType(),
    RatingType(),
    BooleanType(),
    DateType(),
    TimeType(),
    DateTimeType(),
    EmailType(),
    UrlType(),
    ColorType(),
    CountryType(),
)
