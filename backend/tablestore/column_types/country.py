# Overview: Country input normalization to ISO 3166-1 alpha-2 codes.

from __future__ import annotations

from functools import lru_cache
from typing import Any, Optional

import pycountry

"""
Conversion order (first hit wins):
1. empty sentinels -> error
2. alias table
3. ISO alpha-2 code
4. ISO alpha-3 code -> alpha-2
5. exact country name (name, common name, official name)
6. substring match against canonical names (inputs of 4+ characters)

Every successful result is an alpha-2 code, and alpha-2 codes convert to
themselves, so convert(convert(x)) == convert(x).
"""

# "NA" is not listed: it is Namibia's alpha-2 code.
EMPTY_TOKENS = frozenset({"", "-", "–", "—", "FALSE", "NULL", "UNDEFINED", "NONE", "N/A"})

# Spreadsheet placeholders that row validation treats as a missing value
BLANK_TOKENS = frozenset({"FALSE", "NULL", "UNDEFINED", "NONE", "N/A"})

COUNTRY_ALIASES = {
    "UK": "GB",
    "UNITED KINGDOM": "GB",
    "GREAT BRITAIN": "GB",
    "BRITAIN": "GB",
    "ENGLAND": "GB",
    "SCOTLAND": "GB",
    "WALES": "GB",
    "NORTHERN IRELAND": "GB",
    "USA": "US",
    "US": "US",
    "UNITED STATES": "US",
    "UNITED STATES OF AMERICA": "US",
    "AMERICA": "US",
    "RUSSIA": "RU",
    "RUSSIAN FEDERATION": "RU",
    "GERMANY": "DE",
    "DEUTSCHLAND": "DE",
    "SOUTH KOREA": "KR",
    "NORTH KOREA": "KP",
    "VATICAN": "VA",
    "VATICAN CITY": "VA",
    "CZECH REPUBLIC": "CZ",
    "CZECHIA": "CZ",
    "HOLLAND": "NL",
    "NETHERLANDS": "NL",
    "MYANMAR": "MM",
    "BURMA": "MM",
    "IVORY COAST": "CI",
    "CÔTE D'IVOIRE": "CI",
    "COTE D'IVOIRE": "CI",
    "CAPE VERDE": "CV",
    "CABO VERDE": "CV",
    "POLSKA": "PL",
}


class CountryConversionError(ValueError):
    pass


@lru_cache(maxsize=1)
def _lookups():
    alpha2: dict[str, str] = {}
    alpha3: dict[str, str] = {}
    names: dict[str, str] = {}
    canonical: list[tuple[str, str]] = []

    for country in pycountry.countries:
        alpha2[country.alpha_2] = country.name
        alpha3[country.alpha_3] = country.alpha_2
        for attr in ("name", "common_name", "official_name"):
            value = getattr(country, attr, None)
            if value:
                names.setdefault(value.upper(), country.alpha_2)
        canonical.append((country.name.upper(), country.alpha_2))

    # Longest first so "NIGERIA" wins over "NIGER" on containment
    canonical.sort(key=lambda pair: len(pair[0]), reverse=True)
    return alpha2, alpha3, names, canonical


def convert_to_country_code(raw: Any) -> str:
    if raw is None:
        raise CountryConversionError("Country cannot be empty")

    normalized = str(raw).strip().upper()
    if normalized in EMPTY_TOKENS:
        raise CountryConversionError("Country cannot be empty")

    alias = COUNTRY_ALIASES.get(normalized)
    if alias:
        return alias

    alpha2, alpha3, names, canonical = _lookups()

    if len(normalized) == 2 and normalized in alpha2:
        return normalized
    if len(normalized) == 3 and normalized in alpha3:
        return alpha3[normalized]

    exact = names.get(normalized)
    if exact:
        return exact

    if len(normalized) >= 4:
        for name, code in canonical:
            if normalized in name or name in normalized:
                return code

    raise CountryConversionError(
        f'Invalid country: "{raw}". Use country name, ISO2 code (US), or ISO3 code (USA)'
    )


def get_country_name(code: Any) -> Optional[str]:
    if code is None:
        return None
    normalized = str(code).strip().upper()
    alpha2, alpha3, _, _ = _lookups()
    if normalized in alpha2:
        return alpha2[normalized]
    if normalized in alpha3:
        return alpha2[alpha3[normalized]]
    return None


def is_valid_country_input(raw: Any) -> bool:
    try:
        convert_to_country_code(raw)
    except CountryConversionError:
        return False
    return True


def is_blank_country_token(raw: Any) -> bool:
    return isinstance(raw, str) and raw.strip().upper() in BLANK_TOKENS
