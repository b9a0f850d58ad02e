"""
NUTS level classification of Eurostat GEO codes.

See https://ec.europa.eu/eurostat/statistics-explained/index.php?title=Glossary:Country_codes
"""
from __future__ import annotations

from typing import Dict, Optional, Tuple

GEO_LEVELS: Tuple[str, ...] = ("aggregate", "country", "nuts1", "nuts2", "nuts3", "city")
UNKNOWN_LEVEL = "unknown"

AGGREGATE_PREFIXES: Tuple[str, ...] = ("EU", "EA", "EFTA")

COUNTRY_CODES: Dict[str, str] = {
    # European Union (EU)
    "BE": "Belgium",
    "BG": "Bulgaria",
    "CZ": "Czechia",
    "DK": "Denmark",
    "DE": "Germany",
    "EE": "Estonia",
    "IE": "Ireland",
    "EL": "Greece",
    "ES": "Spain",
    "FR": "France",
    "HR": "Croatia",
    "IT": "Italy",
    "CY": "Cyprus",
    "LV": "Latvia",
    "LT": "Lithuania",
    "LU": "Luxembourg",
    "HU": "Hungary",
    "MT": "Malta",
    "NL": "Netherlands",
    "AT": "Austria",
    "PL": "Poland",
    "PT": "Portugal",
    "RO": "Romania",
    "SI": "Slovenia",
    "SK": "Slovakia",
    "FI": "Finland",
    "SE": "Sweden",
    # European Free Trade Association (EFTA)
    "IS": "Iceland",
    "LI": "Liechtenstein",
    "NO": "Norway",
    "CH": "Switzerland",
    # EU candidate countries
    "BA": "Bosnia and Herzegovina",
    "ME": "Montenegro",
    "MD": "Moldova",
    "MK": "North Macedonia",
    "GE": "Georgia",
    "AL": "Albania",
    "RS": "Serbia",
    "TR": "Türkiye",
    "UA": "Ukraine",
    # Potential candidates
    "XK": "Kosovo",
    # European Neighbourhood Policy (ENP)-East countries
    "AM": "Armenia",
    "BY": "Belarus",
    "AZ": "Azerbaijan",
    # European Neighbourhood Policy (ENP)-South countries
    "DZ": "Algeria",
    "EG": "Egypt",
    "IL": "Israel",
    "JO": "Jordan",
    "LB": "Lebanon",
    "LY": "Libya",
    "MA": "Morocco",
    "PS": "Palestine",
    "SY": "Syria",
    "TN": "Tunisia",
    # Other countries
    "AR": "Argentina",
    "AU": "Australia",
    "BR": "Brazil",
    "CA": "Canada",
    "CN_X_HK": "China (except Hong Kong)",
    "HK": "Hong Kong",
    "IN": "India",
    "JP": "Japan",
    "MX": "Mexico",
    "NG": "Nigeria",
    "NZ": "New Zealand",
    "RU": "Russia",
    "SG": "Singapore",
    "ZA": "South Africa",
    "KR": "South Korea",
    "TW": "Taiwan",
    "UK": "United Kingdom",
    "US": "United States",
}

_LEVEL_BY_LENGTH: Dict[int, str] = {
    2: "country",
    3: "nuts1",
    4: "nuts2",
    5: "nuts3",
}


def classify_geo_code(geo_code: str) -> str:
    """Return the NUTS level of a GEO code, or "aggregate" for EU/EA/EFTA groupings.

    >>> classify_geo_code("DE12")
    'nuts2'
    >>> classify_geo_code("EU27_2020")
    'aggregate'
    """
    if geo_code.startswith(AGGREGATE_PREFIXES):
        return "aggregate"

    known_prefix = geo_code[:2] in COUNTRY_CODES
    length = len(geo_code)

    if length in _LEVEL_BY_LENGTH:
        return _LEVEL_BY_LENGTH[length] if known_prefix else UNKNOWN_LEVEL
    if length == 7:
        return "city" if known_prefix and geo_code[2] == "_" else UNKNOWN_LEVEL
    return UNKNOWN_LEVEL


def country_name(code: str) -> Optional[str]:
    """Return the English name for a country code in the static table."""
    return COUNTRY_CODES.get(code.upper())
