"""
Country code normalization for shipping addresses.

Checkout forms send anything from "be" to "Belgium" to "United Kingdom".
Carriers want ISO-3166 alpha-2. Unrecognized input becomes "US" so a
checkout is never blocked on a country name; the fallback is logged.
"""
import logging
import re

logger = logging.getLogger(__name__)

DEFAULT_COUNTRY_CODE = "US"

_ALPHA2 = re.compile(r"^[A-Za-z]{2}$")

# Lower-cased country names and common synonyms -> ISO alpha-2
COUNTRY_CODES = {
    "belgium": "BE",
    "belgië": "BE",
    "belgie": "BE",
    "belgique": "BE",
    "netherlands": "NL",
    "the netherlands": "NL",
    "nederland": "NL",
    "holland": "NL",
    "germany": "DE",
    "deutschland": "DE",
    "france": "FR",
    "luxembourg": "LU",
    "united kingdom": "GB",
    "great britain": "GB",
    "britain": "GB",
    "england": "GB",
    "scotland": "GB",
    "wales": "GB",
    "ireland": "IE",
    "spain": "ES",
    "españa": "ES",
    "portugal": "PT",
    "italy": "IT",
    "italia": "IT",
    "austria": "AT",
    "switzerland": "CH",
    "denmark": "DK",
    "sweden": "SE",
    "norway": "NO",
    "finland": "FI",
    "poland": "PL",
    "czech republic": "CZ",
    "czechia": "CZ",
    "united states": "US",
    "united states of america": "US",
    "usa": "US",
    "america": "US",
    "canada": "CA",
    "mexico": "MX",
    "australia": "AU",
    "new zealand": "NZ",
    "japan": "JP",
    "china": "CN",
}


def normalize_country_code(value) -> str:
    """
    Coerce a free-form country name or code into ISO alpha-2.

    Two ASCII letters are upper-cased as-is. Names and synonyms are looked
    up case-insensitively. Anything else falls back to "US". Never raises.
    """
    text = str(value).strip() if value is not None else ""

    if _ALPHA2.match(text):
        return text.upper()

    code = COUNTRY_CODES.get(text.lower())
    if code:
        return code

    logger.warning(f"Unrecognized country {text!r}, defaulting to {DEFAULT_COUNTRY_CODE}")
    return DEFAULT_COUNTRY_CODE
