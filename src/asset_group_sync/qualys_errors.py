"""asset_group_sync.qualys_errors

Qualys API error codes: descriptions, severity tiers and extraction from raw
response bodies.

The description table is fixed. Which codes are fatal is a separate,
per-classifier setting so operators can change abort policy without editing
the table.
"""

from __future__ import annotations

import re
from typing import Iterable

UNKNOWN = "unknown"

# Tiers returned by ErrorClassifier.classify
TIER_SUCCESS = "success"
TIER_FATAL = "fatal"
TIER_RECORDED = "recorded"
TIER_UNCLASSIFIED = "unclassified"

ERROR_CODE_TO_DESCRIPTION: dict[str, str] = {
    "1901": "Unrecognized parameter(s)",
    "1903": "Missing required parameter(s)",
    "1904": "Please specify only one of these parameters",
    "1905": "Parameter has invalid value",
    "1907": "The following combination of key=value pairs is not supported",
    "1908": "Request method (GET or POST) is incompatible with specified parameter(s)",
    "1920": "The requested operation is blocked by one or more existing Business Objects (generic conflict)",
    "1922": "Please specify at least one of the following parameters",
    "1960": "The requested operation is blocked by one or more existing Business Objects (concurrency limit)",
    "1965": "The requested operation is blocked by one or more existing Business Objects (rate limit)",
    "1981": "Your request is being processed. Please try this same request again later",
    "999": "Internal Error",
    "1999": "We are performing scheduled maintenance on our System. We apologize for any inconvenience",
    "2000": "Bad Login/Password",
    "2002": "User account is inactive",
    "2003": "Registration must be completed before API requests will be served for this account",
    "2011": "SecureID authentication is required for this account, so API access is blocked",
    "2012": "User license is not authorized to run this API",
}

_DESCRIPTION_TO_ERROR_CODE = {
    desc.lower(): code for code, desc in ERROR_CODE_TO_DESCRIPTION.items()
}

DEFAULT_FATAL_CODES = frozenset({
    "1920", "1960", "1965", "1981",
    "999", "1999", "2000", "2002", "2003", "2011", "2012",
})

# Narrow extractors: each pulls exactly one field and does not understand
# nesting, CDATA or escaping. The first match wins.
_CODE_TAG_RE = re.compile(r"<CODE>\s*(\d+)\s*</CODE>")
# A "code" key that opens a line or follows { or , and holds 3-4 digits.
# Markup attributes and compound keys such as zip-code do not match.
_CODE_KEY_RE = re.compile(
    r"""(?:^|[{,])\s*(?:"code"\s*:|'code'\s*:|code\s*[:=])\s*["']?(\d{3,4})(?!\d)""",
    re.MULTILINE,
)


def describe(code: str | None) -> str:
    if code is None:
        return UNKNOWN
    return ERROR_CODE_TO_DESCRIPTION.get(code, UNKNOWN)


def code_for(description: str) -> str:
    """Case-insensitive reverse lookup of a description."""
    return _DESCRIPTION_TO_ERROR_CODE.get(description.strip().lower(), UNKNOWN)


def extract_code(raw: str | None) -> str | None:
    """Return the numeric error code embedded in a response body, if any.

    Group-oriented (fo/asset/group) responses wrap it in <CODE>…</CODE>;
    tag-oriented responses may carry it as a `code: n` / "code": "n" field.
    """
    if not raw:
        return None
    m = _CODE_TAG_RE.search(raw) or _CODE_KEY_RE.search(raw)
    return m.group(1) if m else None


def parse_code_list(value: str | None) -> frozenset[str] | None:
    """Parse a comma-separated code list ('2000, 2002'); blank → None."""
    if value is None or not value.strip():
        return None
    return frozenset(c.strip() for c in value.split(",") if c.strip())


class ErrorClassifier:
    """Map response codes to a severity tier."""

    def __init__(self, fatal_codes: Iterable[str] | None = None) -> None:
        self.fatal_codes = frozenset(
            DEFAULT_FATAL_CODES if fatal_codes is None else fatal_codes
        )

    def describe(self, code: str | None) -> str:
        return describe(code)

    def classify(self, code: str | None) -> str:
        if code is None:
            return TIER_SUCCESS
        if code in self.fatal_codes:
            return TIER_FATAL
        if code in ERROR_CODE_TO_DESCRIPTION:
            return TIER_RECORDED
        return TIER_UNCLASSIFIED

    def classify_response(self, raw: str | None) -> tuple[str, str | None]:
        """Extract and classify in one step; returns (tier, code)."""
        code = extract_code(raw)
        return self.classify(code), code
