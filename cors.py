"""CORS headers for the form endpoint and everything else the site serves."""

from typing import Dict, Optional

from config import Settings

ALLOW_METHODS = "POST, OPTIONS"
ALLOW_HEADERS = "Content-Type"
MAX_AGE = "86400"


def cors_headers(settings: Settings, origin: Optional[str]) -> Dict[str, str]:
    headers = {
        "Access-Control-Allow-Methods": ALLOW_METHODS,
        "Access-Control-Allow-Headers": ALLOW_HEADERS,
        "Access-Control-Max-Age": MAX_AGE,
    }
    if settings.allow_any_origin:
        headers["Access-Control-Allow-Origin"] = "*"
    elif origin and origin in settings.allowed_origin_list:
        headers["Access-Control-Allow-Origin"] = origin
        headers["Vary"] = "Origin"
    return headers
