"""Cloudflare Turnstile token verification."""

from typing import Optional

import httpx
from fastapi import Request

from log import get_logger

logger = get_logger("turnstile")

SITEVERIFY_URL = "https://challenges.cloudflare.com/turnstile/v0/siteverify"
TOKEN_FIELD = "cf-turnstile-response"


def client_ip(request: Request) -> str:
    """Visitor IP as seen by the edge, falling back to the socket peer."""
    ip = request.headers.get("cf-connecting-ip")
    if ip:
        return ip.strip()
    xff = request.headers.get("x-forwarded-for")
    if xff:
        # Take the left-most entry: original client.
        return xff.split(",")[0].strip()
    return request.client.host if request.client else ""


async def verify(
    secret: str,
    token: Optional[str],
    client_ip: Optional[str],
    client: httpx.AsyncClient,
) -> bool:
    """Return True only when Turnstile explicitly reports success."""
    if not token:
        return False

    data = {"secret": secret, "response": token}
    if client_ip:
        data["remoteip"] = client_ip

    try:
        response = await client.post(SITEVERIFY_URL, data=data)
    except httpx.HTTPError as e:
        logger.warning(f"Turnstile request failed: {e}")
        return False

    if not response.is_success:
        logger.warning(f"Turnstile returned HTTP {response.status_code}")
        return False

    try:
        payload = response.json()
    except ValueError:
        logger.warning("Turnstile returned an unparseable body")
        return False

    if not isinstance(payload, dict) or payload.get("success") is not True:
        logger.info(f"Turnstile rejected token: {payload!r}")
        return False
    return True
