"""Static site serving: extension-less routing and site-key injection."""

import mimetypes
from pathlib import Path
from typing import Optional, Protocol, Tuple

from fastapi import Response
from fastapi.responses import PlainTextResponse
from starlette.concurrency import run_in_threadpool

from log import get_logger

logger = get_logger("assets")

HTML_ROUTES = ("/index", "/jobs", "/thanks", "/employers", "/job-detail")
SITE_KEY_PLACEHOLDER = "__TURNSTILE_SITE_KEY__"


class AssetStore(Protocol):
    """Anything that can fetch a static resource by path."""

    async def fetch(self, path: str) -> Response:
        ...


class DirectoryAssetStore:
    """Serve files below a directory; missing or escaping paths are 404."""

    def __init__(self, root: str):
        self.root = Path(root).resolve()

    def _locate(self, path: str) -> Optional[Path]:
        candidate = (self.root / path.lstrip("/")).resolve()
        if candidate != self.root and self.root not in candidate.parents:
            return None
        if not candidate.is_file():
            return None
        return candidate

    async def fetch(self, path: str) -> Response:
        file_path = self._locate(path)
        if file_path is None:
            return PlainTextResponse("Not Found", status_code=404)
        content = await run_in_threadpool(file_path.read_bytes)
        media_type, _ = mimetypes.guess_type(file_path.name)
        if media_type == "text/html":
            media_type = "text/html; charset=utf-8"
        return Response(content=content, media_type=media_type or "application/octet-stream")


def resolve_asset_path(path: str) -> Tuple[str, Optional[str]]:
    """Return the path to fetch and, for a speculative ``.html`` lookup, the
    path to fall back to when it is not found."""
    if path == "/":
        return "/index.html", None
    if path in HTML_ROUTES:
        return f"{path}.html", None
    if "." not in path:
        return f"{path}.html", path
    return path, None


async def serve_asset(store: AssetStore, path: str) -> Response:
    primary, fallback = resolve_asset_path(path)
    response = await store.fetch(primary)
    if fallback is not None and response.status_code == 404:
        logger.debug(f"No {primary}; serving {fallback} verbatim")
        response = await store.fetch(fallback)
    return response


def is_html(response: Response) -> bool:
    content_type = response.headers.get("content-type", "")
    return content_type.split(";", 1)[0].strip().lower() == "text/html"


def rewrite_html(response: Response, site_key: Optional[str]) -> Response:
    """Substitute the Turnstile site key into HTML bodies.

    The body length changes, so the old Content-Length is dropped and the
    new response computes its own.
    """
    if not is_html(response):
        return response

    charset = response.charset or "utf-8"
    body = response.body.decode(charset, errors="replace")
    body = body.replace(SITE_KEY_PLACEHOLDER, site_key or "")

    headers = {
        key: value
        for key, value in response.headers.items()
        if key.lower() != "content-length"
    }
    return Response(
        content=body.encode(charset),
        status_code=response.status_code,
        headers=headers,
    )
