import os
import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import BackgroundTasks, FastAPI, Request, Response
from fastapi.responses import PlainTextResponse

from assets import AssetStore, DirectoryAssetStore, rewrite_html, serve_asset
from config import Settings, get_settings
from cors import cors_headers
from log import log_request, set_request_id, setup_logging
from relay import SubmissionRelay

SUBMIT_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def create_app(
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
    asset_store: Optional[AssetStore] = None,
) -> FastAPI:
    """Build the site app. ``client`` and ``asset_store`` are injectable for tests."""
    settings = settings or get_settings()
    logger = setup_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_client = client is None
        http_client = client or httpx.AsyncClient(timeout=settings.http_timeout)
        app.state.relay = SubmissionRelay(settings, http_client)
        try:
            yield
        finally:
            if owns_client:
                await http_client.aclose()

    app = FastAPI(title="Site Relay", lifespan=lifespan)
    app.state.settings = settings
    app.state.assets = asset_store or DirectoryAssetStore(settings.assets_dir)

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        set_request_id(request.headers.get("x-request-id") or str(uuid.uuid4()))
        start = time.perf_counter()
        response = await call_next(request)
        for key, value in cors_headers(settings, request.headers.get("origin")).items():
            response.headers[key] = value
        log_request(
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - start) * 1000,
        )
        return response

    @app.get("/__ping")
    def ping():
        return PlainTextResponse("pong")

    @app.api_route("/api/forms/submit", methods=SUBMIT_METHODS)
    @app.api_route("/api/forms/submit/", methods=SUBMIT_METHODS)
    async def submit_form(request: Request, background_tasks: BackgroundTasks) -> Response:
        """Relay a website form to the fallback service and ERPNext."""
        return await request.app.state.relay.handle(request, background_tasks)

    @app.api_route("/{path:path}", methods=["GET", "HEAD"])
    async def site_asset(request: Request) -> Response:
        response = await serve_asset(request.app.state.assets, request.url.path)
        return rewrite_html(response, settings.turnstile_site_key)

    logger.debug(f"Serving assets from {settings.assets_dir}")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", get_settings().port))
    uvicorn.run(app, host="0.0.0.0", port=port)
