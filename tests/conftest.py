"""Pytest configuration and fixtures."""

import json
from typing import Callable, Dict, List, Optional

import httpx
import pytest
from fastapi import Response
from fastapi.responses import PlainTextResponse
from fastapi.testclient import TestClient

from config import Settings
from main import create_app

ERPNEXT_URL = "https://erp.example.com"
FALLBACK_URLS = {
    "contract_inquiry": "https://forms.example.com/contract",
    "fulltime_inquiry": "https://forms.example.com/fulltime",
    "employer_inquiry": "https://forms.example.com/employer",
    "candidate_application": "https://forms.example.com/candidate",
    "job_application": "https://forms.example.com/job",
}


class Recorder:
    """httpx MockTransport handler that records requests and answers by URL prefix."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self._routes: List[tuple] = []

    def on(self, prefix: str, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self._routes.insert(0, (prefix, handler))

    def respond(self, prefix: str, status_code: int = 200, **kwargs) -> None:
        self.on(prefix, lambda request: httpx.Response(status_code, **kwargs))

    def fail(self, prefix: str) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        self.on(prefix, handler)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for prefix, handler in self._routes:
            if str(request.url).startswith(prefix):
                return handler(request)
        return httpx.Response(404, text="no route")

    def calls_to(self, prefix: str) -> List[httpx.Request]:
        return [r for r in self.requests if str(r.url).startswith(prefix)]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


def erpnext_handler(request: httpx.Request) -> httpx.Response:
    """Echo created documents back with a generated name, like Frappe does."""
    path = request.url.path
    if path == "/api/method/upload_file":
        return httpx.Response(200, json={"message": {"name": "FILE-0001", "file_url": "/private/files/cv.pdf"}})
    doctype = path.rsplit("/", 1)[-1]
    doc = json.loads(request.content)
    prefix = {"Lead": "CRM-LEAD", "Job Applicant": "HR-APP", "Comment": "COMMENT"}.get(doctype, "DOC")
    return httpx.Response(200, json={"data": {**doc, "name": f"{prefix}-0001"}})


class MemoryAssetStore:
    def __init__(self, files: Dict[str, tuple]):
        self.files = files
        self.fetched: List[str] = []

    async def fetch(self, path: str) -> Response:
        self.fetched.append(path)
        if path not in self.files:
            return PlainTextResponse("Not Found", status_code=404)
        content, media_type = self.files[path]
        return Response(content=content, media_type=media_type)


def make_settings(**overrides) -> Settings:
    values = {
        "erpnext_base_url": ERPNEXT_URL,
        "erpnext_api_token": "key:secret",
        "fallback_form_urls": dict(FALLBACK_URLS),
        "turnstile_secret": None,
        "turnstile_site_key": "site-key-123",
        "allowed_origins": "",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def recorder() -> Recorder:
    rec = Recorder()
    rec.on(ERPNEXT_URL, erpnext_handler)
    for url in FALLBACK_URLS.values():
        rec.respond(url, 200, json={"ok": True})
    return rec


@pytest.fixture
def asset_store() -> MemoryAssetStore:
    return MemoryAssetStore(
        {
            "/index.html": (b"<div data-sitekey=\"__TURNSTILE_SITE_KEY__\"></div>", "text/html"),
            "/jobs.html": (b"<h1>Jobs</h1>", "text/html"),
            "/about.html": (b"<h1>About</h1>", "text/html"),
            "/styles.css": (b"body{}", "text/css"),
        }
    )


@pytest.fixture
def make_client(recorder, asset_store):
    """Build a TestClient for the given settings (lifespan included)."""
    clients = []

    def _make(app_settings: Optional[Settings] = None) -> TestClient:
        app = create_app(
            app_settings or make_settings(),
            client=recorder.client(),
            asset_store=asset_store,
        )
        test_client = TestClient(app, follow_redirects=False)
        test_client.__enter__()
        clients.append(test_client)
        return test_client

    yield _make

    for test_client in clients:
        test_client.__exit__(None, None, None)


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client()
