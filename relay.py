"""Form submission relay.

A submission is verified, offered to the fallback form service, and then
recorded in ERPNext. When the fallback accepted it, the ERPNext call runs as
a background task after the response is sent; otherwise it runs inline so
the response can report whether anything was delivered at all.
"""

from typing import Optional, Tuple
from urllib.parse import urljoin, urlsplit, urlunsplit

import httpx
from fastapi import BackgroundTasks, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.formparsers import MultiPartException

from config import Settings
from erpnext import ERPNextConfig, submit_system_of_record
from errors import ClientInputError, RelayError, UnsupportedMediaTypeError
from fallback import FallbackSubmitter, FallbackTargets
from log import get_logger
from schemas import Attachment, RequestMeta, Submission, SubmissionEncoding, SubmissionOutcome
from turnstile import TOKEN_FIELD, client_ip, verify

logger = get_logger("relay")

KIND_FIELD = "form_kind"
REDIRECT_FIELD = "redirect"
DEFAULT_REDIRECT = "/thanks"


async def parse_submission(request: Request) -> Tuple[Submission, SubmissionEncoding]:
    """
    Read the request body into a Submission.

    Raises:
        UnsupportedMediaTypeError: If the content type is not a form or JSON
        ClientInputError: If the body cannot be parsed
    """
    content_type = request.headers.get("content-type")
    encoding = SubmissionEncoding.from_content_type(content_type)
    if encoding is None:
        raise UnsupportedMediaTypeError(content_type)

    if encoding == SubmissionEncoding.JSON:
        try:
            data = await request.json()
        except ValueError as e:
            raise ClientInputError("Invalid JSON body") from e
        if not isinstance(data, dict):
            raise ClientInputError("JSON body must be an object")
        return Submission.from_mapping(data), encoding

    try:
        form = await request.form()
    except (MultiPartException, StarletteHTTPException, ValueError) as e:
        raise ClientInputError("Invalid form body") from e

    pairs = []
    for key, value in form.multi_items():
        if isinstance(value, UploadFile):
            data = await value.read()
            value = Attachment(
                filename=value.filename or "",
                content_type=value.content_type or "application/octet-stream",
                data=data,
            )
        pairs.append((key, value))
    return Submission.from_pairs(pairs), encoding


def resolve_redirect(request_url: str, target: Optional[str]) -> str:
    """Resolve ``target`` against the request URL, pinned to the request's origin."""
    target = (target or "").strip() or DEFAULT_REDIRECT
    base = urlsplit(request_url)
    resolved = urlsplit(urljoin(request_url, target))
    return urlunsplit((base.scheme, base.netloc, resolved.path or "/", resolved.query, resolved.fragment))


def error_response(error: RelayError) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


class SubmissionRelay:
    """Coordinates verification, fallback delivery and the ERPNext submission."""

    def __init__(
        self,
        settings: Settings,
        client: httpx.AsyncClient,
        fallback: Optional[FallbackSubmitter] = None,
    ):
        self.settings = settings
        self.client = client
        self.fallback = fallback or FallbackSubmitter(FallbackTargets.from_settings(settings), client)
        if not len(self.fallback.targets):
            logger.warning(
                "FALLBACK_FORM_URLS is empty; every submission goes to ERPNext synchronously"
            )

    async def handle(
        self, request: Request, background_tasks: Optional[BackgroundTasks] = None
    ) -> Response:
        if request.method == "OPTIONS":
            return Response(status_code=204)
        if request.method != "POST":
            return Response(status_code=405, headers={"Allow": "POST, OPTIONS"})

        try:
            submission, encoding = await parse_submission(request)
        except ClientInputError as e:
            logger.info(f"Rejected submission: {e.message}")
            return error_response(e)

        meta = RequestMeta(
            ip=client_ip(request),
            user_agent=request.headers.get("user-agent", ""),
            origin=request.headers.get("origin", ""),
        )

        if self.settings.verification_enabled:
            verified = await verify(
                self.settings.turnstile_secret,
                submission.text(TOKEN_FIELD),
                meta.ip,
                self.client,
            )
            if not verified:
                logger.info("Turnstile verification failed")
                return error_response(ClientInputError("Verification failed"))

        kind = submission.text(KIND_FIELD)
        outcome = await self.relay(meta, kind, submission, encoding, background_tasks)

        if not outcome.succeeded:
            logger.error(f"Submission '{kind}' could not be delivered anywhere")
            return JSONResponse(
                status_code=502,
                content={
                    "error": {
                        "message": "Submission failed",
                        "code": "SUBMISSION_FAILED",
                        "status_code": 502,
                        "details": {},
                    }
                },
            )

        location = resolve_redirect(str(request.url), submission.text(REDIRECT_FIELD))
        return RedirectResponse(url=location, status_code=303)

    async def relay(
        self,
        meta: RequestMeta,
        kind: str,
        submission: Submission,
        encoding: SubmissionEncoding,
        background_tasks: Optional[BackgroundTasks] = None,
    ) -> SubmissionOutcome:
        """Deliver to both destinations and report which accepted it."""
        fallback_ok = await self._submit_fallback(kind, submission, encoding)

        if fallback_ok and background_tasks is not None and self.settings.defer_system_of_record:
            background_tasks.add_task(self._submit_system_of_record_deferred, meta, kind, submission)
            logger.info(f"Deferred ERPNext submission for '{kind}'")
            return SubmissionOutcome(fallback_ok=True, system_of_record_ok=True)

        system_of_record_ok = await self._submit_system_of_record(meta, kind, submission)
        return SubmissionOutcome(fallback_ok=fallback_ok, system_of_record_ok=system_of_record_ok)

    async def _submit_fallback(
        self, kind: str, submission: Submission, encoding: SubmissionEncoding
    ) -> bool:
        try:
            return await self.fallback.submit_fallback(kind, submission, encoding)
        except Exception:
            logger.exception(f"Fallback submission failed for '{kind}'")
            return False

    async def _send_to_system_of_record(
        self, meta: RequestMeta, kind: str, submission: Submission
    ) -> None:
        config = ERPNextConfig.from_settings(self.settings)
        await submit_system_of_record(config, meta, kind, submission, self.client)

    async def _submit_system_of_record(
        self, meta: RequestMeta, kind: str, submission: Submission
    ) -> bool:
        try:
            await self._send_to_system_of_record(meta, kind, submission)
            return True
        except Exception:
            logger.exception(f"ERPNext submission failed for '{kind}'")
            return False

    async def _submit_system_of_record_deferred(
        self, meta: RequestMeta, kind: str, submission: Submission
    ) -> None:
        # Runs after the response; nobody is left to report a failure to.
        try:
            await self._send_to_system_of_record(meta, kind, submission)
        except Exception as e:
            logger.error(f"Deferred ERPNext submission failed for '{kind}': {e}", exc_info=True)
