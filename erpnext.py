"""ERPNext integration: the system of record for inquiries and applications.

Every submission creates one record (a Lead for inquiries, a Job Applicant
for applications) followed by a Comment carrying the remaining form fields.
Applications may also upload a resume bound to the applicant. Nothing here
retries; any failure raises and the caller decides what to do with it.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import httpx

from config import Settings
from errors import AttachmentValidationError, ConfigurationError, UpstreamError
from log import get_logger
from schemas import (
    APPLICATION_KINDS,
    INQUIRY_KINDS,
    ApplicantDoc,
    Attachment,
    CommentDoc,
    FormKind,
    LeadDoc,
    RequestMeta,
    Submission,
)

logger = get_logger("erpnext")

MAX_RESUME_BYTES = 10 * 1024 * 1024
ALLOWED_RESUME_TYPES = frozenset(
    {
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/rtf",
        "text/rtf",
        "text/plain",
        "application/vnd.oasis.opendocument.text",
    }
)

RESUME_FIELD = "resume"
DEFAULT_LEAD_NAME = "Website Inquiry"
DEFAULT_APPLICANT_NAME = "Website Applicant"

NAME_FIELDS = ("name", "full_name", "contact_name")
COMPANY_FIELDS = ("company", "company_name")

INQUIRY_LISTING: Tuple[Tuple[str, str], ...] = (
    ("Position", "position"),
    ("Roles hiring for", "roles_hiring_for"),
    ("Salary range", "salary_range"),
    ("Rate range", "rate_range"),
    ("Engagement type", "engagement_type"),
    ("Weekly hours", "weekly_hours"),
    ("Duration", "duration"),
    ("Location", "location"),
    ("Role type", "role_type"),
    ("Message", "message"),
)

APPLICATION_LISTING: Tuple[Tuple[str, str], ...] = (
    ("Role of interest", "role_of_interest"),
    ("Job title", "job_title"),
    ("Resume URL", "resume_url"),
    ("Cover letter", "cover_letter"),
)


@dataclass(frozen=True)
class ERPNextConfig:
    """Connection details for the ERPNext site."""

    base_url: str
    token: str
    lead_doctype: str = "Lead"
    applicant_doctype: str = "Job Applicant"
    lead_source: Optional[str] = None
    cf_access_client_id: Optional[str] = None
    cf_access_client_secret: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "ERPNextConfig":
        """
        Raises:
            ConfigurationError: If the base URL or both credential forms are missing
        """
        base_url = (settings.erpnext_base_url or "").strip().rstrip("/")
        if not base_url:
            raise ConfigurationError("ERPNEXT_BASE_URL is not configured")

        token = (settings.erpnext_api_token or "").strip()
        if not token and settings.erpnext_api_key and settings.erpnext_api_secret:
            token = f"{settings.erpnext_api_key.strip()}:{settings.erpnext_api_secret.strip()}"
        if not token:
            raise ConfigurationError(
                "ERPNext credentials are not configured. Set ERPNEXT_API_TOKEN or "
                "ERPNEXT_API_KEY and ERPNEXT_API_SECRET"
            )

        return cls(
            base_url=base_url,
            token=token,
            lead_doctype=settings.erpnext_lead_doctype,
            applicant_doctype=settings.erpnext_applicant_doctype,
            lead_source=(settings.erpnext_lead_source or "").strip() or None,
            cf_access_client_id=settings.cf_access_client_id,
            cf_access_client_secret=settings.cf_access_client_secret,
        )

    def headers(self) -> Dict[str, str]:
        headers = {
            "Authorization": f"token {self.token}",
            "Accept": "application/json",
        }
        if self.cf_access_client_id and self.cf_access_client_secret:
            headers["CF-Access-Client-Id"] = self.cf_access_client_id
            headers["CF-Access-Client-Secret"] = self.cf_access_client_secret
        return headers


def extract_error(response: httpx.Response) -> str:
    """Best available error text from a failed ERPNext response."""
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        for key in ("exception", "message"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        server_messages = _decode_server_messages(payload.get("_server_messages"))
        if server_messages:
            return server_messages

    body = response.text.strip()
    return body or f"HTTP {response.status_code}"


def _decode_server_messages(raw: Any) -> str:
    # Frappe double-encodes: a JSON list of JSON objects with a "message" key
    if not isinstance(raw, str):
        return ""
    try:
        items = json.loads(raw)
    except ValueError:
        return raw.strip()
    messages: List[str] = []
    for item in items if isinstance(items, list) else [items]:
        if isinstance(item, str):
            try:
                item = json.loads(item)
            except ValueError:
                messages.append(item)
                continue
        if isinstance(item, dict) and item.get("message"):
            messages.append(str(item["message"]))
    return "; ".join(messages)


class ERPNextClient:
    """Thin client for the Frappe resource and upload APIs."""

    service = "erpnext"

    def __init__(self, config: ERPNextConfig, client: httpx.AsyncClient):
        self.config = config
        self.client = client

    async def _post(self, url: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = await self.client.post(url, headers=self.config.headers(), **kwargs)
        except httpx.HTTPError as e:
            raise UpstreamError(self.service, f"Request to {url} failed: {e}") from e

        if not response.is_success:
            raise UpstreamError(
                self.service,
                extract_error(response),
                status=response.status_code,
                details={"url": url},
            )

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        return payload if isinstance(payload, dict) else {}

    async def create_resource(self, doctype: str, doc: Dict[str, Any]) -> Dict[str, Any]:
        """Create a document and return it as stored (including its ``name``)."""
        url = f"{self.config.base_url}/api/resource/{doctype}"
        logger.debug(f"POST {url}")
        payload = await self._post(url, json=doc)
        data = payload.get("data")
        return data if isinstance(data, dict) else {}

    async def upload_file(
        self, doctype: str, docname: str, attachment: Attachment, is_private: bool = True
    ) -> Dict[str, Any]:
        """Attach a file to an existing document."""
        url = f"{self.config.base_url}/api/method/upload_file"
        logger.debug(f"POST {url} ({attachment.filename}, {attachment.size} bytes)")
        payload = await self._post(
            url,
            data={
                "is_private": "1" if is_private else "0",
                "doctype": doctype,
                "docname": docname,
            },
            files={"file": (attachment.filename, attachment.data, attachment.content_type)},
        )
        message = payload.get("message")
        return message if isinstance(message, dict) else {}


def build_listing(
    submission: Submission,
    fields: Tuple[Tuple[str, str], ...],
    meta: RequestMeta,
) -> str:
    lines = [f"{label}: {submission.text(key)}" for label, key in fields if submission.text(key)]
    if meta.ip:
        lines.append(f"IP: {meta.ip}")
    if meta.user_agent:
        lines.append(f"User-Agent: {meta.user_agent}")
    return "\n".join(lines)


def validate_resume(attachment: Attachment) -> None:
    if attachment.size > MAX_RESUME_BYTES:
        raise AttachmentValidationError(
            f"Resume exceeds the {MAX_RESUME_BYTES // (1024 * 1024)}MB limit",
            filename=attachment.filename,
            details={"size": attachment.size},
        )
    content_type = attachment.content_type.split(";", 1)[0].strip().lower()
    if content_type not in ALLOWED_RESUME_TYPES:
        raise AttachmentValidationError(
            f"Unsupported resume type: {content_type or 'unknown'}",
            filename=attachment.filename,
            details={"content_type": content_type},
        )


def _optional(value: str) -> Optional[str]:
    return value or None


class SystemOfRecordSubmitter:
    """Maps a generic submission onto ERPNext doctypes."""

    def __init__(self, erpnext: ERPNextClient):
        self.erpnext = erpnext

    @property
    def config(self) -> ERPNextConfig:
        return self.erpnext.config

    async def submit(self, meta: RequestMeta, kind: Optional[str], submission: Submission) -> None:
        """
        Raises:
            ConfigurationError: If kind is blank or not an ERPNext-backed kind
            UpstreamError: If ERPNext rejects a call
            AttachmentValidationError: If the resume is oversize or of a disallowed type
        """
        kind = (kind or "").strip()
        if not kind:
            raise ConfigurationError("Missing form_kind for system-of-record submission")

        try:
            form_kind = FormKind(kind)
        except ValueError:
            raise ConfigurationError(
                f"Unsupported form kind: {kind}", details={"form_kind": kind}
            ) from None

        if form_kind in INQUIRY_KINDS:
            await self._submit_inquiry(meta, submission)
        elif form_kind in APPLICATION_KINDS:
            await self._submit_application(meta, submission)
        else:
            raise ConfigurationError(f"Unsupported form kind: {kind}", details={"form_kind": kind})

    async def _add_comment(self, doctype: str, name: str, content: str) -> None:
        comment = CommentDoc(reference_doctype=doctype, reference_name=name, content=content)
        await self.erpnext.create_resource("Comment", comment.model_dump())

    async def _submit_inquiry(self, meta: RequestMeta, submission: Submission) -> None:
        contact = submission.first_text(*NAME_FIELDS)
        company = submission.first_text(*COMPANY_FIELDS)
        lead = LeadDoc(
            lead_name=contact or company or DEFAULT_LEAD_NAME,
            company_name=_optional(company),
            email_id=_optional(submission.text("email")),
            phone=_optional(submission.text("phone")),
            source=self.config.lead_source,
        )
        doctype = self.config.lead_doctype
        record = await self.erpnext.create_resource(doctype, lead.model_dump(exclude_none=True))
        name = _record_name(record, doctype)
        logger.info(f"Created {doctype} {name}")

        await self._add_comment(doctype, name, build_listing(submission, INQUIRY_LISTING, meta))

    async def _submit_application(self, meta: RequestMeta, submission: Submission) -> None:
        applicant = ApplicantDoc(
            applicant_name=submission.first_text(*NAME_FIELDS) or DEFAULT_APPLICANT_NAME,
            email_id=_optional(submission.text("email")),
            phone_number=_optional(submission.text("phone")),
        )
        doctype = self.config.applicant_doctype
        record = await self.erpnext.create_resource(
            doctype, applicant.model_dump(exclude_none=True)
        )
        name = _record_name(record, doctype)
        logger.info(f"Created {doctype} {name}")

        await self._add_comment(doctype, name, build_listing(submission, APPLICATION_LISTING, meta))

        resume = submission.attachment(RESUME_FIELD)
        if resume is None or not resume.data:
            return
        # Record and comment already exist if this raises; they are left as-is.
        validate_resume(resume)
        await self.erpnext.upload_file(doctype, name, resume)
        logger.info(f"Uploaded resume {resume.filename} to {doctype} {name}")


def _record_name(record: Dict[str, Any], doctype: str) -> str:
    name = record.get("name")
    if not name:
        raise UpstreamError("erpnext", f"ERPNext did not return a name for the new {doctype}")
    return str(name)


async def submit_system_of_record(
    config: ERPNextConfig,
    meta: RequestMeta,
    kind: Optional[str],
    submission: Submission,
    client: httpx.AsyncClient,
) -> None:
    """Create the ERPNext records for one submission; raises on any failure."""
    submitter = SystemOfRecordSubmitter(ERPNextClient(config, client))
    await submitter.submit(meta, kind, submission)
