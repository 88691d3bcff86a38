"""
Schemas for the website form relay

Submission types describe what a visitor posted; the pydantic models below
map to ERPNext doctypes (Lead, Job Applicant, Comment) created per
submission.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, Field


class FormKind(str, Enum):
    """Discriminator carried in the ``form_kind`` field of every form."""

    CONTRACT_INQUIRY = "contract_inquiry"
    FULLTIME_INQUIRY = "fulltime_inquiry"
    EMPLOYER_INQUIRY = "employer_inquiry"
    CANDIDATE_APPLICATION = "candidate_application"
    JOB_APPLICATION = "job_application"


INQUIRY_KINDS = frozenset(
    {FormKind.EMPLOYER_INQUIRY, FormKind.CONTRACT_INQUIRY, FormKind.FULLTIME_INQUIRY}
)
APPLICATION_KINDS = frozenset({FormKind.CANDIDATE_APPLICATION, FormKind.JOB_APPLICATION})


class SubmissionEncoding(str, Enum):
    """Body encoding the submission arrived in."""

    URLENCODED = "application/x-www-form-urlencoded"
    MULTIPART = "multipart/form-data"
    JSON = "application/json"

    @classmethod
    def from_content_type(cls, content_type: Optional[str]) -> Optional["SubmissionEncoding"]:
        """Match a Content-Type header, ignoring parameters such as boundary."""
        media_type = (content_type or "").split(";", 1)[0].strip().lower()
        for encoding in cls:
            if encoding.value == media_type:
                return encoding
        return None


@dataclass(frozen=True)
class Attachment:
    """An uploaded file carried by a submission."""

    filename: str
    content_type: str
    data: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)


FieldValue = Union[str, Attachment]


def _scalar_to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


class Submission:
    """Ordered form fields whose values are either text or an Attachment.

    Keys may repeat (multipart and urlencoded bodies allow it); ``get``
    returns the first value for a key.
    """

    def __init__(self, pairs: Optional[Iterable[Tuple[str, FieldValue]]] = None):
        self._pairs: List[Tuple[str, FieldValue]] = []
        for key, value in pairs or ():
            self.append(key, value)

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[str, FieldValue]]) -> "Submission":
        return cls(pairs)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Submission":
        """Build from a decoded JSON object; scalars are stringified."""
        return cls((str(key), _scalar_to_text(value)) for key, value in data.items())

    def append(self, key: str, value: FieldValue) -> None:
        if not isinstance(value, (str, Attachment)):
            raise TypeError(f"Unsupported field value for '{key}': {type(value).__name__}")
        self._pairs.append((key, value))

    def get(self, key: str) -> Optional[FieldValue]:
        for name, value in self._pairs:
            if name == key:
                return value
        return None

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def text(self, key: str) -> str:
        """Stripped text value, or "" when absent or an attachment."""
        value = self.get(key)
        if isinstance(value, str):
            return value.strip()
        return ""

    def first_text(self, *keys: str) -> str:
        for key in keys:
            value = self.text(key)
            if value:
                return value
        return ""

    def attachment(self, key: str) -> Optional[Attachment]:
        value = self.get(key)
        if isinstance(value, Attachment):
            return value
        return None

    def items(self) -> List[Tuple[str, FieldValue]]:
        return list(self._pairs)

    def keys(self) -> List[str]:
        return [key for key, _ in self._pairs]

    def text_items(self) -> List[Tuple[str, str]]:
        return [(key, value) for key, value in self._pairs if isinstance(value, str)]

    def to_dict(self) -> Dict[str, str]:
        """Text fields as a plain mapping; the first value for a key wins."""
        result: Dict[str, str] = {}
        for key, value in self.text_items():
            result.setdefault(key, value)
        return result

    def copy(self) -> "Submission":
        return Submission(self._pairs)

    def __iter__(self) -> Iterator[Tuple[str, FieldValue]]:
        return iter(list(self._pairs))

    def __len__(self) -> int:
        return len(self._pairs)

    def __repr__(self) -> str:
        return f"Submission({self.keys()!r})"


@dataclass(frozen=True)
class SubmissionOutcome:
    """Result of the two delivery paths."""

    fallback_ok: bool
    system_of_record_ok: bool

    @property
    def succeeded(self) -> bool:
        return self.fallback_ok or self.system_of_record_ok


@dataclass(frozen=True)
class RequestMeta:
    """Details about the visitor recorded alongside a submission."""

    ip: str = ""
    user_agent: str = ""
    origin: str = ""


class LeadDoc(BaseModel):
    """
    Inquiry record created in ERPNext
    Doctype: ERPNEXT_LEAD_DOCTYPE (default "Lead")
    """
    lead_name: str = Field(..., description="Contact or company name")
    company_name: Optional[str] = Field(None, description="Company the inquiry is from")
    email_id: Optional[str] = Field(None, description="Contact email")
    phone: Optional[str] = Field(None, description="Phone number")
    source: Optional[str] = Field(None, description="Name of an existing Lead Source record")


class ApplicantDoc(BaseModel):
    """
    Application record created in ERPNext
    Doctype: ERPNEXT_APPLICANT_DOCTYPE (default "Job Applicant")
    """
    applicant_name: str = Field(..., description="Full name of the applicant")
    email_id: Optional[str] = Field(None, description="Applicant email")
    phone_number: Optional[str] = Field(None, description="Phone number")


class CommentDoc(BaseModel):
    """
    Note attached to a Lead or Job Applicant
    Doctype: "Comment"
    """
    comment_type: str = Field("Comment", description="ERPNext comment type")
    reference_doctype: str = Field(..., description="Doctype of the annotated record")
    reference_name: str = Field(..., description="Server-assigned name of the annotated record")
    content: str = Field(..., description="Newline-joined 'Label: value' listing")
