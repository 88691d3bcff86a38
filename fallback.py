"""Backup delivery of form submissions to a hosted form-collection service."""

from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple
from urllib.parse import urlencode

import httpx

from config import Settings
from errors import ConfigurationError, UpstreamError
from log import get_logger
from schemas import FormKind, Submission, SubmissionEncoding

logger = get_logger("fallback")

MESSAGE_FIELD = "message"
# Field name the contract inquiry form historically used for its message.
LEGACY_MESSAGE_FIELD = "message-textarea"


class FallbackTargets:
    """Immutable form kind -> destination URL table."""

    def __init__(self, urls: Mapping[str, str]):
        self._urls = MappingProxyType({str(k): v for k, v in urls.items() if v})

    @classmethod
    def from_settings(cls, settings: Settings) -> "FallbackTargets":
        return cls(settings.fallback_form_urls)

    def url_for(self, kind: str) -> Optional[str]:
        return self._urls.get(kind)

    def __contains__(self, kind: object) -> bool:
        return kind in self._urls

    def __len__(self) -> int:
        return len(self._urls)


def _multipart_parts(kind: str, submission: Submission) -> List[Tuple[str, tuple]]:
    rebuilt = submission.copy()
    if (
        kind == FormKind.CONTRACT_INQUIRY.value
        and rebuilt.has(MESSAGE_FIELD)
        and not rebuilt.has(LEGACY_MESSAGE_FIELD)
    ):
        rebuilt.append(LEGACY_MESSAGE_FIELD, rebuilt.text(MESSAGE_FIELD))

    parts: List[Tuple[str, tuple]] = []
    for key, value in rebuilt:
        if isinstance(value, str):
            # No filename: sent as a plain form field
            parts.append((key, (None, value.encode("utf-8"))))
        else:
            parts.append((key, (value.filename, value.data, value.content_type)))
    return parts


class FallbackSubmitter:
    """Forwards a submission to the fallback URL registered for its kind."""

    service = "fallback"

    def __init__(self, targets: FallbackTargets, client: httpx.AsyncClient):
        self.targets = targets
        self.client = client

    async def submit_fallback(
        self,
        kind: Optional[str],
        submission: Submission,
        encoding: SubmissionEncoding,
    ) -> bool:
        """
        Returns True when the service accepted the submission (2xx or 3xx).

        A kind with no configured URL returns False without a request; the
        caller treats that as "no fallback", not as an error.

        Raises:
            ConfigurationError: If kind is missing or blank
            UpstreamError: If the request could not be sent
        """
        kind = (kind or "").strip()
        if not kind:
            raise ConfigurationError("Missing form_kind for fallback submission")

        url = self.targets.url_for(kind)
        if not url:
            logger.info(f"No fallback configured for form kind '{kind}'")
            return False

        request_kwargs: Dict[str, object] = {"follow_redirects": False}
        if encoding == SubmissionEncoding.URLENCODED:
            request_kwargs["content"] = urlencode(submission.text_items())
            request_kwargs["headers"] = {"Content-Type": SubmissionEncoding.URLENCODED.value}
        elif encoding == SubmissionEncoding.JSON:
            request_kwargs["json"] = submission.to_dict()
        else:
            request_kwargs["files"] = _multipart_parts(kind, submission)

        try:
            response = await self.client.post(url, **request_kwargs)
        except httpx.HTTPError as e:
            raise UpstreamError(self.service, f"Fallback request to {url} failed: {e}") from e

        if 200 <= response.status_code < 400:
            logger.info(f"Fallback accepted '{kind}' submission (HTTP {response.status_code})")
            return True

        logger.warning(f"Fallback rejected '{kind}' submission (HTTP {response.status_code})")
        return False
