"""Tests for the submission data model."""

import pytest

from schemas import Attachment, CommentDoc, Submission, SubmissionEncoding, SubmissionOutcome


def test_submission_accessors():
    resume = Attachment(filename="cv.pdf", content_type="application/pdf", data=b"%PDF")
    submission = Submission.from_pairs(
        [("name", "  Ada  "), ("resume", resume), ("tag", "a"), ("tag", "b")]
    )

    assert submission.get("name") == "  Ada  "
    assert submission.text("name") == "Ada"
    assert submission.get("resume") is resume
    assert submission.text("resume") == ""
    assert submission.attachment("resume") is resume
    assert submission.attachment("name") is None
    assert submission.get("missing") is None
    assert submission.text("tag") == "a"
    assert submission.keys() == ["name", "resume", "tag", "tag"]
    assert submission.to_dict() == {"name": "  Ada  ", "tag": "a"}
    assert resume.size == 4


def test_submission_first_text():
    submission = Submission.from_pairs([("company", "Acme"), ("name", "")])
    assert submission.first_text("name", "company") == "Acme"
    assert submission.first_text("nothing") == ""


def test_submission_from_mapping_stringifies_json_values():
    submission = Submission.from_mapping(
        {"form_kind": "job_application", "hours": 40, "remote": True, "note": None, "tags": ["a"]}
    )
    assert submission.to_dict() == {
        "form_kind": "job_application",
        "hours": "40",
        "remote": "true",
        "note": "",
        "tags": '["a"]',
    }


def test_submission_rejects_other_values():
    with pytest.raises(TypeError):
        Submission().append("count", 3)


def test_copy_is_independent():
    original = Submission.from_pairs([("message", "hi")])
    clone = original.copy()
    clone.append("extra", "x")
    assert not original.has("extra")


@pytest.mark.parametrize(
    "content_type,expected",
    [
        ("application/json", SubmissionEncoding.JSON),
        ("application/json; charset=utf-8", SubmissionEncoding.JSON),
        ("Application/X-WWW-Form-Urlencoded", SubmissionEncoding.URLENCODED),
        ("multipart/form-data; boundary=abc", SubmissionEncoding.MULTIPART),
        ("text/plain", None),
        (None, None),
    ],
)
def test_encoding_from_content_type(content_type, expected):
    assert SubmissionEncoding.from_content_type(content_type) == expected


def test_outcome_succeeds_when_either_path_does():
    assert SubmissionOutcome(True, False).succeeded
    assert SubmissionOutcome(False, True).succeeded
    assert not SubmissionOutcome(False, False).succeeded


def test_comment_doc_defaults():
    doc = CommentDoc(reference_doctype="Lead", reference_name="CRM-LEAD-1", content="x")
    assert doc.model_dump()["comment_type"] == "Comment"
