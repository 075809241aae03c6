import asyncio
import json

import httpx
import pytest
from botocore.exceptions import ClientError

from edna_quiz.core.clients.ghl import GhlNotifier, build_payload
from edna_quiz.core.clients.renderer import ReportRenderer, report_sections
from edna_quiz.core.clients.storage import MAX_PRESIGN_SECONDS, S3Storage
from edna_quiz.core.errors import NotificationError, RenderError, StorageError, ValidationError
from edna_quiz.core.scoring import score_answers

from conftest import all_answers


WEBHOOK = "https://hooks.test/inbound"


# ─── GHL webhook ─────────────────────────────────────────────────────────────


def test_build_payload_falls_back_to_email_local_part():
    payload = build_payload("ada@example.com", None, "https://quiz.test/download?token=t")
    assert payload["name"] == "ada"
    assert payload["downloadLink"] == "https://quiz.test/download?token=t"
    assert payload["ednaType"] == "Unknown"
    assert payload["coreType"] == "Unknown"
    assert payload["timestamp"]


def test_notify_posts_payload():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"ok": True})

    notifier = GhlNotifier(WEBHOOK, transport=httpx.MockTransport(handler))
    sent = asyncio.run(notifier.notify("ada@example.com", "Ada", "https://quiz.test/download?token=t", "Planner", "architect"))

    assert sent is True
    assert str(seen[0].url) == WEBHOOK
    body = json.loads(seen[0].content)
    assert body["email"] == "ada@example.com"
    assert body["name"] == "Ada"
    assert body["ednaType"] == "Planner"
    assert body["coreType"] == "architect"


def test_notify_error_status_raises():
    notifier = GhlNotifier(WEBHOOK, transport=httpx.MockTransport(lambda request: httpx.Response(500, text="boom")))
    with pytest.raises(NotificationError, match="500"):
        asyncio.run(notifier.notify("ada@example.com", "Ada", "https://quiz.test/download?token=t"))


def test_notify_transport_error_raises():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    notifier = GhlNotifier(WEBHOOK, transport=httpx.MockTransport(handler))
    with pytest.raises(NotificationError):
        asyncio.run(notifier.notify("ada@example.com", "Ada", "https://quiz.test/download?token=t"))


def test_notify_without_webhook_is_skipped():
    notifier = GhlNotifier(None)
    assert notifier.enabled is False
    assert asyncio.run(notifier.notify("ada@example.com", "Ada", "https://quiz.test/download?token=t")) is False


def test_notify_requires_email_and_link():
    notifier = GhlNotifier(WEBHOOK)
    with pytest.raises(ValidationError):
        asyncio.run(notifier.notify("", "Ada", "https://quiz.test/download?token=t"))
    with pytest.raises(ValidationError):
        asyncio.run(notifier.notify("ada@example.com", "Ada", ""))


# ─── S3 storage ──────────────────────────────────────────────────────────────


class StubS3Client:
    def __init__(self, error=None):
        self.error = error
        self.uploads = []
        self.presign_calls = []

    def upload_file(self, filename, bucket, key, ExtraArgs=None):
        if self.error:
            raise self.error
        self.uploads.append((filename, bucket, key, ExtraArgs))

    def generate_presigned_url(self, ClientMethod, Params, ExpiresIn):
        if self.error:
            raise self.error
        self.presign_calls.append((ClientMethod, Params, ExpiresIn))
        return f"https://{Params['Bucket']}.s3.test/{Params['Key']}?X-Amz-Expires={ExpiresIn}"


def test_storage_upload_returns_key_and_week_long_url(tmp_path):
    pdf = tmp_path / "report.pdf"
    pdf.write_bytes(b"%PDF-1.4")
    client = StubS3Client()
    storage = S3Storage("reports", client=client)

    key = storage.key_for("edna-results-r-1.pdf")
    artifact = asyncio.run(storage.upload(pdf, key))

    assert key == "pdfs/edna-results-r-1.pdf"
    assert artifact.key == key
    assert client.uploads == [(str(pdf), "reports", key, {"ContentType": "application/pdf"})]
    assert client.presign_calls[0][2] == MAX_PRESIGN_SECONDS
    assert artifact.url.endswith(f"X-Amz-Expires={MAX_PRESIGN_SECONDS}")


def test_storage_presign_caps_expiry():
    client = StubS3Client()
    storage = S3Storage("reports", client=client)
    asyncio.run(storage.presign("pdfs/a.pdf", 25200))
    asyncio.run(storage.presign("pdfs/a.pdf", 30 * 24 * 3600))
    assert [call[2] for call in client.presign_calls] == [25200, MAX_PRESIGN_SECONDS]
    assert client.presign_calls[0][:2] == ("get_object", {"Bucket": "reports", "Key": "pdfs/a.pdf"})


def test_storage_errors_become_storage_error(tmp_path):
    pdf = tmp_path / "report.pdf"
    pdf.write_bytes(b"%PDF-1.4")
    error = ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject")
    storage = S3Storage("reports", client=StubS3Client(error=error))

    with pytest.raises(StorageError):
        asyncio.run(storage.upload(pdf, "pdfs/report.pdf"))
    with pytest.raises(StorageError):
        asyncio.run(storage.presign("pdfs/report.pdf", 60))


# ─── PDF renderer ────────────────────────────────────────────────────────────


def test_report_sections_cover_every_layer():
    sections = report_sections(score_answers(all_answers()))
    headings = [heading for heading, _ in sections]
    assert headings == [
        "Decision Identity",
        "Execution Subtype",
        "Mirror Awareness",
        "Learning Style",
        "Neuro Performance",
        "Mindset & Personality",
        "Meta-Beliefs",
    ]
    assert "Type: Strong Architect" in sections[0][1]


def test_render_to_pdf_writes_a_pdf(tmp_path):
    output = tmp_path / "out" / "report.pdf"
    path = asyncio.run(ReportRenderer().render_to_pdf(score_answers(all_answers()), "Ada", output))
    assert path == output
    assert output.read_bytes().startswith(b"%PDF")


def test_render_failure_raises_render_error(tmp_path, monkeypatch):
    from edna_quiz.core.clients import renderer as renderer_module

    def broken(*args):
        raise OSError("disk full")

    monkeypatch.setattr(renderer_module, "_draw_report", broken)
    with pytest.raises(RenderError):
        asyncio.run(ReportRenderer().render_to_pdf(score_answers({}), None, tmp_path / "x.pdf"))
