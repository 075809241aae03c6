"""Application facade used by both the MCP tools and the HTTP routes.

QuizBackend owns every long-lived resource (database engine, collaborators,
background tasks). Build one per process, start() it, and close() it on shutdown.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from .config import Settings
from .core.clients.ghl import GhlNotifier
from .core.clients.renderer import ReportRenderer
from .core.clients.storage import S3Storage
from .core.errors import ExpiredError, NotFoundError, RenderError, ValidationError
from .core.models import AnswerMap, PdfStatus, QuizProgress, QuizResult, StoredResult
from .core.scoring import score_answers
from .db import Database
from .pipeline import ArtifactPipeline, Notifier, ObjectStorage, Renderer
from .repository import ResultRepository
from .scheduler import TokenReaper

logger = logging.getLogger(__name__)

REPORT_CORE_LABELS = {"architect": "Architect", "alchemist": "Alchemist"}


def _require_email(email: Any, message: str) -> str:
    if not isinstance(email, str) or not email.strip():
        raise ValidationError(message)
    return email


def _pdf_status(stored: StoredResult) -> PdfStatus:
    return PdfStatus(
        result_id=stored.id,
        ready=bool(stored.storage_key),
        pdf_url=stored.pdf_url,
        core_type=stored.core_type,
        subtype=stored.subtype,
        created_at=stored.created_at,
    )


class QuizBackend:
    """Scoring, persistence, and the download-token protocol behind one object."""

    def __init__(
        self,
        settings: Settings,
        database: Database,
        repository: ResultRepository,
        storage: ObjectStorage,
        renderer: Renderer,
        notifier: Notifier,
    ):
        self.settings = settings
        self.database = database
        self.repository = repository
        self.storage = storage
        self.renderer = renderer
        self.pipeline = ArtifactPipeline(repository, renderer, storage, notifier, settings)
        self.reaper = TokenReaper(repository, settings.token_reap_interval_hours)

    @classmethod
    def from_settings(cls, settings: Settings) -> "QuizBackend":
        """Wire the production collaborators. Nothing connects until first use."""
        database = Database(settings.resolved_database_url())
        return cls(
            settings=settings,
            database=database,
            repository=ResultRepository(database),
            storage=S3Storage(
                bucket=settings.s3_bucket,
                region=settings.aws_region,
                endpoint_url=settings.s3_endpoint_url,
                key_prefix=settings.s3_key_prefix,
            ),
            renderer=ReportRenderer(timeout=settings.render_timeout_seconds),
            notifier=GhlNotifier(settings.ghl_webhook_url, timeout=settings.webhook_timeout_seconds),
        )

    async def start(self) -> None:
        self.settings.temp_dir.mkdir(parents=True, exist_ok=True)
        await self.database.init()
        await self.reaper.start()
        logger.info("Quiz backend started")

    async def close(self) -> None:
        await self.reaper.stop()
        await self.pipeline.stop()
        await self.database.close()
        logger.info("Quiz backend stopped")

    # ─── Submissions ─────────────────────────────────────────────────────────

    async def submit(self, email: Any, name: Any, answers: Any) -> tuple[str, QuizResult]:
        """Score and store a submission, then start PDF generation in the background.

        Returns as soon as the result row is saved; the PDF, token and webhook
        follow on a detached task.

        Raises:
            ValidationError: email or answers missing, or name not a string.
                Raised before any write.
            PersistenceError: the result could not be saved.
        """
        email = _require_email(email, "Missing required field: email")
        if name is not None and not isinstance(name, str):
            raise ValidationError("Field name must be a string")
        if not isinstance(answers, Mapping) or not answers:
            raise ValidationError("Missing required field: answers")

        result = score_answers(answers)
        result_id = str(uuid.uuid4())
        stored = await self.repository.save_result(result_id, email, name, result)
        logger.info("Quiz %s scored for %s: %s / %s", result_id, stored.email, result.layer1.type, result.subtype or "-")

        self.pipeline.spawn(result_id, stored.email, name, result)
        return result_id, result

    def score(self, answers: AnswerMap) -> QuizResult:
        return score_answers(answers)

    async def results_by_email(self, email: Any) -> StoredResult:
        email = _require_email(email, "Missing required parameter: email")
        return await self.repository.get_result_by_email(email)

    # ─── PDF readiness ───────────────────────────────────────────────────────

    async def pdf_status(self, result_id: Optional[str]) -> PdfStatus:
        """Whether the PDF for a result exists yet. Never waits on the pipeline."""
        if not result_id:
            raise ValidationError("Missing required parameter: resultId")
        return _pdf_status(await self.repository.get_result(result_id))

    async def pdf_status_by_email(self, email: Any) -> PdfStatus:
        return _pdf_status(await self.results_by_email(email))

    # ─── Download redemption ─────────────────────────────────────────────────

    async def redeem_download(self, token: Optional[str]) -> str:
        """Validate a download token and return a freshly presigned URL.

        Raises:
            ValidationError: no token supplied.
            NotFoundError: the token was never issued (or was reaped).
            ExpiredError: the token is past its expiry.
            StorageError: object storage could not presign the PDF.
        """
        if not token:
            raise ValidationError("Missing token")
        try:
            redeemed = await self.repository.redeem_token(token)
        except (NotFoundError, ExpiredError) as exc:
            logger.info("Download refused for token %s...: %s", token[:8], exc)
            raise
        url = await self.storage.presign(redeemed.storage_key, self.settings.presigned_url_ttl_seconds)
        logger.info("Download redeemed for %s (result %s)", redeemed.email, redeemed.result_id)
        return url

    # ─── On-demand report ────────────────────────────────────────────────────

    async def render_report(self, results: Any, name: Any = None) -> tuple[Path, str]:
        """Render a PDF for an already scored result without storing anything.

        Returns the temp file path and the attachment file name. The caller
        deletes the file once it has been sent.

        Raises:
            ValidationError: results missing or not a scored result payload.
            RenderError: the PDF could not be produced.
        """
        if not isinstance(results, Mapping) or not results:
            raise ValidationError("Results data is required")
        if name is not None and not isinstance(name, str):
            raise ValidationError("Field name must be a string")
        try:
            result = QuizResult.model_validate(results)
        except PydanticValidationError as exc:
            raise ValidationError(f"Results data is not a scored quiz result ({exc.error_count()} invalid fields)") from exc

        pdf_path = self.settings.temp_dir / f"edna-download-{uuid.uuid4()}.pdf"
        try:
            await self.renderer.render_to_pdf(result, name, pdf_path)
        except RenderError:
            pdf_path.unlink(missing_ok=True)
            raise

        label = REPORT_CORE_LABELS.get(result.core_type, "Mixed")
        file_name = f"EDNA-Results-{label}-{self.repository.now().date().isoformat()}.pdf"
        logger.info("On-demand PDF rendered for %s / %s", result.layer1.type, result.subtype or "-")
        return pdf_path, file_name

    # ─── Quiz progress ───────────────────────────────────────────────────────

    async def save_progress(self, email: Any, progress_data: Any) -> QuizProgress:
        if not isinstance(email, str) or not email.strip() or not isinstance(progress_data, Mapping):
            raise ValidationError("Email and progress data are required")
        return await self.repository.save_progress(email, dict(progress_data))

    async def get_progress(self, email: Any) -> Optional[QuizProgress]:
        email = _require_email(email, "Email is required")
        return await self.repository.get_progress(email)

    async def delete_progress(self, email: Any) -> bool:
        email = _require_email(email, "Email is required")
        return await self.repository.delete_progress(email)
