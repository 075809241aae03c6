"""Background PDF pipeline: render, upload, attach, issue token, notify.

Each submission gets one fire-once asyncio task. Nothing awaits it and nothing
retries it: a failure at any stage is logged with the stage name and the task
ends. Every stage transition is logged so partial failures can be traced.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from pathlib import Path
from typing import Optional, Protocol

from .config import Settings
from .core.models import QuizResult, StoredArtifact
from .repository import ResultRepository

logger = logging.getLogger(__name__)


class Renderer(Protocol):
    async def render_to_pdf(self, result: QuizResult, name: Optional[str], output_path: Path | str) -> Path: ...


class ObjectStorage(Protocol):
    def key_for(self, file_name: str) -> str: ...

    async def upload(self, local_path: Path | str, key: str) -> StoredArtifact: ...

    async def presign(self, key: str, ttl_seconds: int) -> str: ...


class Notifier(Protocol):
    async def notify(
        self,
        email: str,
        name: Optional[str],
        download_link: str,
        edna_type: Optional[str] = None,
        core_type: Optional[str] = None,
    ) -> bool: ...


class ArtifactPipeline:
    """Runs the post-submission artifact pipeline on detached tasks."""

    def __init__(
        self,
        repository: ResultRepository,
        renderer: Renderer,
        storage: ObjectStorage,
        notifier: Notifier,
        settings: Settings,
    ):
        self._repository = repository
        self._renderer = renderer
        self._storage = storage
        self._notifier = notifier
        self._settings = settings
        self._tasks: set[asyncio.Task] = set()
        self._semaphore: Optional[asyncio.Semaphore] = None

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, result_id: str, email: str, name: Optional[str], result: QuizResult) -> asyncio.Task:
        """Start the pipeline for one stored result and return immediately."""
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self._settings.pipeline_concurrency)
        task = asyncio.create_task(self._run(result_id, email, name, result), name=f"pdf-{result_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every in-flight pipeline task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def stop(self) -> None:
        """Cancel in-flight pipeline tasks."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Cancelled %d pending PDF pipeline task(s)", len(tasks))
        self._tasks.clear()

    async def _run(self, result_id: str, email: str, name: Optional[str], result: QuizResult) -> None:
        async with self._semaphore:
            await self.run_once(result_id, email, name, result)

    async def run_once(self, result_id: str, email: str, name: Optional[str], result: QuizResult) -> bool:
        """Run every stage for one result. Returns True when all stages completed."""
        file_name = f"edna-results-{result_id}.pdf"
        pdf_path = self._settings.temp_dir / file_name
        stage = "render"

        try:
            logger.info("[%s] render-started for %s", result_id, email)
            await self._renderer.render_to_pdf(result, name, pdf_path)
            logger.info("[%s] render-done", result_id)

            stage = "upload"
            artifact = await self._storage.upload(pdf_path, self._storage.key_for(file_name))
            logger.info("[%s] upload-done key=%s", result_id, artifact.key)

            stage = "attach"
            await self._repository.attach_artifact(result_id, artifact.url, artifact.key)
            logger.info("[%s] artifact-attached", result_id)

            stage = "token"
            ttl = timedelta(days=self._settings.download_token_ttl_days)
            token = await self._repository.issue_token(result_id, artifact.key, ttl)
            logger.info("[%s] token-issued expires=%s", result_id, token.expires_at.isoformat())

            stage = "notify"
            sent = await self._notifier.notify(
                email=email,
                name=name,
                download_link=self._settings.download_link(token.token),
                edna_type=result.subtype or None,
                core_type=result.core_type,
            )
            logger.info("[%s] notify-done sent=%s", result_id, sent)
        except asyncio.CancelledError:
            logger.warning("[%s] PDF pipeline cancelled during %s", result_id, stage)
            raise
        except Exception as exc:
            logger.error("[%s] PDF pipeline failed during %s for %s: %s", result_id, stage, email, exc, exc_info=True)
            return False
        finally:
            pdf_path.unlink(missing_ok=True)

        logger.info("[%s] PDF pipeline complete for %s", result_id, email)
        return True
