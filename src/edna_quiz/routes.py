"""Public HTTP endpoints, served next to the MCP transport.

The download endpoint is the link users receive by email: it validates the
token and redirects to a freshly presigned S3 URL. The rest is the JSON API the
quiz frontend and the GHL workflow call.
"""

from __future__ import annotations

import functools
import json
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable

from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import FileResponse, JSONResponse, RedirectResponse, Response
from starlette.routing import Route

from .core.errors import (
    ExpiredError,
    NotFoundError,
    PersistenceError,
    QuizError,
    RenderError,
    StorageError,
    ValidationError,
)
from .service import QuizBackend

logger = logging.getLogger(__name__)

Handler = Callable[[Request], Awaitable[Response]]

ERROR_STATUS: list[tuple[type[QuizError], int]] = [
    (ValidationError, 400),
    (NotFoundError, 404),
    (ExpiredError, 410),
    (StorageError, 502),
    (PersistenceError, 500),
    (RenderError, 500),
]


def error_response(exc: QuizError) -> JSONResponse:
    for error_type, status in ERROR_STATUS:
        if isinstance(exc, error_type):
            return JSONResponse({"success": False, "error": str(exc)}, status_code=status)
    return JSONResponse({"success": False, "error": str(exc)}, status_code=500)


async def _json_body(request: Request) -> dict:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValidationError("Request body must be JSON") from exc
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


class QuizRoutes:
    """Starlette handlers bound to one QuizBackend."""

    def __init__(self, backend: QuizBackend):
        self.backend = backend

    def _handle(self, func: Handler) -> Handler:
        @functools.wraps(func)
        async def endpoint(request: Request) -> Response:
            try:
                return await func(request)
            except QuizError as exc:
                if isinstance(exc, (PersistenceError, RenderError, StorageError)):
                    logger.error("%s %s failed: %s", request.method, request.url.path, exc)
                return error_response(exc)

        return endpoint

    def routes(self) -> list[Route]:
        return [
            Route("/health", self._handle(self.health), methods=["GET"]),
            Route("/download", self._handle(self.download), methods=["GET"]),
            Route("/api/quiz/submit", self._handle(self.submit), methods=["POST"]),
            Route("/api/quiz/results-by-email", self._handle(self.results_by_email), methods=["GET"]),
            Route("/api/quiz/pdf-status", self._handle(self.pdf_status), methods=["GET"]),
            Route("/api/quiz/download-pdf", self._handle(self.download_pdf), methods=["POST"]),
            Route("/api/ghl/get-pdf", self._handle(self.ghl_get_pdf), methods=["POST"]),
            Route("/api/quiz/save-progress", self._handle(self.save_progress), methods=["POST"]),
            Route("/api/quiz/get-progress", self._handle(self.get_progress), methods=["GET"]),
            Route("/api/quiz/delete-progress", self._handle(self.delete_progress), methods=["DELETE"]),
        ]

    async def health(self, request: Request) -> Response:
        return JSONResponse({
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": "edna-quiz",
            "pendingPdfJobs": self.backend.pipeline.pending,
        })

    async def download(self, request: Request) -> Response:
        """Redeem a download token: 302 to a fresh presigned URL."""
        url = await self.backend.redeem_download(request.query_params.get("token"))
        return RedirectResponse(url, status_code=302)

    async def submit(self, request: Request) -> Response:
        body = await _json_body(request)
        result_id, result = await self.backend.submit(body.get("email"), body.get("name"), body.get("answers"))
        return JSONResponse({
            "success": True,
            "resultId": result_id,
            "results": result.to_payload(),
            "message": "Results saved. PDF generation started in background.",
        })

    async def results_by_email(self, request: Request) -> Response:
        stored = await self.backend.results_by_email(request.query_params.get("email"))
        return JSONResponse({
            "success": True,
            "resultId": stored.id,
            "results": stored.result.to_payload(),
            "createdAt": stored.created_at.isoformat(),
        })

    async def pdf_status(self, request: Request) -> Response:
        status = await self.backend.pdf_status(request.query_params.get("resultId"))
        return JSONResponse({"success": True, **status.model_dump(mode="json", by_alias=True)})

    async def download_pdf(self, request: Request) -> Response:
        """Render the posted results to a PDF and send it as an attachment. Nothing is stored."""
        body = await _json_body(request)
        pdf_path, file_name = await self.backend.render_report(body.get("results"), body.get("name"))
        return FileResponse(
            pdf_path,
            media_type="application/pdf",
            filename=file_name,
            background=BackgroundTask(pdf_path.unlink, missing_ok=True),
        )

    async def ghl_get_pdf(self, request: Request) -> Response:
        """Called by the GHL workflow: latest result for an email and whether its PDF exists."""
        body = await _json_body(request)
        email = body.get("email")
        status = await self.backend.pdf_status_by_email(email)
        return JSONResponse({"success": True, "email": email, **status.model_dump(mode="json", by_alias=True)})

    async def save_progress(self, request: Request) -> Response:
        body = await _json_body(request)
        await self.backend.save_progress(body.get("email"), body.get("progressData"))
        return JSONResponse({"success": True, "message": "Quiz progress saved successfully"})

    async def get_progress(self, request: Request) -> Response:
        progress = await self.backend.get_progress(request.query_params.get("email"))
        if progress is None:
            return JSONResponse({"success": False, "message": "No saved progress found"})
        return JSONResponse({
            "success": True,
            "progressData": progress.progress_data,
            "updatedAt": progress.updated_at.isoformat(),
        })

    async def delete_progress(self, request: Request) -> Response:
        body = await _json_body(request)
        deleted = await self.backend.delete_progress(body.get("email"))
        return JSONResponse({"success": True, "deleted": deleted})
