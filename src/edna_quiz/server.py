"""E-DNA Quiz MCP + HTTP server.

FastMCP tools for scoring and result lookup, served over streamable HTTP next
to the public JSON API and the /download redemption endpoint.
Run: edna-quiz-mcp
"""

from __future__ import annotations

import contextlib
import logging
from typing import AsyncIterator, Optional

import uvicorn
from mcp.server.fastmcp import FastMCP
from mcp.types import ToolAnnotations
from starlette.applications import Starlette
from starlette.routing import Mount

from .config import Settings
from .core.errors import NotFoundError
from .routes import QuizRoutes
from .service import QuizBackend

logger = logging.getLogger(__name__)

READ_ONLY = ToolAnnotations(readOnlyHint=True, destructiveHint=False, idempotentHint=True, openWorldHint=False)
WRITE = ToolAnnotations(readOnlyHint=False, destructiveHint=False, idempotentHint=False, openWorldHint=True)

settings = Settings.from_env()
backend = QuizBackend.from_settings(settings)

mcp = FastMCP(
    "E-DNA Quiz",
    instructions="Score E-DNA quiz answers across all seven layers, look up stored results by email, and check whether a results PDF is ready.",
)


# ─── Tool 1: Score ───────────────────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def quiz_score(answers: dict[str, str]) -> dict:
    """Score a set of quiz answers without storing anything.

    Args:
        answers: Question id to answer letter, e.g. {"L1_Q1": "a", "L6_Q37": "b"}.
    """
    return backend.score(answers).to_payload()


# ─── Tool 2: Submit ──────────────────────────────────────────────────────────


@mcp.tool(annotations=WRITE)
async def quiz_submit(email: str, answers: dict[str, str], name: Optional[str] = None) -> dict:
    """Score and store a submission, then generate and email the PDF report in the background.

    Args:
        email: Address the download link is sent to.
        answers: Question id to answer letter.
        name: Display name for the report and email.
    """
    result_id, result = await backend.submit(email, name, answers)
    return {
        "result_id": result_id,
        "results": result.to_payload(),
        "summary": f"{result.layer1.type} / {result.subtype or 'no subtype'}. PDF generation started.",
    }


# ─── Tool 3: Results by email ────────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def quiz_results_by_email(email: str) -> dict:
    """The most recent stored quiz result for an email address.

    Args:
        email: Address used at submission (case-insensitive).
    """
    try:
        stored = await backend.results_by_email(email)
    except NotFoundError:
        return {"found": False, "email": email, "summary": f"No quiz results found for {email}."}
    return {
        "found": True,
        "result_id": stored.id,
        "created_at": stored.created_at.isoformat(),
        "core_type": stored.core_type,
        "subtype": stored.subtype,
        "results": stored.result.to_payload(),
    }


# ─── Tool 4: PDF status ──────────────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def quiz_pdf_status(result_id: str) -> dict:
    """Whether the PDF report for a result has been generated and uploaded yet.

    Args:
        result_id: Id returned by quiz_submit.
    """
    status = await backend.pdf_status(result_id)
    return status.model_dump(mode="json")


# ─── ASGI app ────────────────────────────────────────────────────────────────


def create_app(quiz_backend: Optional[QuizBackend] = None) -> Starlette:
    """HTTP routes plus the MCP endpoint (/mcp) in one Starlette app.

    The lifespan owns the backend: it starts the database and reaper on startup
    and closes them on shutdown. A backend passed in replaces the module-level
    one, so the MCP tools and the HTTP routes always share it.

    Both the MCP transport and its session manager belong to the module-level
    ``mcp`` instance, and a session manager can only run once. Build one app per
    process: a second app's lifespan fails on startup.
    """
    global backend
    if quiz_backend is not None:
        backend = quiz_backend
    quiz_backend = backend
    mcp_app = mcp.streamable_http_app()

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        async with mcp.session_manager.run():
            await quiz_backend.start()
            try:
                yield
            finally:
                await quiz_backend.close()

    return Starlette(
        routes=[*QuizRoutes(quiz_backend).routes(), Mount("/", app=mcp_app)],
        lifespan=lifespan,
    )


def main():
    """Entry point for the CLI command."""
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    logger.info("Starting E-DNA quiz server on %s:%d", settings.host, settings.port)
    uvicorn.run(create_app(), host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
