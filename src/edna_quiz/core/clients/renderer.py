"""PDF report rendering with reportlab.

Produces a plain A4 report: one section per scoring layer. Drawing runs in a
worker thread under a timeout so a stuck render cannot hold the pipeline.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from ..errors import RenderError
from ..models import QuizResult

logger = logging.getLogger(__name__)

PAGE_W, PAGE_H = A4
MARGIN = 20 * mm
LINE_HEIGHT = 6 * mm


def report_sections(result: QuizResult) -> list[tuple[str, list[str]]]:
    """Heading and body lines for each layer, in report order."""
    l1, l2, l3, l4 = result.layer1, result.layer2, result.layer3, result.layer4
    l6 = result.layer6

    return [
        ("Decision Identity", [
            f"Type: {l1.type}",
            f"Architect answers: {l1.architect_count}   Alchemist answers: {l1.alchemist_count}",
        ]),
        ("Execution Subtype", [
            f"Subtype: {l2.subtype or 'Not determined'} ({l2.path} path)",
            *[f"{name.capitalize()}: {count}" for name, count in sorted(l2.scores.items())],
        ]),
        ("Mirror Awareness", [
            f"Total: {l3.total_score} / {l3.max_score}",
            *[f"{name}: {dim.label or '-'} ({dim.score})" for name, dim in l3.dimensions.items()],
        ]),
        ("Learning Style", [
            f"Dominant modality: {l4.dominant_modality}",
            *[f"{modality}: {l4.percentages.get(modality, 0)}%" for modality in l4.scores],
        ]),
        ("Neuro Performance", [
            f"{name}: {code}" for name, code in result.layer5.profile.items()
        ] or ["No answers"]),
        ("Mindset & Personality", [
            f"Mindset: {l6.mindset.growth_fixed}, {l6.mindset.abundance_scarcity}, {l6.mindset.challenge_comfort}",
            f"Core type: {l6.personality.core_type or '-'}",
            f"Communication: {l6.personality.communication_style}",
        ]),
        ("Meta-Beliefs", [
            f"{name}: {label or '-'}" for name, label in result.layer7.beliefs.items()
        ] or ["No answers"]),
    ]


def _draw_report(result: QuizResult, name: Optional[str], output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    c = canvas.Canvas(str(output_path), pagesize=A4)
    c.setTitle("E-DNA Results")
    y = PAGE_H - MARGIN

    def line(text: str, font: str = "Helvetica", size: int = 11) -> None:
        nonlocal y
        if y < MARGIN:
            c.showPage()
            y = PAGE_H - MARGIN
        c.setFont(font, size)
        c.drawString(MARGIN, y, text)
        y -= LINE_HEIGHT

    line("Your E-DNA Results", "Helvetica-Bold", 20)
    if name:
        line(f"Prepared for {name}")
    y -= LINE_HEIGHT

    for heading, body in report_sections(result):
        line(heading, "Helvetica-Bold", 14)
        for text in body:
            line(text)
        y -= LINE_HEIGHT / 2

    c.showPage()
    c.save()


class ReportRenderer:
    """Renders a QuizResult to a PDF file."""

    def __init__(self, timeout: float = 60.0):
        self.timeout = timeout

    async def render_to_pdf(self, result: QuizResult, name: Optional[str], output_path: Path | str) -> Path:
        """Write the PDF report to ``output_path`` and return the path.

        Raises:
            RenderError: drawing failed or exceeded the timeout.
        """
        path = Path(output_path)
        try:
            await asyncio.wait_for(asyncio.to_thread(_draw_report, result, name, path), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise RenderError(f"PDF rendering timed out after {self.timeout:.0f}s") from exc
        except Exception as exc:
            raise RenderError(f"PDF rendering failed: {exc}") from exc
        logger.info("PDF rendered: %s", path)
        return path
