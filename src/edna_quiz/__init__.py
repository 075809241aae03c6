"""E-DNA Quiz backend.

Scores seven-layer E-DNA quiz submissions, stores results, renders PDF
reports to S3, and hands the marketing platform a time-limited download link.
"""

__version__ = "0.1.0"

from .core.models import QuizResult
from .core.scoring import score_answers

__all__ = ["QuizResult", "score_answers", "__version__"]
