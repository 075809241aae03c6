"""Pydantic data models shared by the scorer, storage and API layers.

Scoring output, persisted records and download-token views all live here so the
repository, the pipeline and both server surfaces agree on one shape. Models
serialize with camelCase aliases, which is the JSON shape the quiz frontend and
the marketing webhook consume.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

AnswerMap = dict[str, Any]
"""Question id (e.g. ``L1_Q3``) to a single-character choice code (``a``..``d``)."""

CoreType = Literal["architect", "alchemist", "blurred"]
Layer2Path = Literal["architect", "alchemist", "mixed"]


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _FrozenModel(_Model):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ─── Scoring layers ──────────────────────────────────────────────────────────


class DecisionIdentity(_FrozenModel):
    """Layer 1: architect vs. alchemist decision identity."""

    type: str
    architect_count: int = 0
    alchemist_count: int = 0


class ExecutionSubtype(_FrozenModel):
    """Layer 2: execution subtype, scored along the path chosen by layer 1."""

    subtype: str = ""
    path: Layer2Path
    scores: dict[str, int] = Field(default_factory=dict)


class DimensionScore(_FrozenModel):
    score: int = 0
    label: str = ""


class MirrorAwareness(_FrozenModel):
    """Layer 3: six self-awareness dimensions, 0-2 points each."""

    total_score: int = 0
    max_score: int = 12
    dimensions: dict[str, DimensionScore] = Field(default_factory=dict)


class LearningStyle(_FrozenModel):
    """Layer 4: VARK learning-style histogram."""

    dominant_modality: str = "visual"
    scores: dict[str, int] = Field(default_factory=dict)
    percentages: dict[str, int] = Field(default_factory=dict)


class NeuroPerformance(_FrozenModel):
    """Layer 5: raw answer codes keyed by dimension name."""

    profile: dict[str, str] = Field(default_factory=dict)


class Mindset(_FrozenModel):
    growth_fixed: str
    abundance_scarcity: str
    challenge_comfort: str


class Personality(_FrozenModel):
    core_type: str = ""
    communication_style: str


class MindsetPersonality(_FrozenModel):
    """Layer 6: mindset axes plus personality core type and communication style."""

    mindset: Mindset
    personality: Personality


class MetaBeliefs(_FrozenModel):
    """Layer 7: meta-belief labels keyed by dimension name."""

    beliefs: dict[str, str] = Field(default_factory=dict)


class QuizResult(_FrozenModel):
    """The complete seven-layer profile produced by the scoring engine."""

    layer1: DecisionIdentity
    layer2: ExecutionSubtype
    layer3: MirrorAwareness
    layer4: LearningStyle
    layer5: NeuroPerformance
    layer6: MindsetPersonality
    layer7: MetaBeliefs

    @property
    def core_type(self) -> CoreType:
        """Lower-case core type, denormalized onto the result row for indexing."""
        if "Architect" in self.layer1.type:
            return "architect"
        if "Alchemist" in self.layer1.type:
            return "alchemist"
        return "blurred"

    @property
    def subtype(self) -> str:
        return self.layer2.subtype

    def to_payload(self) -> dict:
        """JSON-safe dict used for persistence and API responses."""
        return self.model_dump(mode="json", by_alias=True)


# ─── Persistence views ───────────────────────────────────────────────────────


class StoredResult(_Model):
    """A persisted quiz result row."""

    id: str
    email: str
    name: Optional[str] = None
    result: QuizResult
    edna_type: Optional[str] = None
    core_type: Optional[str] = None
    subtype: Optional[str] = None
    pdf_url: Optional[str] = None
    storage_key: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class DownloadToken(_Model):
    """An issued download token bound to one stored artifact."""

    token: str
    result_id: str
    storage_key: str
    expires_at: datetime
    created_at: datetime


class RedeemedToken(_Model):
    """Everything needed to mint a fresh presigned URL for a valid token."""

    token: str
    result_id: str
    storage_key: str
    expires_at: datetime
    email: str
    name: Optional[str] = None
    core_type: Optional[str] = None
    subtype: Optional[str] = None


class StoredArtifact(_Model):
    """An uploaded object: its storage key and a presigned URL for it."""

    key: str
    url: str


class PdfStatus(_Model):
    """Answer to "is the PDF ready yet?" Never blocks on the pipeline."""

    result_id: str
    ready: bool
    pdf_url: Optional[str] = None
    core_type: Optional[str] = None
    subtype: Optional[str] = None
    created_at: Optional[datetime] = None


class QuizProgress(_Model):
    """An in-progress quiz saved by the frontend."""

    email: str
    progress_data: dict[str, Any]
    updated_at: datetime
