"""Core data models for the decision engine.

Inputs (Job, Candidate) and outputs (MatchResult, ConfidenceResult, ...) are
frozen: a match run derives new objects and never mutates what it was given.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

ConfidenceBand = Literal["HIGH", "MEDIUM", "LOW"]
RiskFlagType = Literal["MISSING_DATA", "STALE_ATS_SYNC", "CONFLICTING_SIGNALS"]
RecruiterAction = Literal["PUSH", "REQUEST_INFO", "ESCALATE"]
RecommendationConfidence = Literal["low", "medium", "high"]
RecommendationStatus = Literal["pending", "applied", "dismissed"]

BAND_RANK: dict[str, int] = {"HIGH": 3, "MEDIUM": 2, "LOW": 1}


class Skill(BaseModel):
    """A skill on a job or a candidate profile."""

    model_config = ConfigDict(frozen=True)

    name: str
    normalized_name: str | None = None
    required: bool = False
    weight: float | None = None

    @property
    def key(self) -> str:
        """Identity used for matching: lower-cased, trimmed normalized name."""
        return (self.normalized_name or self.name or "").strip().lower()


class Job(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str | None = None
    location: str | None = None
    seniority_level: str | None = None
    min_experience_years: float | None = None
    max_experience_years: float | None = None
    skills: list[Skill] = Field(default_factory=list)

    @property
    def must_have_skills(self) -> list[Skill]:
        return [s for s in self.skills if s.required]

    @property
    def nice_to_have_skills(self) -> list[Skill]:
        return [s for s in self.skills if not s.required]


class Candidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str | None = None
    location: str | None = None
    total_experience_years: float | None = None
    seniority_level: str | None = None
    is_internal: bool = False
    skills: list[Skill] = Field(default_factory=list)


class MatchSignals(BaseModel):
    """Per-candidate signals, each in [0, 1]."""

    model_config = ConfigDict(frozen=True)

    must_have_skills_coverage: float = Field(ge=0.0, le=1.0)
    nice_to_have_skills_coverage: float = Field(ge=0.0, le=1.0)
    experience_alignment: float = Field(ge=0.0, le=1.0)
    location_alignment: float = Field(ge=0.0, le=1.0)

    def as_vector(self) -> dict[str, float]:
        return self.model_dump()


class MatchResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    candidate_id: str
    score: int = Field(ge=0, le=100)
    signals: MatchSignals


class RiskFlag(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: RiskFlagType
    detail: str


class ConfidenceResult(BaseModel):
    """Confidence classification for one match. ``score`` is normalized to 0-1."""

    model_config = ConfigDict(frozen=True)

    candidate_id: str
    band: ConfidenceBand
    score: float = Field(ge=0.0, le=1.0)
    reasons: list[str] = Field(default_factory=list)
    risk_flags: list[RiskFlag] = Field(default_factory=list)


class Explanation(BaseModel):
    model_config = ConfigDict(frozen=True)

    summary: str
    strengths: list[str] = Field(default_factory=list)
    risks: list[str] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)


class Justification(BaseModel):
    model_config = ConfigDict(frozen=True)

    subject: str
    body: str


class Recommendation(BaseModel):
    """A proposed guardrail change. ``status`` is owned by the recruiter."""

    id: str
    title: str
    summary: str
    rationale: str
    suggested_change: str
    confidence: RecommendationConfidence
    signals: list[str] = Field(default_factory=list)
    status: RecommendationStatus = "pending"
    system_mode: str
    generated_at: datetime = Field(default_factory=datetime.now)
