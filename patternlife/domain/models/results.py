"""Result models for service operations."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .enums import GraduationFailure, ModificationType, PatternLevel
from .pattern import Pattern

# =============================================================================
# Quality scoring
# =============================================================================


class QualityFactors(BaseModel):
    """Breakdown of the five quality factors (each 0-100)."""

    usage_frequency: int
    acceptance_rate: int
    consistency: int
    recency: int
    completeness: int


class QualityScoreResult(BaseModel):
    """Quality score of a pattern with its factor breakdown."""

    pattern_id: str
    score: int
    factors: QualityFactors
    is_low_quality: bool
    threshold: int


class DecayPreview(BaseModel):
    """Projected effect of decay on a pattern, without applying it."""

    pattern_id: str
    current_score: int
    projected_score: int
    decay_amount: float
    days_since_last_use: float
    will_drop_below_threshold: bool
    threshold: int


class DecayingPattern(BaseModel):
    """A pattern whose projected score would fall below the threshold."""

    pattern: Pattern
    preview: DecayPreview


class DecayJobResult(BaseModel):
    """Summary of a decay sweep."""

    processed_count: int = 0
    decayed_count: int = 0
    dropped_below_threshold: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(
        default_factory=list,
        description="Patterns whose decay could not be computed",
    )
    timestamp: datetime


class DecayJobRun(BaseModel):
    """Decay sweep summary plus the transformed snapshot."""

    result: DecayJobResult
    updated_patterns: list[Pattern] = Field(default_factory=list)


# =============================================================================
# Observation statistics
# =============================================================================


class OutcomeCounts(BaseModel):
    """Observation count per outcome."""

    accepted: int = 0
    modified: int = 0
    rejected: int = 0


class ModificationCount(BaseModel):
    """How often a given modification was made."""

    type: ModificationType
    path: str
    count: int


class PatternObservationStats(BaseModel):
    """Aggregated observation statistics of a pattern."""

    pattern_id: str
    total_observations: int = 0
    outcomes: OutcomeCounts = Field(default_factory=OutcomeCounts)
    acceptance_rate: float = 0.0
    modification_rate: float = 0.0
    rejection_rate: float = 0.0
    average_confidence: float = 0.0
    average_processing_time: float = 0.0
    common_modifications: list[ModificationCount] = Field(default_factory=list)


# =============================================================================
# Graduation
# =============================================================================


class GraduationStats(BaseModel):
    """Statistics used for graduation evaluation."""

    total_observations: int = 0
    unique_users: int = 0
    unique_projects: int = 0
    unique_companies: int = 0
    helpful_rate: float = 0.0
    acceptance_rate: float = 0.0
    modification_rate: float = 0.0
    rejection_rate: float = 0.0


class GraduationResult(BaseModel):
    """Result of checking whether a pattern can graduate."""

    can_graduate: bool
    to_level: PatternLevel | None = None
    requires_approval: bool = False
    stats: GraduationStats | None = None
    reason: str | None = None
    failure: GraduationFailure | None = None


class GraduateResult(BaseModel):
    """Result of a level transition attempt."""

    success: bool
    pattern_id: str
    from_level: PatternLevel | None = None
    to_level: PatternLevel | None = None
    pattern: Pattern | None = None
    reason: str | None = None
    failure: GraduationFailure | None = None


class GraduationCandidate(BaseModel):
    """A pattern eligible for graduation."""

    pattern_id: str
    pattern_name: str
    current_level: PatternLevel
    target_level: PatternLevel
    stats: GraduationStats
    eligible_since: datetime


class GraduationStatus(BaseModel):
    """Graduation progress of a pattern, for display."""

    pattern_id: str
    current_level: PatternLevel
    stats: GraduationStats
    can_graduate: bool
    next_level: PatternLevel | None = None
    requires_approval: bool = False
    progress: float = Field(..., ge=0.0, le=1.0)
    missing_criteria: list[str] = Field(default_factory=list)


class ApproveGraduationResult(BaseModel):
    """Result of an admin approving a graduation."""

    success: bool
    pattern_id: str
    new_level: PatternLevel | None = None
    graduated_at: datetime | None = None
    anonymized: bool = False
    approved_by: str | None = None
    comment: str | None = None
    reason: str | None = None


class GraduationSweepResult(BaseModel):
    """Summary of a graduation sweep."""

    graduated: list[str] = Field(default_factory=list)
    pending_approval: list[str] = Field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for tool responses."""
        return self.model_dump(mode="json")
