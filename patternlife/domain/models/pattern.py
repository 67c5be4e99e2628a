"""Pattern models.

A pattern is a reusable structural template scoped to a tenant. It
carries a graduation level, an optional cached quality score and the
reinforcement bookkeeping the quality scorer reads and updates.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import PatternCategory, PatternLevel, RuleOperator

GLOBAL_COMPANY = "*"


class PatternSection(BaseModel):
    """A named section of a pattern structure."""

    name: str = Field(..., description="Section name")
    field_types: list[str] = Field(
        default_factory=list, description="Field-type tokens of the section"
    )
    required: bool = Field(default=True, description="Whether the section is required")


class PatternStructure(BaseModel):
    """The structural template offered to users."""

    sections: list[PatternSection] = Field(default_factory=list)
    workflows: list[str] = Field(
        default_factory=list, description="Required workflow steps"
    )
    default_fields: list[str] = Field(default_factory=list)


class ApplicabilityRule(BaseModel):
    """Weighted predicate used to match incoming input to a pattern."""

    field: str
    operator: RuleOperator
    value: str
    weight: float = Field(default=1.0, ge=0.0)


class PatternConfidence(BaseModel):
    """Reinforcement bookkeeping for a pattern."""

    base: float = Field(default=1.0, ge=0.0, le=1.0)
    last_grounded: datetime | None = Field(
        default=None, description="Last time the pattern was used/grounded"
    )
    grounding_count: int = Field(default=0, ge=0)
    decay_rate: float = Field(default=0.01, ge=0.0)


class PatternMetadata(BaseModel):
    """Usage metadata for a pattern."""

    version: str = "1.0.0"
    created_at: datetime | None = None
    updated_at: datetime | None = None
    usage_count: int = Field(default=0, ge=0)
    success_rate: float = Field(default=0.0, ge=0.0, le=1.0)


class Pattern(BaseModel):
    """A reusable structural template.

    ``company`` is the owning tenant; ``"*"`` marks a globally shared
    pattern. ``level`` is monotonically non-decreasing over the lifetime
    of the pattern.
    """

    id: str = Field(..., description="Unique identifier (UUID)")
    company: str = Field(..., description="Owning tenant ('*' = global)")
    name: str = Field(default="", description="Display name")
    category: PatternCategory = Field(default=PatternCategory.ACTION)
    description: str = Field(default="")
    level: PatternLevel = Field(default=PatternLevel.OBSERVATION)
    structure: PatternStructure = Field(default_factory=PatternStructure)
    applicability_rules: list[ApplicabilityRule] = Field(default_factory=list)
    quality_score: int | None = Field(
        default=None,
        ge=0,
        le=100,
        description="Cached quality score (0-100), computed lazily when absent",
    )
    confidence: PatternConfidence | None = Field(default=None)
    metadata: PatternMetadata = Field(default_factory=PatternMetadata)
    graduated_at: datetime | None = Field(
        default=None, description="When the level last advanced"
    )

    @property
    def is_global(self) -> bool:
        return self.level == PatternLevel.GLOBAL
