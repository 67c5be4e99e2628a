"""Observation models.

An observation is one recorded outcome of a pattern being offered to a
user. Observations are immutable after capture except for the pattern
attribution, which the clustering engine rewrites when it mints a new
pattern from orphans.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .enums import ModificationType, ObservationOutcome, ObservationSource


class FieldPrediction(BaseModel):
    """A predicted field inside a section."""

    name: str
    type: str = "text"
    required: bool = False


class SectionPrediction(BaseModel):
    """A predicted section of a structure."""

    name: str
    fields: list[FieldPrediction] = Field(default_factory=list)
    order: int = 0


class StructurePrediction(BaseModel):
    """The structure offered to the user."""

    module_type: str = Field(default="unknown")
    sections: list[SectionPrediction] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class Modification(BaseModel):
    """A single structural diff between offered and final structure."""

    type: ModificationType
    path: str = Field(..., description="Path of the element, e.g. sections[0].fields[2]")
    before: Any = None
    after: Any = None


class Observation(BaseModel):
    """One recorded outcome of an offered pattern."""

    id: str = Field(..., description="Unique identifier (UUID)")
    session_id: str
    company: str
    project: str = "unknown"
    user: str = "unknown"
    pattern_id: str = Field(..., description="Pattern the outcome is attributed to")
    pattern_name: str = ""
    prediction: StructurePrediction | None = None
    outcome: ObservationOutcome
    modifications: list[Modification] = Field(default_factory=list)
    feedback: str | None = None
    input: str = Field(default="", description="Input text that triggered the offer")
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    processing_time: float = Field(default=0.0, ge=0.0, description="Milliseconds")
    timestamp: datetime
    source: ObservationSource = ObservationSource.LIVE


class ObservationCluster(BaseModel):
    """A group of similar orphan observations produced by one clustering pass."""

    id: str
    observations: list[Observation]
    centroid: str | None = Field(
        default=None, description="Representative input text (the seed)"
    )
    acceptance_rate: float = Field(..., ge=0.0, le=1.0)
    company: str
    suggested_pattern_name: str


class CreateObservationRequest(BaseModel):
    """Payload for creating an observation without a live session."""

    input: str
    company: str
    project: str | None = None
    user: str | None = None
    pattern_id: str | None = None
    pattern_name: str | None = None
    prediction: StructurePrediction
    outcome: ObservationOutcome
    final_structure: StructurePrediction | None = None
    feedback: str | None = None
    processing_time: float | None = None
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
