"""Domain models for patternlife.

This package provides all domain models, organized by concern:
- enums: PatternLevel, PatternCategory, ObservationOutcome, ...
- pattern: Pattern and its structure, rules, confidence and metadata
- observation: Observation, Modification, predictions, ObservationCluster
- results: scoring, decay, statistics and graduation results
"""

from .enums import (
    GraduationFailure,
    ModificationType,
    ObservationOutcome,
    ObservationSource,
    PatternCategory,
    PatternLevel,
    RuleOperator,
)
from .observation import (
    CreateObservationRequest,
    FieldPrediction,
    Modification,
    Observation,
    ObservationCluster,
    SectionPrediction,
    StructurePrediction,
)
from .pattern import (
    GLOBAL_COMPANY,
    ApplicabilityRule,
    Pattern,
    PatternConfidence,
    PatternMetadata,
    PatternSection,
    PatternStructure,
)
from .results import (
    ApproveGraduationResult,
    DecayingPattern,
    DecayJobResult,
    DecayJobRun,
    DecayPreview,
    GraduateResult,
    GraduationCandidate,
    GraduationResult,
    GraduationStats,
    GraduationStatus,
    GraduationSweepResult,
    ModificationCount,
    OutcomeCounts,
    PatternObservationStats,
    QualityFactors,
    QualityScoreResult,
)

__all__ = [
    # Enums
    "GraduationFailure",
    "ModificationType",
    "ObservationOutcome",
    "ObservationSource",
    "PatternCategory",
    "PatternLevel",
    "RuleOperator",
    # Pattern models
    "GLOBAL_COMPANY",
    "ApplicabilityRule",
    "Pattern",
    "PatternConfidence",
    "PatternMetadata",
    "PatternSection",
    "PatternStructure",
    # Observation models
    "CreateObservationRequest",
    "FieldPrediction",
    "Modification",
    "Observation",
    "ObservationCluster",
    "SectionPrediction",
    "StructurePrediction",
    # Result models
    "ApproveGraduationResult",
    "DecayingPattern",
    "DecayJobResult",
    "DecayJobRun",
    "DecayPreview",
    "GraduateResult",
    "GraduationCandidate",
    "GraduationResult",
    "GraduationStats",
    "GraduationStatus",
    "GraduationSweepResult",
    "ModificationCount",
    "OutcomeCounts",
    "PatternObservationStats",
    "QualityFactors",
    "QualityScoreResult",
]
