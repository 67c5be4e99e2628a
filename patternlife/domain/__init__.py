"""Domain layer - Core business logic and models."""

from .exceptions import (
    ConfigError,
    DatabaseError,
    EmptyClusterError,
    PatternLifecycleError,
    ValidationError,
)
from .models import (
    GraduationFailure,
    Observation,
    ObservationCluster,
    ObservationOutcome,
    Pattern,
    PatternLevel,
    PatternStructure,
)

__all__ = [
    # Exceptions
    "PatternLifecycleError",
    "ConfigError",
    "ValidationError",
    "EmptyClusterError",
    "DatabaseError",
    # Models
    "Pattern",
    "PatternLevel",
    "PatternStructure",
    "Observation",
    "ObservationOutcome",
    "ObservationCluster",
    "GraduationFailure",
]
