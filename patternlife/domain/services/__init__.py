"""Domain Services Package.

This package contains the business logic layer for patternlife.

Main components:
- PatternLifecycleService: Main service class (facade/coordinator)
- ObservationService: Observation capture, structure diff and statistics
- ObservationClusterer: Pattern creation from clusters of orphan observations
- QualityScorer: Quality scores with decay and usage boost
- GraduationEngine: Level transitions, approvals and anonymization
"""

from .anonymizer import anonymize
from .clustering import ObservationClusterer
from .graduation import GraduationEngine
from .lifecycle import PatternLifecycleService
from .observation import ObservationService
from .quality import QualityScorer

__all__ = [
    "PatternLifecycleService",
    "ObservationService",
    "ObservationClusterer",
    "QualityScorer",
    "GraduationEngine",
    "anonymize",
]
