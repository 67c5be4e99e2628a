"""Pattern Lifecycle Service - Facade over capture, clustering, scoring and graduation.

This is the entry point used by the server and the sweep worker. It owns
the read-modify-write cycles against the pattern registry, so every
mutation of a stored pattern happens under that pattern's lock.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from ..clock import Clock, SystemClock
from ..models import (
    ApproveGraduationResult,
    CreateObservationRequest,
    DecayingPattern,
    DecayJobResult,
    DecayPreview,
    GraduateResult,
    GraduationCandidate,
    GraduationResult,
    GraduationStatus,
    GraduationSweepResult,
    Observation,
    ObservationCluster,
    ObservationOutcome,
    Pattern,
    PatternLevel,
    PatternObservationStats,
    QualityScoreResult,
    StructurePrediction,
)
from .quality import DEFAULT_LOW_THRESHOLD

if TYPE_CHECKING:
    from ...infra.locks import KeyedLock
    from ..protocols import PatternCreatedSink, PatternRegistry
    from .clustering import ObservationClusterer
    from .graduation import GraduationEngine
    from .observation import ObservationService
    from .quality import QualityScorer

logger = logging.getLogger(__name__)


class PatternLifecycleService:
    """Coordinates the pattern lifecycle components."""

    def __init__(
        self,
        registry: PatternRegistry,
        observations: ObservationService,
        clusterer: ObservationClusterer,
        scorer: QualityScorer,
        graduation: GraduationEngine,
        locks: KeyedLock,
        cluster_on_capture: bool = True,
        low_quality_threshold: int = DEFAULT_LOW_THRESHOLD,
        sinks: Iterable[PatternCreatedSink] = (),
        clock: Clock | None = None,
    ) -> None:
        self._registry = registry
        self._observations = observations
        self._clusterer = clusterer
        self._scorer = scorer
        self._graduation = graduation
        self._locks = locks
        self._cluster_on_capture = cluster_on_capture
        self._threshold = low_quality_threshold
        self._sinks = list(sinks)
        self._clock = clock or SystemClock()

    @property
    def threshold(self) -> int:
        return self._threshold

    def add_sink(self, sink: PatternCreatedSink) -> None:
        """Register a callback notified of every clustering-created pattern."""
        self._sinks.append(sink)

    # =========================================================================
    # Observation capture
    # =========================================================================

    def record_observation(
        self,
        session_id: str,
        prediction: StructurePrediction | None,
        input: str,
        outcome: ObservationOutcome,
        **kwargs,
    ) -> tuple[Observation, list[Pattern]]:
        """Capture a live observation, then cluster if it is an orphan.

        Returns:
            The observation and the patterns created by clustering.
        """
        observation = self._observations.capture(
            session_id=session_id,
            prediction=prediction,
            input=input,
            outcome=outcome,
            **kwargs,
        )
        return observation, self._after_capture(observation)

    def record_direct(
        self, request: CreateObservationRequest
    ) -> tuple[Observation, list[Pattern]]:
        """Create a direct observation, then cluster if it is an orphan."""
        observation = self._observations.create_direct(request)
        return observation, self._after_capture(observation)

    def _after_capture(self, observation: Observation) -> list[Pattern]:
        if not self._cluster_on_capture:
            return []
        if not self._clusterer.is_fallback_pattern_id(observation.pattern_id):
            return []
        return self.cluster_orphans(observation.company)

    def get_observation(self, observation_id: str) -> Observation | None:
        return self._observations.get_observation(observation_id)

    def pattern_stats(
        self, pattern_id: str, company: str | None = None
    ) -> PatternObservationStats:
        return self._observations.get_pattern_stats(pattern_id, company)

    # =========================================================================
    # Clustering
    # =========================================================================

    def find_clusters(self, company: str) -> list[ObservationCluster]:
        """Preview the clusters a pass would create, without creating them."""
        return self._clusterer.cluster_orphan_observations(company)

    def cluster_orphans(self, company: str) -> list[Pattern]:
        """Mint patterns from the company's orphan observations."""
        return self._clusterer.check_and_create_patterns(
            company, self._registry, self._sinks
        )

    # =========================================================================
    # Quality
    # =========================================================================

    def get_pattern(self, pattern_id: str) -> Pattern | None:
        return self._registry.get(pattern_id)

    def register_pattern(self, pattern: Pattern) -> Pattern:
        """Register a hand-authored or seeded pattern, replacing any with its id."""
        with self._locks.hold(pattern.id):
            self._registry.put(pattern)
        logger.info(
            f"Registered pattern {pattern.id} \"{pattern.name}\" "
            f"at level {pattern.level.name}"
        )
        return pattern.model_copy(deep=True)

    def boost_pattern(self, pattern_id: str) -> Pattern | None:
        """Reinforce a pattern after a use. Returns None if it does not exist."""
        with self._locks.hold(pattern_id):
            pattern = self._registry.get(pattern_id)
            if pattern is None:
                return None
            boosted = self._scorer.boost_on_usage(pattern)
            self._registry.put(boosted)
        logger.debug(f"Boosted pattern {pattern_id} to {boosted.quality_score}")
        return boosted

    def decay_pattern(
        self, pattern_id: str, threshold: int | None = None
    ) -> Pattern | None:
        """Apply decay to a single pattern. Returns None if it does not exist."""
        threshold = self._threshold if threshold is None else threshold
        with self._locks.hold(pattern_id):
            pattern = self._registry.get(pattern_id)
            if pattern is None:
                return None
            decayed = self._scorer.apply_decay(pattern, threshold)
            self._registry.put(decayed)
        return decayed

    def run_decay_sweep(self, threshold: int | None = None) -> DecayJobResult:
        """Decay every registered pattern.

        The registry is read once; each pattern is then re-read, decayed
        and written back under its own lock, so a concurrent boost is
        never lost.
        """
        threshold = self._threshold if threshold is None else threshold
        processed = 0
        decayed_count = 0
        dropped: list[str] = []
        skipped: list[str] = []

        for snapshot in self._registry.all():
            with self._locks.hold(snapshot.id):
                pattern = self._registry.get(snapshot.id)
                if pattern is None:
                    continue
                processed += 1
                try:
                    current = self._scorer.current_score(pattern)
                    if self._scorer.calculate_decay(pattern) <= 0:
                        continue
                    decayed = self._scorer.apply_decay(pattern, threshold)
                except (ArithmeticError, TypeError, ValueError) as e:
                    logger.warning(f"Skipping decay of pattern {pattern.id}: {e}")
                    skipped.append(pattern.id)
                    continue
                self._registry.put(decayed)

            decayed_count += 1
            if current >= threshold > (decayed.quality_score or 0):
                dropped.append(pattern.id)

        result = DecayJobResult(
            processed_count=processed,
            decayed_count=decayed_count,
            dropped_below_threshold=dropped,
            skipped=skipped,
            timestamp=self._clock.now(),
        )
        logger.info(
            f"Decay sweep completed: {decayed_count}/{processed} patterns decayed, "
            f"{len(dropped)} dropped below threshold, {len(skipped)} skipped"
        )
        return result

    def quality_report(
        self, pattern_id: str, threshold: int | None = None
    ) -> QualityScoreResult | None:
        pattern = self._registry.get(pattern_id)
        if pattern is None:
            return None
        threshold = self._threshold if threshold is None else threshold
        return self._scorer.get_quality_score_result(pattern, threshold)

    def decay_preview(
        self, pattern_id: str, threshold: int | None = None
    ) -> DecayPreview | None:
        pattern = self._registry.get(pattern_id)
        if pattern is None:
            return None
        threshold = self._threshold if threshold is None else threshold
        return self._scorer.get_decay_preview(pattern, threshold)

    def decaying_patterns(self, threshold: int | None = None) -> list[DecayingPattern]:
        threshold = self._threshold if threshold is None else threshold
        return self._scorer.get_decaying_patterns(self._registry.all(), threshold)

    def low_quality_patterns(self, threshold: int | None = None) -> list[Pattern]:
        threshold = self._threshold if threshold is None else threshold
        return self._scorer.flag_low_quality(self._registry.all(), threshold)

    # =========================================================================
    # Graduation
    # =========================================================================

    def check_graduation(self, pattern_id: str) -> GraduationResult:
        return self._graduation.check_graduation(pattern_id)

    def graduate(self, pattern_id: str, to_level: PatternLevel) -> GraduateResult:
        return self._graduation.graduate(pattern_id, to_level)

    def graduation_status(self, pattern_id: str) -> GraduationStatus | None:
        return self._graduation.get_graduation_status(pattern_id)

    def graduation_candidates(
        self, target_level: PatternLevel | None = None
    ) -> list[GraduationCandidate]:
        return self._graduation.get_graduation_candidates(target_level)

    def pending_approvals(self) -> list[GraduationCandidate]:
        return self._graduation.get_pending_approvals()

    def approve_graduation(
        self, pattern_id: str, admin_user_id: str, comment: str | None = None
    ) -> ApproveGraduationResult:
        return self._graduation.approve_graduation(pattern_id, admin_user_id, comment)

    def run_graduation_sweep(self) -> GraduationSweepResult:
        return self._graduation.check_all_graduations()
