"""Quality Scorer - Scores patterns, decays unused ones, boosts used ones.

The score of a pattern is a weighted sum of five factors (each 0-100):

    usage frequency  30%
    acceptance rate  30%
    consistency      20%
    recency          10%
    completeness     10%

Unused patterns lose score over time following an exponential half-life
curve; a high acceptance rate slows the decay. Every use of a pattern
boosts it back up. All operations return new Pattern values and never
mutate their input.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable

from ...config import DecayConfig
from ..clock import Clock, SystemClock, days_between
from ..models import (
    DecayingPattern,
    DecayJobResult,
    DecayJobRun,
    DecayPreview,
    Pattern,
    PatternConfidence,
    QualityFactors,
    QualityScoreResult,
)

logger = logging.getLogger(__name__)

DEFAULT_SCORE = 50
DEFAULT_LOW_THRESHOLD = 30

WEIGHTS = {
    "usage_frequency": 0.30,
    "acceptance_rate": 0.30,
    "consistency": 0.20,
    "recency": 0.10,
    "completeness": 0.10,
}

# (minimum usage count, factor score), checked top-down
_USAGE_BUCKETS = ((100, 100), (50, 80), (20, 60), (5, 40), (1, 20))

# (maximum days since activity, factor score), checked top-down
_RECENCY_BUCKETS = ((7, 100), (30, 80), (90, 60), (180, 40), (365, 20))
_STALE_RECENCY = 10


def round_half_up(value: float, digits: int = 0) -> float:
    """Round with halves going up (2.5 -> 3), unlike ``round``."""
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


class QualityScorer:
    """Computes, decays and boosts pattern quality scores."""

    def __init__(
        self,
        decay_config: DecayConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        """Initialize the scorer.

        Args:
            decay_config: Decay model parameters. Uses defaults if not provided.
            clock: Time source. Uses the UTC wall clock if not provided.
        """
        self._decay = decay_config or DecayConfig()
        self._clock = clock or SystemClock()

    # =========================================================================
    # Scoring
    # =========================================================================

    @property
    def decay_config(self) -> DecayConfig:
        return self._decay

    @property
    def default_score(self) -> int:
        return DEFAULT_SCORE

    @property
    def default_threshold(self) -> int:
        return DEFAULT_LOW_THRESHOLD

    @property
    def weights(self) -> dict[str, float]:
        return dict(WEIGHTS)

    def calculate_score(self, pattern: Pattern) -> int:
        """Calculate the quality score (0-100) of a pattern from its factors."""
        factors = self.get_quality_factors(pattern)
        score = sum(
            getattr(factors, name) * weight for name, weight in WEIGHTS.items()
        )
        return int(round_half_up(max(0.0, min(100.0, score))))

    def current_score(self, pattern: Pattern) -> int:
        """Cached score if present, otherwise a freshly calculated one."""
        if pattern.quality_score is not None:
            return pattern.quality_score
        return self.calculate_score(pattern)

    def get_quality_factors(self, pattern: Pattern) -> QualityFactors:
        """Get the breakdown of the five quality factors."""
        return QualityFactors(
            usage_frequency=self._usage_frequency(pattern),
            acceptance_rate=self._acceptance_rate(pattern),
            consistency=self._consistency(pattern),
            recency=self._recency(pattern),
            completeness=self._completeness(pattern),
        )

    def get_quality_score_result(
        self, pattern: Pattern, threshold: int = DEFAULT_LOW_THRESHOLD
    ) -> QualityScoreResult:
        """Get the score of a pattern together with its factor breakdown."""
        score = self.current_score(pattern)
        return QualityScoreResult(
            pattern_id=pattern.id,
            score=score,
            factors=self.get_quality_factors(pattern),
            is_low_quality=score < threshold,
            threshold=threshold,
        )

    def flag_low_quality(
        self, patterns: Iterable[Pattern], threshold: int = DEFAULT_LOW_THRESHOLD
    ) -> list[Pattern]:
        """Return the patterns scoring below ``threshold``."""
        return [p for p in patterns if self.current_score(p) < threshold]

    def _usage_frequency(self, pattern: Pattern) -> int:
        usage_count = pattern.metadata.usage_count
        if usage_count == 0:
            return DEFAULT_SCORE
        for minimum, score in _USAGE_BUCKETS:
            if usage_count >= minimum:
                return score
        return DEFAULT_SCORE

    def _acceptance_rate(self, pattern: Pattern) -> int:
        success_rate = pattern.metadata.success_rate
        if success_rate == 0 and pattern.metadata.usage_count == 0:
            return DEFAULT_SCORE
        return int(round_half_up(success_rate * 100))

    def _consistency(self, pattern: Pattern) -> int:
        confidence = pattern.confidence
        if confidence is None:
            return DEFAULT_SCORE
        grounding_score = min(confidence.grounding_count * 10, 50)
        return int(round_half_up(grounding_score + confidence.base * 50))

    def _recency(self, pattern: Pattern) -> int:
        last_activity = self._last_activity(pattern)
        if last_activity is None:
            return DEFAULT_SCORE
        days = days_between(last_activity, self._clock.now())
        for maximum, score in _RECENCY_BUCKETS:
            if days <= maximum:
                return score
        return _STALE_RECENCY

    def _completeness(self, pattern: Pattern) -> int:
        checkpoints = (
            bool(pattern.name),
            bool(pattern.description),
            bool(pattern.structure.sections),
            bool(pattern.applicability_rules),
            bool(pattern.structure.workflows),
        )
        return 20 * sum(checkpoints)

    @staticmethod
    def _last_activity(pattern: Pattern):
        if pattern.confidence is not None and pattern.confidence.last_grounded:
            return pattern.confidence.last_grounded
        return pattern.metadata.updated_at

    # =========================================================================
    # Decay
    # =========================================================================

    def days_since_last_use(self, pattern: Pattern) -> float:
        """Days since the pattern was last grounded or updated (0 if never)."""
        last_activity = self._last_activity(pattern)
        if last_activity is None:
            return 0.0
        return max(0.0, days_between(last_activity, self._clock.now()))

    def calculate_decay(self, pattern: Pattern) -> float:
        """Calculate how much score the pattern loses to inactivity.

        decay = score * (1 - 0.5 ** (days / half_life))
                      * (1 - success_rate * acceptance_weight)

        Returns:
            Non-negative decay amount, rounded to two decimals.
        """
        days = self.days_since_last_use(pattern)
        if days <= 0:
            return 0.0

        current = self.current_score(pattern)
        acceptance_modifier = 1 - (
            pattern.metadata.success_rate * self._decay.acceptance_weight
        )
        decay_factor = 1 - math.pow(0.5, days / self._decay.half_life)
        amount = current * decay_factor * acceptance_modifier
        return max(0.0, round_half_up(amount, 2))

    def _projected_score(self, current: int, amount: float) -> int:
        return max(self._decay.min_score, int(round_half_up(current - amount)))

    def apply_decay(
        self, pattern: Pattern, threshold: int = DEFAULT_LOW_THRESHOLD
    ) -> Pattern:
        """Return a copy of the pattern with its decayed quality score."""
        current = self.current_score(pattern)
        new_score = self._projected_score(current, self.calculate_decay(pattern))

        if current >= threshold > new_score:
            logger.warning(
                f"Pattern {pattern.id} dropped below threshold {threshold}: "
                f"{current} -> {new_score}"
            )

        return pattern.model_copy(update={"quality_score": new_score}, deep=True)

    def boost_on_usage(self, pattern: Pattern) -> Pattern:
        """Return a copy of the pattern reinforced by one use."""
        now = self._clock.now()
        new_score = min(100, self.current_score(pattern) + self._decay.usage_boost)

        metadata = pattern.metadata.model_copy(
            update={
                "usage_count": pattern.metadata.usage_count + 1,
                "updated_at": now,
            }
        )
        if pattern.confidence is not None:
            confidence = pattern.confidence.model_copy(
                update={
                    "last_grounded": now,
                    "grounding_count": pattern.confidence.grounding_count + 1,
                }
            )
        else:
            confidence = PatternConfidence(
                base=1.0, last_grounded=now, grounding_count=1, decay_rate=0.01
            )

        return pattern.model_copy(
            update={
                "quality_score": new_score,
                "metadata": metadata,
                "confidence": confidence,
            },
            deep=True,
        )

    def get_decay_preview(
        self, pattern: Pattern, threshold: int = DEFAULT_LOW_THRESHOLD
    ) -> DecayPreview:
        """Project the effect of decay on a pattern without applying it."""
        current = self.current_score(pattern)
        amount = self.calculate_decay(pattern)
        projected = self._projected_score(current, amount)
        return DecayPreview(
            pattern_id=pattern.id,
            current_score=current,
            projected_score=projected,
            decay_amount=amount,
            days_since_last_use=self.days_since_last_use(pattern),
            will_drop_below_threshold=current >= threshold > projected,
            threshold=threshold,
        )

    def get_decaying_patterns(
        self, patterns: Iterable[Pattern], threshold: int = DEFAULT_LOW_THRESHOLD
    ) -> list[DecayingPattern]:
        """Patterns currently at or above ``threshold`` that decay would drop below it."""
        decaying = []
        for pattern in patterns:
            preview = self.get_decay_preview(pattern, threshold)
            if preview.will_drop_below_threshold:
                decaying.append(DecayingPattern(pattern=pattern, preview=preview))
        return decaying

    def run_decay_job(
        self, patterns: Iterable[Pattern], threshold: int = DEFAULT_LOW_THRESHOLD
    ) -> DecayJobRun:
        """Apply decay to a snapshot of patterns.

        A pattern whose decay cannot be computed is logged, reported in
        ``skipped`` and passed through unchanged; the job carries on.

        Returns:
            The job summary plus the full list of (possibly) updated patterns.
        """
        patterns = list(patterns)
        updated: list[Pattern] = []
        dropped: list[str] = []
        skipped: list[str] = []
        decayed_count = 0

        for pattern in patterns:
            try:
                current = self.current_score(pattern)
                if self.calculate_decay(pattern) <= 0:
                    updated.append(pattern)
                    continue
                decayed = self.apply_decay(pattern, threshold)
            except (ArithmeticError, TypeError, ValueError) as e:
                logger.warning(f"Skipping decay of pattern {pattern.id}: {e}")
                skipped.append(pattern.id)
                updated.append(pattern)
                continue

            updated.append(decayed)
            decayed_count += 1
            if current >= threshold > (decayed.quality_score or 0):
                dropped.append(pattern.id)

        result = DecayJobResult(
            processed_count=len(patterns),
            decayed_count=decayed_count,
            dropped_below_threshold=dropped,
            skipped=skipped,
            timestamp=self._clock.now(),
        )
        logger.info(
            f"Decay job completed: {decayed_count}/{len(patterns)} patterns decayed, "
            f"{len(dropped)} dropped below threshold"
        )
        return DecayJobRun(result=result, updated_patterns=updated)
