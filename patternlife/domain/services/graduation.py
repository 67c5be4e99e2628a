"""Graduation Engine - Promotes patterns through tenant-scoping levels.

A pattern climbs OBSERVATION -> USER -> PROJECT -> GLOBAL as its
observations accumulate evidence. Each automatic transition has its own
criteria, counted in a different unit:

    OBSERVATION -> USER      total observations
    USER        -> PROJECT   unique users
    PROJECT     -> GLOBAL    unique companies (requires admin approval)

Reaching GLOBAL anonymizes the structure and reassigns the pattern to
the global tenant. Levels never go down.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ...config import GraduationCriteria, TransitionCriteria
from ..clock import Clock, SystemClock
from ..models import (
    GLOBAL_COMPANY,
    ApproveGraduationResult,
    GraduateResult,
    GraduationCandidate,
    GraduationFailure,
    GraduationResult,
    GraduationStats,
    GraduationStatus,
    GraduationSweepResult,
    ObservationOutcome,
    Pattern,
    PatternLevel,
    PatternStructure,
)
from .anonymizer import anonymize

if TYPE_CHECKING:
    from ...infra.locks import KeyedLock
    from ..protocols import ApprovalQueue, ObservationStore, PatternRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Transition:
    """One automatic level transition."""

    criteria_name: str  # attribute of GraduationCriteria
    to_level: PatternLevel
    count_stat: str  # attribute of GraduationStats
    count_label: str


_TRANSITIONS: dict[PatternLevel, _Transition] = {
    PatternLevel.OBSERVATION: _Transition(
        "to_user", PatternLevel.USER, "total_observations", "observations"
    ),
    PatternLevel.USER: _Transition(
        "to_project", PatternLevel.PROJECT, "unique_users", "unique users"
    ),
    PatternLevel.PROJECT: _Transition(
        "to_global", PatternLevel.GLOBAL, "unique_companies", "unique companies"
    ),
}


def _pct(rate: float) -> str:
    """Format a threshold rate as a percentage without float noise (0.7 -> '70')."""
    return f"{rate * 100:g}"


class GraduationEngine:
    """Evaluates and performs pattern level transitions."""

    def __init__(
        self,
        registry: PatternRegistry,
        store: ObservationStore,
        criteria: GraduationCriteria | None = None,
        locks: KeyedLock | None = None,
        clock: Clock | None = None,
        approvals: ApprovalQueue | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            registry: Pattern registry read and written by transitions.
            store: Observation store the statistics are computed from.
            criteria: Versioned graduation thresholds. Uses defaults if not provided.
            locks: Keyed locks serializing transitions per pattern.
            clock: Time source for graduation timestamps.
            approvals: Queue of patterns waiting for admin approval.
                In-memory if not provided.
        """
        if locks is None:
            from ...infra.locks import KeyedLock

            locks = KeyedLock()
        if approvals is None:
            from ...infra.repositories import InMemoryApprovalQueue

            approvals = InMemoryApprovalQueue()
        self._registry = registry
        self._store = store
        self._criteria = criteria or GraduationCriteria()
        self._locks = locks
        self._clock = clock or SystemClock()
        self._approvals = approvals

    @property
    def criteria(self) -> GraduationCriteria:
        return self._criteria

    def _transition_for(
        self, level: PatternLevel
    ) -> tuple[_Transition, TransitionCriteria] | None:
        transition = _TRANSITIONS.get(level)
        if transition is None:
            return None
        return transition, getattr(self._criteria, transition.criteria_name)

    # =========================================================================
    # Statistics
    # =========================================================================

    def calculate_stats(self, pattern_id: str) -> GraduationStats:
        """Calculate graduation statistics from all observations of a pattern."""
        observations = self._store.get_by_pattern(pattern_id)
        total = len(observations)
        if total == 0:
            return GraduationStats()

        accepted = sum(1 for o in observations if o.outcome == ObservationOutcome.ACCEPTED)
        modified = sum(1 for o in observations if o.outcome == ObservationOutcome.MODIFIED)
        rejected = sum(1 for o in observations if o.outcome == ObservationOutcome.REJECTED)

        return GraduationStats(
            total_observations=total,
            unique_users=len({o.user for o in observations}),
            unique_projects=len({o.project for o in observations if o.project}),
            unique_companies=len({o.company for o in observations}),
            helpful_rate=(accepted + modified) / total,
            acceptance_rate=accepted / total,
            modification_rate=modified / total,
            rejection_rate=rejected / total,
        )

    # =========================================================================
    # Evaluation
    # =========================================================================

    def check_graduation(self, pattern_id: str) -> GraduationResult:
        """Check whether a pattern can move to its next level.

        Returns:
            A result naming the target level on success, or the failure
            kind with a human-readable reason and the statistics.
        """
        pattern = self._registry.get(pattern_id)
        if pattern is None:
            return GraduationResult(
                can_graduate=False,
                reason=f"Pattern not found: {pattern_id}",
                failure=GraduationFailure.NOT_FOUND,
            )
        return self._evaluate(pattern)

    def _evaluate(self, pattern: Pattern) -> GraduationResult:
        if pattern.level >= PatternLevel.GLOBAL:
            return GraduationResult(
                can_graduate=False,
                reason="Pattern is already at maximum level (Global)",
                failure=GraduationFailure.MAX_LEVEL,
            )

        stats = self.calculate_stats(pattern.id)
        found = self._transition_for(pattern.level)
        if found is None:
            return GraduationResult(
                can_graduate=False,
                stats=stats,
                reason=(
                    f"No automatic graduation path from level "
                    f"{pattern.level.name}"
                ),
                failure=GraduationFailure.CRITERIA_NOT_MET,
            )

        transition, criteria = found
        reason = self._first_unmet(transition, criteria, stats)
        if reason is not None:
            return GraduationResult(
                can_graduate=False,
                stats=stats,
                reason=reason,
                failure=GraduationFailure.CRITERIA_NOT_MET,
            )

        return GraduationResult(
            can_graduate=True,
            to_level=transition.to_level,
            requires_approval=criteria.admin_approval,
            stats=stats,
        )

    @staticmethod
    def _first_unmet(
        transition: _Transition, criteria: TransitionCriteria, stats: GraduationStats
    ) -> str | None:
        count = getattr(stats, transition.count_stat)
        if count < criteria.min_count:
            return f"Need {criteria.min_count} {transition.count_label}, have {count}"
        if stats.acceptance_rate < criteria.min_acceptance_rate:
            return (
                f"Need {_pct(criteria.min_acceptance_rate)}% acceptance rate, "
                f"have {stats.acceptance_rate * 100:.1f}%"
            )
        if stats.modification_rate > criteria.max_modification_rate:
            return (
                f"Modification rate {stats.modification_rate * 100:.1f}% exceeds "
                f"maximum {_pct(criteria.max_modification_rate)}%"
            )
        return None

    # =========================================================================
    # Transitions
    # =========================================================================

    def anonymize(self, structure: PatternStructure) -> PatternStructure:
        """Anonymize a structure for the global level."""
        return anonymize(structure)

    def graduate(self, pattern_id: str, to_level: PatternLevel) -> GraduateResult:
        """Move a pattern to a higher level.

        Only single-step transitions are allowed, plus the direct
        PROJECT -> GLOBAL promotion. Criteria are not re-checked here.
        """
        to_level = PatternLevel(to_level)
        with self._locks.hold(pattern_id):
            pattern = self._registry.get(pattern_id)
            if pattern is None:
                logger.warning(f"Cannot graduate: Pattern not found: {pattern_id}")
                return GraduateResult(
                    success=False,
                    pattern_id=pattern_id,
                    to_level=to_level,
                    reason=f"Pattern not found: {pattern_id}",
                    failure=GraduationFailure.NOT_FOUND,
                )

            current = pattern.level
            reason = None
            if to_level <= current:
                reason = (
                    f"Target level {to_level.name} is not higher than "
                    f"current level {current.name}"
                )
            elif to_level > current + 1 and not (
                current == PatternLevel.PROJECT and to_level == PatternLevel.GLOBAL
            ):
                reason = f"Cannot skip levels ({current.name} -> {to_level.name})"
            if reason is not None:
                logger.warning(f"Cannot graduate {pattern_id}: {reason}")
                return GraduateResult(
                    success=False,
                    pattern_id=pattern_id,
                    from_level=current,
                    to_level=to_level,
                    reason=reason,
                    failure=GraduationFailure.INVALID_TRANSITION,
                )

            update: dict = {"level": to_level, "graduated_at": self._clock.now()}
            if to_level == PatternLevel.GLOBAL:
                update["structure"] = anonymize(pattern.structure)
                update["company"] = GLOBAL_COMPANY
                logger.info(f"Anonymized pattern {pattern_id} for global level")

            graduated = pattern.model_copy(update=update, deep=True)
            self._registry.put(graduated)
            self._approvals.remove(pattern_id)

        logger.info(
            f"Graduated pattern {pattern_id} from level {current.name} to {to_level.name}"
        )
        return GraduateResult(
            success=True,
            pattern_id=pattern_id,
            from_level=current,
            to_level=to_level,
            pattern=graduated,
        )

    def approve_graduation(
        self, pattern_id: str, admin_user_id: str, comment: str | None = None
    ) -> ApproveGraduationResult:
        """Approve the PROJECT -> GLOBAL promotion of a pattern (admin action)."""
        with self._locks.hold(pattern_id):
            pattern = self._registry.get(pattern_id)
            if pattern is None:
                return ApproveGraduationResult(
                    success=False,
                    pattern_id=pattern_id,
                    reason=f"Pattern not found: {pattern_id}",
                )

            if pattern.level != PatternLevel.PROJECT:
                logger.warning(
                    f"Cannot approve graduation: Pattern {pattern_id} is not at Project level"
                )
                return ApproveGraduationResult(
                    success=False,
                    pattern_id=pattern_id,
                    new_level=pattern.level,
                    reason="Approval only applies to patterns at Project level",
                )

            check = self._evaluate(pattern)
            if not check.can_graduate:
                logger.warning(
                    f"Cannot approve graduation: Pattern {pattern_id} does not meet criteria"
                )
                return ApproveGraduationResult(
                    success=False,
                    pattern_id=pattern_id,
                    new_level=pattern.level,
                    reason=check.reason,
                )

            suffix = f": {comment}" if comment else ""
            logger.info(
                f"Admin {admin_user_id} approved graduation for pattern {pattern_id}{suffix}"
            )
            result = self.graduate(pattern_id, PatternLevel.GLOBAL)

        if not result.success or result.pattern is None:
            return ApproveGraduationResult(
                success=False,
                pattern_id=pattern_id,
                new_level=pattern.level,
                reason=result.reason,
            )
        return ApproveGraduationResult(
            success=True,
            pattern_id=pattern_id,
            new_level=PatternLevel.GLOBAL,
            graduated_at=result.pattern.graduated_at,
            anonymized=True,
            approved_by=admin_user_id,
            comment=comment,
        )

    def check_all_graduations(self) -> GraduationSweepResult:
        """Evaluate every pattern and act on the eligible ones.

        Transitions without approval are performed; approval-gated ones
        are only queued for an admin.
        """
        sweep = GraduationSweepResult()

        for snapshot in self._registry.all():
            if snapshot.level >= PatternLevel.GLOBAL:
                continue

            with self._locks.hold(snapshot.id):
                pattern = self._registry.get(snapshot.id)
                if pattern is None:
                    continue
                result = self._evaluate(pattern)
                if not result.can_graduate or result.to_level is None:
                    continue

                if result.requires_approval:
                    self._enqueue(pattern, result)
                    sweep.pending_approval.append(pattern.id)
                    logger.info(
                        f"Pattern {pattern.id} pending admin approval for graduation "
                        f"to level {result.to_level.name}"
                    )
                elif self.graduate(pattern.id, result.to_level).success:
                    sweep.graduated.append(pattern.id)

        logger.info(
            f"Graduation check complete: {len(sweep.graduated)} graduated, "
            f"{len(sweep.pending_approval)} pending approval"
        )
        return sweep

    # =========================================================================
    # Approval queue
    # =========================================================================

    def _enqueue(self, pattern: Pattern, result: GraduationResult) -> None:
        candidate = GraduationCandidate(
            pattern_id=pattern.id,
            pattern_name=pattern.name,
            current_level=pattern.level,
            target_level=result.to_level,
            stats=result.stats or GraduationStats(),
            eligible_since=self._clock.now(),
        )
        existing = self._approvals.get(pattern.id)
        if existing is not None:
            candidate = candidate.model_copy(
                update={"eligible_since": existing.eligible_since}
            )
        self._approvals.put(candidate)

    def get_pending_approvals(self) -> list[GraduationCandidate]:
        """Get patterns waiting for admin approval, longest waiting first."""
        return sorted(
            self._approvals.all(), key=lambda c: (c.eligible_since, c.pattern_id)
        )

    def clear_pending_approvals(self) -> None:
        self._approvals.clear()

    # =========================================================================
    # Views
    # =========================================================================

    def get_graduation_status(self, pattern_id: str) -> GraduationStatus | None:
        """Get the graduation progress of a pattern, or None if unknown."""
        pattern = self._registry.get(pattern_id)
        if pattern is None:
            return None

        result = self._evaluate(pattern)
        stats = result.stats or self.calculate_stats(pattern_id)
        return GraduationStatus(
            pattern_id=pattern_id,
            current_level=pattern.level,
            stats=stats,
            can_graduate=result.can_graduate,
            next_level=result.to_level,
            requires_approval=result.requires_approval,
            progress=self._progress(pattern.level, stats),
            missing_criteria=self._missing_criteria(pattern.level, stats),
        )

    def get_graduation_candidates(
        self, target_level: PatternLevel | None = None
    ) -> list[GraduationCandidate]:
        """Get patterns currently eligible to graduate, optionally to one level."""
        candidates = []
        now = self._clock.now()
        for pattern in self._registry.all():
            if pattern.level >= PatternLevel.GLOBAL:
                continue
            result = self._evaluate(pattern)
            if not result.can_graduate or result.to_level is None:
                continue
            if target_level is not None and result.to_level != target_level:
                continue
            candidates.append(
                GraduationCandidate(
                    pattern_id=pattern.id,
                    pattern_name=pattern.name,
                    current_level=pattern.level,
                    target_level=result.to_level,
                    stats=result.stats or GraduationStats(),
                    eligible_since=now,
                )
            )
        return candidates

    def _progress(self, level: PatternLevel, stats: GraduationStats) -> float:
        found = self._transition_for(level)
        if found is None:
            return 1.0
        transition, criteria = found

        count = getattr(stats, transition.count_stat)
        count_progress = (
            min(count / criteria.min_count, 1.0) if criteria.min_count else 1.0
        )
        accept_progress = (
            min(stats.acceptance_rate / criteria.min_acceptance_rate, 1.0)
            if criteria.min_acceptance_rate
            else 1.0
        )
        mod_progress = (
            1.0 if stats.modification_rate <= criteria.max_modification_rate else 0.0
        )
        return (count_progress + accept_progress + mod_progress) / 3

    def _missing_criteria(self, level: PatternLevel, stats: GraduationStats) -> list[str]:
        found = self._transition_for(level)
        if found is None:
            return []
        transition, criteria = found

        missing = []
        count = getattr(stats, transition.count_stat)
        if count < criteria.min_count:
            missing.append(
                f"Need {criteria.min_count - count} more {transition.count_label}"
            )
        if stats.acceptance_rate < criteria.min_acceptance_rate:
            missing.append(
                f"Acceptance rate needs to increase from "
                f"{stats.acceptance_rate * 100:.1f}% to "
                f"{_pct(criteria.min_acceptance_rate)}%"
            )
        if stats.modification_rate > criteria.max_modification_rate:
            missing.append(
                f"Modification rate needs to decrease from "
                f"{stats.modification_rate * 100:.1f}% to below "
                f"{_pct(criteria.max_modification_rate)}%"
            )
        return missing
