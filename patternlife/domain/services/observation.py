"""Observation Service - Captures pattern outcomes and summarizes them.

Every time a structure is offered to a user, the outcome (accepted,
modified, rejected) is captured as an observation. When the user edits
the structure, the edits are recorded as modifications by diffing the
offered structure against the final one.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from ...config import ClusteringConfig
from ..clock import Clock, SystemClock
from ..exceptions import ValidationError
from ..models import (
    CreateObservationRequest,
    FieldPrediction,
    Modification,
    ModificationCount,
    ModificationType,
    Observation,
    ObservationOutcome,
    ObservationSource,
    OutcomeCounts,
    PatternObservationStats,
    SectionPrediction,
    StructurePrediction,
)

if TYPE_CHECKING:
    from ..protocols import ObservationStore

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"
UNKNOWN_PATTERN_NAME = "Unknown Pattern"
MAX_COMMON_MODIFICATIONS = 10


class ObservationService:
    """Captures observations and computes per-pattern statistics."""

    def __init__(
        self,
        store: ObservationStore,
        clustering_config: ClusteringConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._fallback_ids = (clustering_config or ClusteringConfig()).fallback_pattern_ids
        self._clock = clock or SystemClock()

    def _attribution(
        self,
        prediction: StructurePrediction,
        pattern_id: str | None,
        pattern_name: str | None,
    ) -> tuple[str, str]:
        resolved_id = pattern_id or prediction.module_type or UNKNOWN
        # Fallback ids are stored lower-cased so orphan lookups are exact
        if resolved_id.lower() in self._fallback_ids:
            resolved_id = resolved_id.lower()
        resolved_name = pattern_name or prediction.module_type or UNKNOWN_PATTERN_NAME
        return resolved_id, resolved_name

    def capture(
        self,
        session_id: str,
        prediction: StructurePrediction | None,
        input: str,
        outcome: ObservationOutcome,
        final_structure: StructurePrediction | None = None,
        feedback: str | None = None,
        pattern_id: str | None = None,
        pattern_name: str | None = None,
        company: str | None = None,
        project: str | None = None,
        user: str | None = None,
        processing_time: float | None = None,
    ) -> Observation:
        """Capture an observation from a live session.

        Args:
            session_id: Session the structure was offered in.
            prediction: The structure that was offered.
            input: Input text that triggered the offer.
            outcome: What the user did with the structure.
            final_structure: The structure after user edits, if any.
            feedback: Optional free-text feedback.
            pattern_id: Pattern the offer came from. Defaults to the module type.
            pattern_name: Display name of that pattern.
            company: Tenant. Defaults to "unknown".
            project: Project. Defaults to "unknown".
            user: User. Defaults to "unknown".
            processing_time: Time to produce the offer, in milliseconds.

        Returns:
            The persisted observation.

        Raises:
            ValidationError: If there is no prediction to observe.
        """
        if prediction is None:
            raise ValidationError("No prediction in session to observe")

        resolved_id, resolved_name = self._attribution(
            prediction, pattern_id, pattern_name
        )
        modifications = (
            self.diff_predictions(prediction, final_structure) if final_structure else []
        )

        observation = Observation(
            id=str(uuid.uuid4()),
            session_id=session_id,
            company=company or UNKNOWN,
            project=project or UNKNOWN,
            user=user or UNKNOWN,
            pattern_id=resolved_id,
            pattern_name=resolved_name,
            prediction=prediction,
            outcome=outcome,
            modifications=modifications,
            feedback=feedback,
            input=input,
            confidence=prediction.confidence,
            processing_time=processing_time or 0.0,
            timestamp=self._clock.now(),
            source=ObservationSource.LIVE,
        )
        self._store.persist(observation)

        logger.info(
            f"Captured observation: {observation.id} "
            f"({outcome.value}, {len(modifications)} modifications)"
        )
        return observation

    def create_direct(self, request: CreateObservationRequest) -> Observation:
        """Create an observation without an existing session.

        Raises:
            ValidationError: If input or company is empty.
        """
        if not request.input.strip():
            raise ValidationError("Observation input cannot be empty")
        if not request.company.strip():
            raise ValidationError("Observation company cannot be empty")

        session_id = f"direct_{uuid.uuid4().hex}"
        resolved_id, resolved_name = self._attribution(
            request.prediction, request.pattern_id, request.pattern_name
        )
        modifications = (
            self.diff_predictions(request.prediction, request.final_structure)
            if request.final_structure
            else []
        )
        confidence = (
            request.confidence
            if request.confidence is not None
            else request.prediction.confidence
        )

        observation = Observation(
            id=str(uuid.uuid4()),
            session_id=session_id,
            company=request.company,
            project=request.project or UNKNOWN,
            user=request.user or UNKNOWN,
            pattern_id=resolved_id,
            pattern_name=resolved_name,
            prediction=request.prediction,
            outcome=request.outcome,
            modifications=modifications,
            feedback=request.feedback,
            input=request.input,
            confidence=confidence,
            processing_time=request.processing_time or 0.0,
            timestamp=self._clock.now(),
            source=ObservationSource.DIRECT,
        )
        self._store.persist(observation)

        logger.info(
            f"Created direct observation: {observation.id} "
            f"({request.outcome.value}, {len(modifications)} modifications, "
            f"session: {session_id})"
        )
        return observation

    def get_observation(self, observation_id: str) -> Observation | None:
        return self._store.get(observation_id)

    # =========================================================================
    # Structure diff
    # =========================================================================

    def diff_predictions(
        self, original: StructurePrediction, final: StructurePrediction
    ) -> list[Modification]:
        """List the modifications turning ``original`` into ``final``.

        Sections and fields are matched by name. Paths use the index of
        the element in the structure it was found in.
        """
        modifications: list[Modification] = []

        if original.module_type != final.module_type:
            modifications.append(
                Modification(
                    type=ModificationType.CHANGE,
                    path="module_type",
                    before=original.module_type,
                    after=final.module_type,
                )
            )

        self._diff_sections(original.sections, final.sections, modifications)
        return modifications

    @staticmethod
    def _dump(value: Any) -> Any:
        return value.model_dump(mode="json")

    def _diff_sections(
        self,
        original_sections: Sequence[SectionPrediction],
        final_sections: Sequence[SectionPrediction],
        modifications: list[Modification],
    ) -> None:
        original_map = {s.name: (i, s) for i, s in enumerate(original_sections)}
        final_map = {s.name: (i, s) for i, s in enumerate(final_sections)}

        for name, (index, section) in original_map.items():
            if name not in final_map:
                modifications.append(
                    Modification(
                        type=ModificationType.REMOVE,
                        path=f"sections[{index}]",
                        before=self._dump(section),
                    )
                )

        for name, (index, section) in final_map.items():
            if name not in original_map:
                modifications.append(
                    Modification(
                        type=ModificationType.ADD,
                        path=f"sections[{index}]",
                        after=self._dump(section),
                    )
                )
                continue

            _, before = original_map[name]
            path = f"sections[{index}]"
            self._diff_fields(before.fields, section.fields, path, modifications)
            if before.order != section.order:
                modifications.append(
                    Modification(
                        type=ModificationType.CHANGE,
                        path=f"{path}.order",
                        before=before.order,
                        after=section.order,
                    )
                )

    def _diff_fields(
        self,
        original_fields: Sequence[FieldPrediction],
        final_fields: Sequence[FieldPrediction],
        section_path: str,
        modifications: list[Modification],
    ) -> None:
        original_map = {f.name: (i, f) for i, f in enumerate(original_fields)}
        final_map = {f.name: (i, f) for i, f in enumerate(final_fields)}

        for name, (index, field) in original_map.items():
            if name not in final_map:
                modifications.append(
                    Modification(
                        type=ModificationType.REMOVE,
                        path=f"{section_path}.fields[{index}]",
                        before=self._dump(field),
                    )
                )

        for name, (index, field) in final_map.items():
            path = f"{section_path}.fields[{index}]"
            if name not in original_map:
                modifications.append(
                    Modification(
                        type=ModificationType.ADD, path=path, after=self._dump(field)
                    )
                )
                continue

            _, before = original_map[name]
            for attribute in ("type", "required"):
                old, new = getattr(before, attribute), getattr(field, attribute)
                if old != new:
                    modifications.append(
                        Modification(
                            type=ModificationType.CHANGE,
                            path=f"{path}.{attribute}",
                            before=old,
                            after=new,
                        )
                    )

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_pattern_stats(
        self, pattern_id: str, company: str | None = None
    ) -> PatternObservationStats:
        """Summarize the observations of a pattern."""
        observations = self._store.get_by_pattern(pattern_id, company)
        total = len(observations)
        if total == 0:
            return PatternObservationStats(pattern_id=pattern_id)

        outcomes = OutcomeCounts()
        modification_counts: dict[str, ModificationCount] = {}
        for observation in observations:
            key = observation.outcome.value
            setattr(outcomes, key, getattr(outcomes, key) + 1)
            for mod in observation.modifications:
                mod_key = f"{mod.type.value}:{mod.path}"
                if mod_key in modification_counts:
                    modification_counts[mod_key].count += 1
                else:
                    modification_counts[mod_key] = ModificationCount(
                        type=mod.type, path=mod.path, count=1
                    )

        common = sorted(modification_counts.values(), key=lambda m: m.count, reverse=True)

        return PatternObservationStats(
            pattern_id=pattern_id,
            total_observations=total,
            outcomes=outcomes,
            acceptance_rate=outcomes.accepted / total,
            modification_rate=outcomes.modified / total,
            rejection_rate=outcomes.rejected / total,
            average_confidence=sum(o.confidence for o in observations) / total,
            average_processing_time=sum(o.processing_time for o in observations) / total,
            common_modifications=common[:MAX_COMMON_MODIFICATIONS],
        )
