"""Unit tests for observation capture, diffing and statistics."""

from __future__ import annotations

import pytest

from patternlife.domain.exceptions import ValidationError
from patternlife.domain.models import (
    CreateObservationRequest,
    FieldPrediction,
    ModificationType,
    ObservationOutcome,
    ObservationSource,
    SectionPrediction,
    StructurePrediction,
)
from patternlife.domain.services.observation import ObservationService
from patternlife.infra.repositories import InMemoryObservationStore


@pytest.fixture
def store(embedder) -> InMemoryObservationStore:
    return InMemoryObservationStore(embedder)


@pytest.fixture
def service(store, clock) -> ObservationService:
    return ObservationService(store, clock=clock)


def _structure(module_type="inspection", sections=None, confidence=0.8):
    return StructurePrediction(
        module_type=module_type,
        sections=sections if sections is not None else [SectionPrediction(name="Main")],
        confidence=confidence,
    )


class TestCapture:
    """Tests for live capture."""

    def test_capture_persists(self, service, store, clock):
        observation = service.capture(
            session_id="s1",
            prediction=_structure(),
            input="site inspection",
            outcome=ObservationOutcome.ACCEPTED,
            pattern_id="inspection-v1",
            pattern_name="Inspection",
            company="acme",
            project="plant",
            user="alice",
            processing_time=12.5,
        )

        stored = store.get(observation.id)
        assert stored == observation
        assert observation.pattern_id == "inspection-v1"
        assert observation.confidence == 0.8
        assert observation.timestamp == clock.now()
        assert observation.source == ObservationSource.LIVE
        assert observation.modifications == []

    def test_capture_without_prediction_raises(self, service):
        with pytest.raises(ValidationError) as exc_info:
            service.capture(
                session_id="s1",
                prediction=None,
                input="site inspection",
                outcome=ObservationOutcome.ACCEPTED,
            )

        assert "no prediction" in str(exc_info.value).lower()

    def test_defaults_when_unattributed(self, service):
        observation = service.capture(
            session_id="s1",
            prediction=_structure(module_type="Custom"),
            input="site inspection",
            outcome=ObservationOutcome.ACCEPTED,
        )

        # Falls back to the module type, stored lower-cased as a fallback id
        assert observation.pattern_id == "custom"
        assert observation.pattern_name == "Custom"
        assert observation.company == "unknown"
        assert observation.project == "unknown"
        assert observation.user == "unknown"

    def test_real_pattern_ids_keep_case(self, service):
        observation = service.capture(
            session_id="s1",
            prediction=_structure(),
            input="site inspection",
            outcome=ObservationOutcome.ACCEPTED,
            pattern_id="Inspection-V1",
        )

        assert observation.pattern_id == "Inspection-V1"

    def test_capture_records_modifications(self, service):
        final = _structure(sections=[SectionPrediction(name="Main"), SectionPrediction(name="Notes", order=1)])

        observation = service.capture(
            session_id="s1",
            prediction=_structure(),
            input="site inspection",
            outcome=ObservationOutcome.MODIFIED,
            final_structure=final,
        )

        assert len(observation.modifications) == 1
        assert observation.modifications[0].type == ModificationType.ADD
        assert observation.modifications[0].path == "sections[1]"


class TestCreateDirect:
    def _request(self, **overrides):
        values = {
            "input": "site inspection",
            "company": "acme",
            "prediction": _structure(),
            "outcome": ObservationOutcome.ACCEPTED,
        }
        values.update(overrides)
        return CreateObservationRequest(**values)

    def test_create_direct(self, service):
        observation = service.create_direct(self._request(confidence=0.4))

        assert observation.session_id.startswith("direct_")
        assert observation.source == ObservationSource.DIRECT
        assert observation.confidence == 0.4
        assert observation.company == "acme"

    def test_confidence_defaults_to_prediction(self, service):
        observation = service.create_direct(self._request())

        assert observation.confidence == 0.8

    def test_empty_input_raises(self, service):
        with pytest.raises(ValidationError):
            service.create_direct(self._request(input="   "))

    def test_empty_company_raises(self, service):
        with pytest.raises(ValidationError):
            service.create_direct(self._request(company=""))


class TestDiffPredictions:
    """Tests for structure diffing."""

    def test_identical_structures(self, service):
        assert service.diff_predictions(_structure(), _structure()) == []

    def test_full_diff(self, service):
        original = _structure(
            sections=[
                SectionPrediction(
                    name="Main",
                    fields=[
                        FieldPrediction(name="title", type="text"),
                        FieldPrediction(name="owner", type="text"),
                    ],
                ),
                SectionPrediction(name="Extra", order=1),
            ]
        )
        final = _structure(
            module_type="audit",
            sections=[
                SectionPrediction(
                    name="Main",
                    fields=[
                        FieldPrediction(name="title", type="date", required=True),
                        FieldPrediction(name="due", type="date"),
                    ],
                    order=2,
                ),
                SectionPrediction(name="Signoff", order=1),
            ],
        )

        modifications = service.diff_predictions(original, final)
        found = {(m.type, m.path) for m in modifications}

        assert found == {
            (ModificationType.CHANGE, "module_type"),
            (ModificationType.REMOVE, "sections[1]"),
            (ModificationType.REMOVE, "sections[0].fields[1]"),
            (ModificationType.CHANGE, "sections[0].fields[0].type"),
            (ModificationType.CHANGE, "sections[0].fields[0].required"),
            (ModificationType.ADD, "sections[0].fields[1]"),
            (ModificationType.CHANGE, "sections[0].order"),
            (ModificationType.ADD, "sections[1]"),
        }
        by_path = {(m.type, m.path): m for m in modifications}
        type_change = by_path[(ModificationType.CHANGE, "sections[0].fields[0].type")]
        assert (type_change.before, type_change.after) == ("text", "date")
        removed = by_path[(ModificationType.REMOVE, "sections[1]")]
        assert removed.before["name"] == "Extra"


class TestPatternStats:
    def test_empty(self, service):
        stats = service.get_pattern_stats("missing")

        assert stats.total_observations == 0
        assert stats.common_modifications == []

    def test_stats(self, service):
        added = _structure(sections=[SectionPrediction(name="Main"), SectionPrediction(name="Notes")])
        for outcome, final, time in (
            (ObservationOutcome.ACCEPTED, None, 10.0),
            (ObservationOutcome.MODIFIED, added, 20.0),
            (ObservationOutcome.MODIFIED, added, 30.0),
            (ObservationOutcome.REJECTED, None, 40.0),
        ):
            service.capture(
                session_id="s1",
                prediction=_structure(),
                input="site inspection",
                outcome=outcome,
                final_structure=final,
                pattern_id="inspection-v1",
                company="acme",
                processing_time=time,
            )

        stats = service.get_pattern_stats("inspection-v1")

        assert stats.total_observations == 4
        assert stats.outcomes.accepted == 1
        assert stats.outcomes.modified == 2
        assert stats.outcomes.rejected == 1
        assert stats.acceptance_rate == 0.25
        assert stats.modification_rate == 0.5
        assert stats.average_processing_time == 25.0
        assert stats.average_confidence == pytest.approx(0.8)
        assert len(stats.common_modifications) == 1
        assert stats.common_modifications[0].path == "sections[1]"
        assert stats.common_modifications[0].count == 2

    def test_stats_filtered_by_company(self, service):
        for company in ("acme", "globex"):
            service.capture(
                session_id="s1",
                prediction=_structure(),
                input="site inspection",
                outcome=ObservationOutcome.ACCEPTED,
                pattern_id="inspection-v1",
                company=company,
            )

        assert service.get_pattern_stats("inspection-v1", "acme").total_observations == 1
        assert service.get_pattern_stats("inspection-v1").total_observations == 2
