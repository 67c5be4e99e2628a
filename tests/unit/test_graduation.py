"""Unit tests for the graduation engine."""

from __future__ import annotations

import pytest

from patternlife.config import GraduationCriteria, TransitionCriteria
from patternlife.domain.models import (
    GLOBAL_COMPANY,
    GraduationFailure,
    ObservationOutcome,
    PatternLevel,
    PatternSection,
    PatternStructure,
)
from patternlife.domain.services.graduation import GraduationEngine
from patternlife.infra.repositories import (
    InMemoryApprovalQueue,
    InMemoryObservationStore,
    InMemoryPatternRegistry,
)


@pytest.fixture
def registry() -> InMemoryPatternRegistry:
    return InMemoryPatternRegistry()


@pytest.fixture
def store(embedder) -> InMemoryObservationStore:
    return InMemoryObservationStore(embedder)


@pytest.fixture
def engine(registry, store, clock) -> GraduationEngine:
    return GraduationEngine(registry, store, clock=clock)


@pytest.fixture
def add_pattern(registry, make_pattern):
    def _add(**overrides):
        pattern = make_pattern(**overrides)
        registry.put(pattern)
        return pattern

    return _add


@pytest.fixture
def observe(store, make_observation):
    """Persist observations of a pattern: observe(pattern, outcomes, **fields)."""

    def _observe(pattern, outcomes, **fields):
        for index, outcome in enumerate(outcomes):
            values = {"pattern_id": pattern.id, "outcome": outcome}
            for key, value in fields.items():
                values[key] = value[index] if isinstance(value, list) else value
            store.persist(make_observation(**values))

    return _observe


A = ObservationOutcome.ACCEPTED
M = ObservationOutcome.MODIFIED
R = ObservationOutcome.REJECTED


class TestCalculateStats:
    def test_empty(self, engine):
        stats = engine.calculate_stats("missing")

        assert stats.total_observations == 0
        assert stats.acceptance_rate == 0.0

    def test_rates_and_unique_counts(self, engine, add_pattern, observe):
        pattern = add_pattern()
        observe(
            pattern,
            [A, A, M, R],
            user=["alice", "bob", "bob", "carol"],
            project=["plant", "plant", "depot", "depot"],
            company=["acme", "acme", "acme", "globex"],
        )

        stats = engine.calculate_stats(pattern.id)

        assert stats.total_observations == 4
        assert stats.unique_users == 3
        assert stats.unique_projects == 2
        assert stats.unique_companies == 2
        assert stats.acceptance_rate == 0.5
        assert stats.modification_rate == 0.25
        assert stats.rejection_rate == 0.25
        assert stats.helpful_rate == 0.75


class TestCheckGraduation:
    """Tests for graduation eligibility."""

    def test_observation_to_user(self, engine, add_pattern, observe):
        pattern = add_pattern(level=PatternLevel.OBSERVATION)
        observe(pattern, [A, A, A])

        result = engine.check_graduation(pattern.id)

        assert result.can_graduate is True
        assert result.to_level == PatternLevel.USER
        assert result.requires_approval is False
        assert result.stats.total_observations == 3

    def test_not_enough_observations(self, engine, add_pattern, observe):
        pattern = add_pattern()
        observe(pattern, [A, A])

        result = engine.check_graduation(pattern.id)

        assert result.can_graduate is False
        assert result.failure == GraduationFailure.CRITERIA_NOT_MET
        assert result.reason == "Need 3 observations, have 2"

    def test_acceptance_rate_too_low(self, engine, add_pattern, observe):
        pattern = add_pattern()
        observe(pattern, [A, A, R])

        result = engine.check_graduation(pattern.id)

        assert result.can_graduate is False
        assert result.reason == "Need 70% acceptance rate, have 66.7%"

    def test_modification_rate_too_high(self, registry, store, clock, add_pattern, observe):
        criteria = GraduationCriteria(
            to_user=TransitionCriteria(
                min_count=3, min_acceptance_rate=0.5, max_modification_rate=0.2
            )
        )
        engine = GraduationEngine(registry, store, criteria=criteria, clock=clock)
        pattern = add_pattern()
        observe(pattern, [A, A, M, M])

        result = engine.check_graduation(pattern.id)

        assert result.can_graduate is False
        assert result.reason == "Modification rate 50.0% exceeds maximum 20%"

    def test_user_to_project_counts_unique_users(self, engine, add_pattern, observe):
        pattern = add_pattern(level=PatternLevel.USER)
        observe(pattern, [A, A, A], user="alice")

        result = engine.check_graduation(pattern.id)

        assert result.can_graduate is False
        assert result.reason == "Need 3 unique users, have 1"

        observe(pattern, [A, A], user=["bob", "carol"])
        result = engine.check_graduation(pattern.id)

        assert result.can_graduate is True
        assert result.to_level == PatternLevel.PROJECT

    def test_project_to_global_requires_approval(self, engine, add_pattern, observe):
        pattern = add_pattern(level=PatternLevel.PROJECT)
        observe(pattern, [A, A, A], company=["acme", "globex", "initech"])

        result = engine.check_graduation(pattern.id)

        assert result.can_graduate is True
        assert result.to_level == PatternLevel.GLOBAL
        assert result.requires_approval is True

    def test_unknown_pattern(self, engine):
        result = engine.check_graduation("missing")

        assert result.can_graduate is False
        assert result.failure == GraduationFailure.NOT_FOUND
        assert result.reason == "Pattern not found: missing"

    def test_global_is_max_level(self, engine, add_pattern):
        pattern = add_pattern(level=PatternLevel.GLOBAL, company=GLOBAL_COMPANY)

        result = engine.check_graduation(pattern.id)

        assert result.failure == GraduationFailure.MAX_LEVEL
        assert result.reason == "Pattern is already at maximum level (Global)"

    @pytest.mark.parametrize("level", [PatternLevel.ORG, PatternLevel.CROSS_ORG])
    def test_no_automatic_path(self, engine, add_pattern, observe, level):
        pattern = add_pattern(level=level)
        observe(pattern, [A, A, A], company=["acme", "globex", "initech"])

        result = engine.check_graduation(pattern.id)

        assert result.can_graduate is False
        assert result.failure == GraduationFailure.CRITERIA_NOT_MET
        assert result.reason == f"No automatic graduation path from level {level.name}"


class TestGraduate:
    """Tests for level transitions."""

    def test_single_step(self, engine, registry, clock, add_pattern):
        pattern = add_pattern(level=PatternLevel.OBSERVATION)

        result = engine.graduate(pattern.id, PatternLevel.USER)

        assert result.success is True
        assert result.from_level == PatternLevel.OBSERVATION
        assert result.to_level == PatternLevel.USER
        stored = registry.get(pattern.id)
        assert stored.level == PatternLevel.USER
        assert stored.graduated_at == clock.now()
        assert stored.company == "acme"

    def test_cannot_skip_levels(self, engine, registry, add_pattern):
        pattern = add_pattern(level=PatternLevel.OBSERVATION)

        result = engine.graduate(pattern.id, PatternLevel.PROJECT)

        assert result.success is False
        assert result.failure == GraduationFailure.INVALID_TRANSITION
        assert registry.get(pattern.id).level == PatternLevel.OBSERVATION

    def test_cannot_go_down(self, engine, registry, add_pattern):
        pattern = add_pattern(level=PatternLevel.PROJECT)

        result = engine.graduate(pattern.id, PatternLevel.USER)

        assert result.success is False
        assert result.failure == GraduationFailure.INVALID_TRANSITION
        assert registry.get(pattern.id).level == PatternLevel.PROJECT

    def test_project_to_global_anonymizes(self, engine, registry, add_pattern):
        pattern = add_pattern(
            level=PatternLevel.PROJECT,
            structure=PatternStructure(
                sections=[PatternSection(name="Acme Corp Info", field_types=["staff_id"])]
            ),
        )

        result = engine.graduate(pattern.id, PatternLevel.GLOBAL)

        assert result.success is True
        stored = registry.get(pattern.id)
        assert stored.level == PatternLevel.GLOBAL
        assert stored.company == GLOBAL_COMPANY
        assert stored.structure.sections[0].name == "Section 1"
        assert stored.structure.sections[0].field_types == ["identifier"]

    def test_unknown_pattern(self, engine):
        result = engine.graduate("missing", PatternLevel.USER)

        assert result.success is False
        assert result.failure == GraduationFailure.NOT_FOUND


class TestApproveGraduation:
    """Tests for the admin approval path."""

    def test_approve(self, engine, registry, clock, add_pattern, observe):
        pattern = add_pattern(level=PatternLevel.PROJECT)
        observe(pattern, [A, A, A], company=["acme", "globex", "initech"])

        result = engine.approve_graduation(pattern.id, "admin-1", comment="looks good")

        assert result.success is True
        assert result.new_level == PatternLevel.GLOBAL
        assert result.anonymized is True
        assert result.approved_by == "admin-1"
        assert result.comment == "looks good"
        assert result.graduated_at == clock.now()
        assert registry.get(pattern.id).company == GLOBAL_COMPANY

    def test_only_project_level(self, engine, registry, add_pattern, observe):
        pattern = add_pattern(level=PatternLevel.USER)
        observe(pattern, [A, A, A], user=["alice", "bob", "carol"])

        result = engine.approve_graduation(pattern.id, "admin-1")

        assert result.success is False
        assert result.reason == "Approval only applies to patterns at Project level"
        assert registry.get(pattern.id).level == PatternLevel.USER

    def test_criteria_rechecked(self, engine, registry, add_pattern, observe):
        pattern = add_pattern(level=PatternLevel.PROJECT)
        observe(pattern, [A, A, A], company=["acme", "globex", "globex"])

        result = engine.approve_graduation(pattern.id, "admin-1")

        assert result.success is False
        assert result.reason == "Need 3 unique companies, have 2"
        assert registry.get(pattern.id).level == PatternLevel.PROJECT

    def test_unknown_pattern(self, engine):
        result = engine.approve_graduation("missing", "admin-1")

        assert result.success is False
        assert result.reason == "Pattern not found: missing"


class TestCheckAllGraduations:
    """Tests for the graduation sweep and approval queue."""

    def test_sweep_graduates_and_queues(self, engine, registry, add_pattern, observe):
        automatic = add_pattern(level=PatternLevel.OBSERVATION)
        observe(automatic, [A, A, A])
        gated = add_pattern(level=PatternLevel.PROJECT)
        observe(gated, [A, A, A], company=["acme", "globex", "initech"])
        idle = add_pattern(level=PatternLevel.OBSERVATION)

        sweep = engine.check_all_graduations()

        assert sweep.graduated == [automatic.id]
        assert sweep.pending_approval == [gated.id]
        assert registry.get(automatic.id).level == PatternLevel.USER
        assert registry.get(gated.id).level == PatternLevel.PROJECT
        assert registry.get(idle.id).level == PatternLevel.OBSERVATION

        pending = engine.get_pending_approvals()
        assert [c.pattern_id for c in pending] == [gated.id]
        assert pending[0].target_level == PatternLevel.GLOBAL

    def test_sweep_never_auto_graduates_gated(self, engine, registry, add_pattern, observe):
        gated = add_pattern(level=PatternLevel.PROJECT)
        observe(gated, [A, A, A], company=["acme", "globex", "initech"])

        engine.check_all_graduations()
        engine.check_all_graduations()

        assert registry.get(gated.id).level == PatternLevel.PROJECT
        assert len(engine.get_pending_approvals()) == 1

    def test_eligible_since_kept_across_sweeps(self, engine, clock, add_pattern, observe):
        gated = add_pattern(level=PatternLevel.PROJECT)
        observe(gated, [A, A, A], company=["acme", "globex", "initech"])

        engine.check_all_graduations()
        first_seen = engine.get_pending_approvals()[0].eligible_since
        clock.advance(days=2)
        engine.check_all_graduations()

        assert engine.get_pending_approvals()[0].eligible_since == first_seen

    def test_approval_clears_queue(self, engine, add_pattern, observe):
        gated = add_pattern(level=PatternLevel.PROJECT)
        observe(gated, [A, A, A], company=["acme", "globex", "initech"])
        engine.check_all_graduations()

        engine.approve_graduation(gated.id, "admin-1")

        assert engine.get_pending_approvals() == []

    def test_clear_pending_approvals(self, engine, add_pattern, observe):
        gated = add_pattern(level=PatternLevel.PROJECT)
        observe(gated, [A, A, A], company=["acme", "globex", "initech"])
        engine.check_all_graduations()

        engine.clear_pending_approvals()

        assert engine.get_pending_approvals() == []

    def test_queue_is_shared_through_storage(
        self, registry, store, clock, add_pattern, observe
    ):
        queue = InMemoryApprovalQueue()
        sweeper = GraduationEngine(registry, store, clock=clock, approvals=queue)
        admin = GraduationEngine(registry, store, clock=clock, approvals=queue)
        gated = add_pattern(level=PatternLevel.PROJECT)
        observe(gated, [A, A, A], company=["acme", "globex", "initech"])

        sweeper.check_all_graduations()

        assert [c.pattern_id for c in admin.get_pending_approvals()] == [gated.id]
        assert admin.approve_graduation(gated.id, "admin-1").success is True
        assert sweeper.get_pending_approvals() == []


class TestGraduationViews:
    def test_status_in_progress(self, engine, add_pattern, observe):
        pattern = add_pattern()
        observe(pattern, [A, A])

        status = engine.get_graduation_status(pattern.id)

        assert status.current_level == PatternLevel.OBSERVATION
        assert status.can_graduate is False
        assert status.next_level is None
        assert status.progress == pytest.approx((2 / 3 + 1 + 1) / 3)
        assert status.missing_criteria == ["Need 1 more observations"]

    def test_status_lists_acceptance_gap(self, engine, add_pattern, observe):
        pattern = add_pattern()
        observe(pattern, [A, R, R])

        status = engine.get_graduation_status(pattern.id)

        assert status.missing_criteria == [
            "Acceptance rate needs to increase from 33.3% to 70%"
        ]

    def test_status_of_global_pattern(self, engine, add_pattern):
        pattern = add_pattern(level=PatternLevel.GLOBAL, company=GLOBAL_COMPANY)

        status = engine.get_graduation_status(pattern.id)

        assert status.progress == 1.0
        assert status.missing_criteria == []
        assert status.can_graduate is False

    def test_status_unknown_pattern(self, engine):
        assert engine.get_graduation_status("missing") is None

    def test_candidates_filtered_by_target(self, engine, add_pattern, observe):
        to_user = add_pattern(level=PatternLevel.OBSERVATION)
        observe(to_user, [A, A, A])
        to_global = add_pattern(level=PatternLevel.PROJECT)
        observe(to_global, [A, A, A], company=["acme", "globex", "initech"])

        all_ids = {c.pattern_id for c in engine.get_graduation_candidates()}
        global_only = engine.get_graduation_candidates(PatternLevel.GLOBAL)

        assert all_ids == {to_user.id, to_global.id}
        assert [c.pattern_id for c in global_only] == [to_global.id]
