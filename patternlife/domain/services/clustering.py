"""Observation Clusterer - Mints new patterns from recurring orphan observations.

An orphan is an observation attributed to a fallback pattern id (no real
pattern matched). When enough similar orphans of one company were
mostly accepted, they become a new OBSERVATION-level pattern:

1. Collect the company's orphans in a stable (timestamp, id) order
2. Grow a cluster around each unclaimed seed from similarity search
3. Keep clusters that are large enough and accepted often enough
4. Create a pattern per cluster, register it and relink its members
"""

from __future__ import annotations

import logging
import re
import uuid
from collections import Counter
from collections.abc import Iterable
from typing import TYPE_CHECKING

from ...config import ClusteringConfig
from ..clock import Clock, SystemClock
from ..exceptions import EmptyClusterError
from ..models import (
    ApplicabilityRule,
    Observation,
    ObservationCluster,
    ObservationOutcome,
    Pattern,
    PatternCategory,
    PatternLevel,
    PatternMetadata,
    PatternSection,
    PatternStructure,
    RuleOperator,
)

if TYPE_CHECKING:
    from ...infra.locks import KeyedLock
    from ..protocols import ObservationStore, PatternCreatedSink, PatternRegistry

logger = logging.getLogger(__name__)

FALLBACK_PATTERN_NAME = "Learned Pattern"
FALLBACK_INTENT_KEYWORD = "action"

STOP_WORDS = frozenset(
    """
    the a an is are was were be been being have has had do does did will
    would could should may might must shall can need to of in for on with
    at by from as into through during before after above below between
    under again further then once here there when where why how all each
    few more most other some such no nor not only own same so than too
    very just and but if or because until while this that these those i
    we you it they what which who whom their its my your our his her
    create add implement build make use get set new first check find look
    """.split()
)

_WORD_SPLIT = re.compile(r"\W+")


def _tokens(text: str, min_length: int) -> list[str]:
    return [w for w in _WORD_SPLIT.split(text.lower()) if len(w) >= min_length]


class ObservationClusterer:
    """Clusters orphan observations and turns clusters into patterns."""

    def __init__(
        self,
        store: ObservationStore,
        config: ClusteringConfig | None = None,
        locks: KeyedLock | None = None,
        clock: Clock | None = None,
    ) -> None:
        """Initialize the clusterer.

        Args:
            store: Observation store used for orphan lookup and similarity search.
            config: Clustering thresholds. Uses defaults if not provided.
            locks: Keyed locks serializing passes per company.
            clock: Time source for created patterns.
        """
        if locks is None:
            from ...infra.locks import KeyedLock

            locks = KeyedLock()
        self._store = store
        self._config = config or ClusteringConfig()
        self._locks = locks
        self._clock = clock or SystemClock()

    @property
    def config(self) -> ClusteringConfig:
        return self._config

    def is_fallback_pattern_id(self, pattern_id: str) -> bool:
        """Check whether a pattern id means "no real pattern matched"."""
        return pattern_id.lower() in self._config.fallback_pattern_ids

    def get_orphan_observations(self, company: str) -> list[Observation]:
        """Get the company's orphans, ordered by (timestamp, id)."""
        orphans: dict[str, Observation] = {}
        for fallback_id in self._config.fallback_pattern_ids:
            for observation in self._store.get_by_pattern(fallback_id, company):
                orphans[observation.id] = observation
        return sorted(orphans.values(), key=lambda o: (o.timestamp, o.id))

    # =========================================================================
    # Clustering
    # =========================================================================

    def cluster_orphan_observations(self, company: str) -> list[ObservationCluster]:
        """Group similar orphans of a company into qualifying clusters.

        Each orphan ends up in at most one cluster. A cluster qualifies
        when it has at least ``min_observations`` members and at least
        ``min_acceptance_rate`` of them were accepted.
        """
        orphans = self.get_orphan_observations(company)
        if len(orphans) < self._config.min_observations:
            return []

        orphan_ids = {o.id for o in orphans}
        clustered: set[str] = set()
        clusters: list[ObservationCluster] = []

        for seed in orphans:
            if seed.id in clustered:
                continue

            similar = self._store.find_similar(
                seed.input,
                company,
                self._config.similarity_search_limit,
                pattern_ids=self._config.fallback_pattern_ids,
            )
            members = [seed]
            member_ids = {seed.id}
            for observation, similarity in similar:
                if (
                    observation.id in orphan_ids
                    and observation.id not in clustered
                    and observation.id not in member_ids
                    and similarity >= self._config.similarity_threshold
                ):
                    members.append(observation)
                    member_ids.add(observation.id)

            if len(members) < self._config.min_observations:
                continue

            accepted = sum(1 for m in members if m.outcome == ObservationOutcome.ACCEPTED)
            acceptance_rate = accepted / len(members)
            if acceptance_rate < self._config.min_acceptance_rate:
                continue

            clusters.append(
                ObservationCluster(
                    id=str(uuid.uuid4()),
                    observations=members,
                    centroid=seed.input,
                    acceptance_rate=acceptance_rate,
                    company=company,
                    suggested_pattern_name=self.suggest_pattern_name(members),
                )
            )
            clustered.update(member_ids)

        logger.info(
            f"Found {len(clusters)} clusters from {len(orphans)} orphan observations "
            f"of company '{company}'"
        )
        return clusters

    def suggest_pattern_name(self, observations: Iterable[Observation]) -> str:
        """Build a name from the three most frequent meaningful words.

        Words come from inputs and feedback, must be at least three
        characters and not stop words.
        """
        frequency: Counter[str] = Counter()
        for observation in observations:
            texts = [observation.input]
            if observation.feedback:
                texts.append(observation.feedback)
            for text in texts:
                frequency.update(
                    w for w in _tokens(text, 3) if w not in STOP_WORDS
                )

        top_words = [word for word, _ in frequency.most_common(3)]
        if not top_words:
            return FALLBACK_PATTERN_NAME
        return " ".join(w[0].upper() + w[1:] for w in top_words) + " Pattern"

    # =========================================================================
    # Pattern creation
    # =========================================================================

    def create_pattern_from_cluster(self, cluster: ObservationCluster) -> Pattern:
        """Create an OBSERVATION-level pattern describing a cluster.

        Raises:
            EmptyClusterError: If the cluster has no observations.
        """
        if not cluster.observations:
            raise EmptyClusterError(cluster.id)

        now = self._clock.now()
        count = len(cluster.observations)
        pattern = Pattern(
            id=str(uuid.uuid4()),
            company=cluster.company,
            name=cluster.suggested_pattern_name,
            category=PatternCategory.ACTION,
            description=(
                f"Auto-generated pattern from {count} similar observations. "
                f"Acceptance rate: {cluster.acceptance_rate * 100:.0f}%"
            ),
            level=PatternLevel.OBSERVATION,
            structure=PatternStructure(
                sections=[
                    PatternSection(
                        name="Main", field_types=["text", "reference"], required=True
                    )
                ],
                workflows=["draft", "active", "completed"],
                default_fields=["description", "status", "createdAt"],
            ),
            applicability_rules=[
                ApplicabilityRule(
                    field="intent",
                    operator=RuleOperator.CONTAINS,
                    value=self._intent_keyword(cluster.observations),
                    weight=1.0,
                )
            ],
            metadata=PatternMetadata(
                version="1.0.0",
                created_at=now,
                updated_at=now,
                usage_count=count,
                success_rate=cluster.acceptance_rate,
            ),
        )
        logger.info(
            f"Created pattern from cluster: {pattern.id} \"{pattern.name}\""
        )
        return pattern

    @staticmethod
    def _intent_keyword(observations: Iterable[Observation]) -> str:
        keywords: Counter[str] = Counter()
        for observation in observations:
            keywords.update(_tokens(observation.input, 4))
        if not keywords:
            return FALLBACK_INTENT_KEYWORD
        return keywords.most_common(1)[0][0]

    def link_observations_to_pattern(
        self, observations: Iterable[Observation], pattern: Pattern
    ) -> int:
        """Re-attribute observations to a pattern. Returns how many were linked."""
        linked = 0
        for observation in observations:
            updated = observation.model_copy(
                update={"pattern_id": pattern.id, "pattern_name": pattern.name},
                deep=True,
            )
            self._store.persist(updated)
            linked += 1
        logger.info(f"Linked {linked} observations to pattern {pattern.id}")
        return linked

    def check_and_create_patterns(
        self,
        company: str,
        registry: PatternRegistry,
        sinks: Iterable[PatternCreatedSink] = (),
    ) -> list[Pattern]:
        """Run a clustering pass for a company and mint patterns from it.

        The whole pass holds the company's clustering lock, so concurrent
        passes never claim the same orphan twice.

        Args:
            company: Tenant whose orphans are clustered.
            registry: Registry the new patterns are put into.
            sinks: Callbacks notified once per created pattern.

        Returns:
            The created patterns.
        """
        sinks = list(sinks)
        created: list[Pattern] = []

        with self._locks.hold(f"cluster:{company}"):
            for cluster in self.cluster_orphan_observations(company):
                pattern = self.create_pattern_from_cluster(cluster)
                registry.put(pattern)
                for sink in sinks:
                    sink(pattern)
                self.link_observations_to_pattern(cluster.observations, pattern)
                created.append(pattern)
                logger.info(
                    f"Auto-created pattern \"{pattern.name}\" from "
                    f"{len(cluster.observations)} observations"
                )

        return created
