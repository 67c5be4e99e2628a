"""Dependency injection container for patternlife."""

from __future__ import annotations

from dataclasses import dataclass, field

from .config import Config, get_config
from .domain.clock import Clock, SystemClock
from .domain.protocols import (
    ApprovalQueue,
    Embedder,
    ObservationStore,
    PatternRegistry,
)
from .domain.services import (
    GraduationEngine,
    ObservationClusterer,
    ObservationService,
    PatternLifecycleService,
    QualityScorer,
)
from .infra.database import DatabaseConnection
from .infra.embeddings import EmbeddingEngine
from .infra.locks import KeyedLock
from .infra.repositories import (
    InMemoryApprovalQueue,
    InMemoryObservationStore,
    InMemoryPatternRegistry,
    KuzuApprovalQueue,
    KuzuObservationStore,
    KuzuPatternRegistry,
)


@dataclass
class Container:
    """Dependency injection container.

    Builds every component lazily on first access and wires them
    through their constructors. Pass ``embedder`` or ``clock`` to
    replace the defaults (e.g. in tests).
    """

    config: Config
    clock: Clock = field(default_factory=SystemClock)
    embedder: Embedder | None = None
    locks: KeyedLock = field(default_factory=KeyedLock)
    _database: DatabaseConnection | None = None
    _registry: PatternRegistry | None = None
    _store: ObservationStore | None = None
    _approvals: ApprovalQueue | None = None
    _scorer: QualityScorer | None = None
    _observation_service: ObservationService | None = None
    _clusterer: ObservationClusterer | None = None
    _graduation: GraduationEngine | None = None
    _service: PatternLifecycleService | None = None

    @classmethod
    def create(
        cls,
        config: Config | None = None,
        clock: Clock | None = None,
        embedder: Embedder | None = None,
    ) -> Container:
        """Create a new container with the given config.

        Args:
            config: Optional config. Uses global config if not provided.
            clock: Optional time source. Uses the UTC wall clock if not provided.
            embedder: Optional embedder. Uses fastembed if not provided.

        Returns:
            A new Container instance.
        """
        return cls(
            config=config or get_config(),
            clock=clock or SystemClock(),
            embedder=embedder,
        )

    @property
    def embedding_engine(self) -> Embedder:
        """Get the embedder (lazy initialization)."""
        if self.embedder is None:
            self.embedder = EmbeddingEngine(model_name=self.config.embedding_model)
        return self.embedder

    @property
    def database(self) -> DatabaseConnection:
        """Get the database connection (lazy initialization)."""
        if self._database is None:
            self._database = DatabaseConnection(db_path=self.config.db_path)
        return self._database

    @property
    def pattern_registry(self) -> PatternRegistry:
        """Get the pattern registry for the configured storage backend."""
        if self._registry is None:
            if self.config.storage == "kuzu":
                self._registry = KuzuPatternRegistry(self.database)
            else:
                self._registry = InMemoryPatternRegistry()
        return self._registry

    @property
    def observation_store(self) -> ObservationStore:
        """Get the observation store for the configured storage backend."""
        if self._store is None:
            if self.config.storage == "kuzu":
                self._store = KuzuObservationStore(self.database, self.embedding_engine)
            else:
                self._store = InMemoryObservationStore(self.embedding_engine)
        return self._store

    @property
    def approval_queue(self) -> ApprovalQueue:
        """Get the approval queue for the configured storage backend."""
        if self._approvals is None:
            if self.config.storage == "kuzu":
                self._approvals = KuzuApprovalQueue(self.database)
            else:
                self._approvals = InMemoryApprovalQueue()
        return self._approvals

    @property
    def quality_scorer(self) -> QualityScorer:
        if self._scorer is None:
            self._scorer = QualityScorer(decay_config=self.config.decay, clock=self.clock)
        return self._scorer

    @property
    def observation_service(self) -> ObservationService:
        if self._observation_service is None:
            self._observation_service = ObservationService(
                store=self.observation_store,
                clustering_config=self.config.clustering,
                clock=self.clock,
            )
        return self._observation_service

    @property
    def clusterer(self) -> ObservationClusterer:
        if self._clusterer is None:
            self._clusterer = ObservationClusterer(
                store=self.observation_store,
                config=self.config.clustering,
                locks=self.locks,
                clock=self.clock,
            )
        return self._clusterer

    @property
    def graduation_engine(self) -> GraduationEngine:
        if self._graduation is None:
            self._graduation = GraduationEngine(
                registry=self.pattern_registry,
                store=self.observation_store,
                criteria=self.config.graduation,
                locks=self.locks,
                clock=self.clock,
                approvals=self.approval_queue,
            )
        return self._graduation

    @property
    def lifecycle_service(self) -> PatternLifecycleService:
        """Get the lifecycle facade (lazy initialization)."""
        if self._service is None:
            self._service = PatternLifecycleService(
                registry=self.pattern_registry,
                observations=self.observation_service,
                clusterer=self.clusterer,
                scorer=self.quality_scorer,
                graduation=self.graduation_engine,
                locks=self.locks,
                cluster_on_capture=self.config.cluster_on_capture,
                low_quality_threshold=self.config.low_quality_threshold,
                clock=self.clock,
            )
        return self._service

    def release_database(self) -> None:
        """Release the KùzuDB file lock so another process can open the database.

        Components stay wired; the next query reopens the database.
        """
        if self._database is not None and self._database.is_open:
            self._database.close()

    def close(self) -> None:
        """Close all resources."""
        if self._database is not None:
            self._database.close()
            self._database = None
        self._registry = None
        self._store = None
        self._approvals = None
        self._observation_service = None
        self._clusterer = None
        self._graduation = None
        self._service = None


# Module-level container instance
_container: Container | None = None


def get_container() -> Container:
    """Get the global container instance."""
    global _container
    if _container is None:
        _container = Container.create()
    return _container


def reset_container() -> None:
    """Reset the container (for testing)."""
    global _container
    if _container is not None:
        _container.close()
    _container = None
