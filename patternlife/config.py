"""Configuration settings for patternlife."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from .domain.exceptions import ConfigError

DEFAULT_FALLBACK_PATTERN_IDS = (
    "custom",
    "feature",
    "data-source",
    "unknown",
    "methodology",
)


def _check_rate(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ConfigError(f"{name} must be between 0 and 1, got {value}")


@dataclass(frozen=True)
class DecayConfig:
    """Quality score decay model."""

    half_life: float = 30.0  # days for an unused score to decay by half
    min_score: int = 10
    usage_boost: int = 2
    acceptance_weight: float = 0.5

    def __post_init__(self) -> None:
        if self.half_life <= 0:
            raise ConfigError(f"half_life must be positive, got {self.half_life}")
        if not 0 <= self.min_score <= 100:
            raise ConfigError(f"min_score must be within 0-100, got {self.min_score}")
        if self.usage_boost < 0:
            raise ConfigError(f"usage_boost must be >= 0, got {self.usage_boost}")
        _check_rate("acceptance_weight", self.acceptance_weight)


@dataclass(frozen=True)
class ClusteringConfig:
    """Orphan observation clustering."""

    min_observations: int = 3
    min_acceptance_rate: float = 0.7
    similarity_threshold: float = 0.75
    similarity_search_limit: int = 20
    fallback_pattern_ids: tuple[str, ...] = DEFAULT_FALLBACK_PATTERN_IDS

    def __post_init__(self) -> None:
        if self.min_observations < 1:
            raise ConfigError(
                f"min_observations must be >= 1, got {self.min_observations}"
            )
        _check_rate("min_acceptance_rate", self.min_acceptance_rate)
        _check_rate("similarity_threshold", self.similarity_threshold)
        if self.similarity_search_limit < 1:
            raise ConfigError(
                "similarity_search_limit must be >= 1, "
                f"got {self.similarity_search_limit}"
            )
        if not self.fallback_pattern_ids:
            raise ConfigError("fallback_pattern_ids cannot be empty")
        # Store lower-cased so membership checks are case-insensitive
        object.__setattr__(
            self,
            "fallback_pattern_ids",
            tuple(pid.lower() for pid in self.fallback_pattern_ids),
        )


@dataclass(frozen=True)
class TransitionCriteria:
    """Thresholds for one level transition."""

    min_count: int
    min_acceptance_rate: float
    max_modification_rate: float
    admin_approval: bool = False

    def __post_init__(self) -> None:
        if self.min_count < 0:
            raise ConfigError(f"min_count must be >= 0, got {self.min_count}")
        _check_rate("min_acceptance_rate", self.min_acceptance_rate)
        _check_rate("max_modification_rate", self.max_modification_rate)


@dataclass(frozen=True)
class GraduationCriteria:
    """Versioned graduation thresholds.

    to_user:    OBSERVATION -> USER, counted in total observations
    to_project: USER -> PROJECT, counted in unique users
    to_global:  PROJECT -> GLOBAL, counted in unique companies
    """

    version: str = "1"
    to_user: TransitionCriteria = field(
        default_factory=lambda: TransitionCriteria(
            min_count=3, min_acceptance_rate=0.7, max_modification_rate=0.3
        )
    )
    to_project: TransitionCriteria = field(
        default_factory=lambda: TransitionCriteria(
            min_count=3, min_acceptance_rate=0.8, max_modification_rate=0.2
        )
    )
    to_global: TransitionCriteria = field(
        default_factory=lambda: TransitionCriteria(
            min_count=3,
            min_acceptance_rate=0.9,
            max_modification_rate=0.1,
            admin_approval=True,
        )
    )


@dataclass
class Config:
    """patternlife configuration."""

    # Data storage
    data_dir: Path = field(default_factory=lambda: Path.home() / ".patternlife")
    db_name: str = "patternlife_db"
    storage: str = "memory"  # "memory" or "kuzu"

    # Embedding model
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"

    # Quality
    low_quality_threshold: int = 30

    # Clustering
    cluster_on_capture: bool = True

    decay: DecayConfig = field(default_factory=DecayConfig)
    clustering: ClusteringConfig = field(default_factory=ClusteringConfig)
    graduation: GraduationCriteria = field(default_factory=GraduationCriteria)

    def __post_init__(self) -> None:
        if self.storage not in ("memory", "kuzu"):
            raise ConfigError(f"Unknown storage backend: {self.storage}")
        if not 0 <= self.low_quality_threshold <= 100:
            raise ConfigError(
                "low_quality_threshold must be within 0-100, "
                f"got {self.low_quality_threshold}"
            )

    @property
    def db_path(self) -> Path:
        """Get the full database path."""
        return self.data_dir / self.db_name

    @property
    def sweep_lock_path(self) -> Path:
        """Lock file coordinating background sweepers."""
        return self.data_dir / "sweep.lock"

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables."""
        data_dir_str = os.environ.get("PATTERNLIFE_DATA_DIR")
        data_dir = Path(data_dir_str) if data_dir_str else Path.home() / ".patternlife"

        fallback_ids = os.environ.get("PATTERNLIFE_FALLBACK_PATTERN_IDS")

        try:
            decay = DecayConfig(
                half_life=float(os.environ.get("PATTERNLIFE_DECAY_HALF_LIFE", "30")),
                min_score=int(os.environ.get("PATTERNLIFE_DECAY_MIN_SCORE", "10")),
                usage_boost=int(os.environ.get("PATTERNLIFE_USAGE_BOOST", "2")),
                acceptance_weight=float(
                    os.environ.get("PATTERNLIFE_DECAY_ACCEPTANCE_WEIGHT", "0.5")
                ),
            )
            clustering = ClusteringConfig(
                min_observations=int(
                    os.environ.get("PATTERNLIFE_CLUSTER_MIN_OBSERVATIONS", "3")
                ),
                min_acceptance_rate=float(
                    os.environ.get("PATTERNLIFE_CLUSTER_MIN_ACCEPTANCE", "0.7")
                ),
                similarity_threshold=float(
                    os.environ.get("PATTERNLIFE_CLUSTER_SIMILARITY", "0.75")
                ),
                fallback_pattern_ids=(
                    tuple(p.strip() for p in fallback_ids.split(",") if p.strip())
                    if fallback_ids
                    else DEFAULT_FALLBACK_PATTERN_IDS
                ),
            )
            low_quality_threshold = int(
                os.environ.get("PATTERNLIFE_LOW_QUALITY_THRESHOLD", "30")
            )
        except ValueError as e:
            raise ConfigError(f"Invalid numeric setting: {e}") from e

        return cls(
            data_dir=data_dir,
            db_name=os.environ.get("PATTERNLIFE_DB_NAME", "patternlife_db"),
            storage=os.environ.get("PATTERNLIFE_STORAGE", "memory"),
            embedding_model=os.environ.get(
                "PATTERNLIFE_EMBEDDING_MODEL",
                "sentence-transformers/all-MiniLM-L6-v2",
            ),
            low_quality_threshold=low_quality_threshold,
            cluster_on_capture=os.environ.get(
                "PATTERNLIFE_CLUSTER_ON_CAPTURE", "true"
            ).lower()
            in ("1", "true", "yes"),
            decay=decay,
            clustering=clustering,
        )


# Module-level config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global config instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reset_config() -> None:
    """Reset the config (for testing)."""
    global _config
    _config = None
