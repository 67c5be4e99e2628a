"""Pytest fixtures for patternlife tests."""

from __future__ import annotations

import math
import os
import re
import tempfile
import uuid
import zlib
from collections.abc import Callable, Generator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from patternlife.config import Config, reset_config
from patternlife.container import Container, reset_container
from patternlife.domain.models import (
    Observation,
    ObservationOutcome,
    Pattern,
    PatternLevel,
    PatternMetadata,
    SectionPrediction,
    StructurePrediction,
)

FIXED_NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current = self.current + timedelta(**kwargs)


class FakeEmbedder:
    """Deterministic bag-of-words embedder.

    Texts sharing all their words embed identically (similarity 1.0);
    texts with no words in common are nearly orthogonal.
    """

    dimension = 512

    def __init__(self) -> None:
        self.calls = 0

    def embed(self, text: str) -> list[float]:
        self.calls += 1
        vector = [0.0] * self.dimension
        for word in re.split(r"\W+", text.lower()):
            if word:
                vector[zlib.crc32(word.encode()) % self.dimension] += 1.0
        norm = math.sqrt(sum(x * x for x in vector))
        return [x / norm for x in vector] if norm else vector


@pytest.fixture
def temp_data_dir() -> Generator[Path, None, None]:
    """Create a temporary data directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def test_config(temp_data_dir: Path) -> Generator[Config, None, None]:
    """Create a test configuration (in-memory storage)."""
    config = Config(
        data_dir=temp_data_dir,
        db_name="test_db",
        storage="memory",
        low_quality_threshold=30,
        cluster_on_capture=True,
    )
    yield config


@pytest.fixture
def kuzu_config(temp_data_dir: Path) -> Generator[Config, None, None]:
    """Create a test configuration backed by KùzuDB."""
    yield Config(data_dir=temp_data_dir, db_name="test_db", storage="kuzu")


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def container(
    test_config: Config, clock: FixedClock, embedder: FakeEmbedder
) -> Generator[Container, None, None]:
    """Create a test container with isolated dependencies."""
    # Reset any global state
    reset_config()
    reset_container()

    container = Container.create(test_config, clock=clock, embedder=embedder)
    yield container

    # Cleanup
    container.close()
    reset_container()
    reset_config()


@pytest.fixture
def kuzu_container(
    kuzu_config: Config, clock: FixedClock, embedder: FakeEmbedder
) -> Generator[Container, None, None]:
    """Create a KùzuDB-backed test container."""
    reset_config()
    reset_container()

    container = Container.create(kuzu_config, clock=clock, embedder=embedder)
    yield container

    container.close()
    reset_container()
    reset_config()


@pytest.fixture(autouse=True)
def set_test_env(temp_data_dir: Path) -> Generator[None, None, None]:
    """Set environment variables for tests."""
    old_env = os.environ.get("PATTERNLIFE_DATA_DIR")
    os.environ["PATTERNLIFE_DATA_DIR"] = str(temp_data_dir)
    yield
    if old_env:
        os.environ["PATTERNLIFE_DATA_DIR"] = old_env
    else:
        os.environ.pop("PATTERNLIFE_DATA_DIR", None)


# =============================================================================
# Factories
# =============================================================================


def make_prediction(module_type: str = "inspection", confidence: float = 0.8):
    return StructurePrediction(
        module_type=module_type,
        sections=[SectionPrediction(name="Main", order=0)],
        confidence=confidence,
    )


@pytest.fixture
def make_pattern() -> Callable[..., Pattern]:
    """Factory for patterns with sensible defaults."""

    def _make(**overrides) -> Pattern:
        values = {
            "id": str(uuid.uuid4()),
            "company": "acme",
            "name": "Inspection Pattern",
            "level": PatternLevel.OBSERVATION,
            "metadata": PatternMetadata(created_at=FIXED_NOW, updated_at=FIXED_NOW),
        }
        values.update(overrides)
        return Pattern(**values)

    return _make


@pytest.fixture
def make_observation() -> Callable[..., Observation]:
    """Factory for observations with sensible defaults."""
    counter = {"n": 0}

    def _make(**overrides) -> Observation:
        counter["n"] += 1
        values = {
            "id": f"obs-{counter['n']:04d}",
            "session_id": "session-1",
            "company": "acme",
            "project": "plant",
            "user": "alice",
            "pattern_id": "custom",
            "prediction": make_prediction(),
            "outcome": ObservationOutcome.ACCEPTED,
            "input": "safety inspection checklist",
            "timestamp": FIXED_NOW + timedelta(seconds=counter["n"]),
        }
        values.update(overrides)
        return Observation(**values)

    return _make
