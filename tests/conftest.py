"""Shared fixtures for the segner test suite."""

import zlib

import numpy as np
import pytest

from segner.config import TrainerConfig


class StubFeatureProvider:
    """Deterministic provider: every token gets a fixed pseudo-random vector."""

    def __init__(self, dimensions: int = 8, vocabulary: set[str] | None = None):
        self._dimensions = dimensions
        self._vocabulary = vocabulary

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def contains(self, token: str) -> bool:
        return self._vocabulary is None or token.lower() in self._vocabulary

    def lookup(self, token: str) -> np.ndarray:
        if not self.contains(token):
            return np.zeros(self._dimensions, dtype=np.float32)
        rng = np.random.default_rng(zlib.crc32(token.lower().encode("utf-8")))
        return rng.standard_normal(self._dimensions).astype(np.float32)


@pytest.fixture
def provider():
    return StubFeatureProvider()


@pytest.fixture
def fast_config():
    return TrainerConfig(num_threads=1, hash_buckets=128)


@pytest.fixture
def small_corpus():
    """(tokens, ranges, labels) triples with two entity types."""
    return [
        (["Alice", "visited", "Paris", "yesterday"], [(0, 1), (2, 3)], ["PERSON", "LOCATION"]),
        (["Bob", "lives", "in", "Berlin"], [(0, 1), (3, 4)], ["PERSON", "LOCATION"]),
        (["the", "weather", "was", "cold"], [], []),
    ]


@pytest.fixture
def embedding_file(tmp_path):
    path = tmp_path / "vectors.txt"
    path.write_text(
        "3 4\n"
        "alice 0.1 0.2 0.3 0.4\n"
        "paris -0.5 0.0 0.5 1.0\n"
        "visited 1 1 1 1\n",
        encoding="utf-8",
    )
    return path
