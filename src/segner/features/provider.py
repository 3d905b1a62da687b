"""Per-token feature providers.

A provider maps a token to a fixed-size vector. It is loaded once and is
read-only afterwards, so it can be shared between training threads and the
extractors produced by training.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

import numpy as np

from segner.errors import FileLoadError

logger = logging.getLogger(__name__)


@runtime_checkable
class TokenFeatureProvider(Protocol):
    """Capability consumed by the trainer: ``token -> vector``."""

    @property
    def dimensions(self) -> int:
        ...

    def lookup(self, token: str) -> np.ndarray:
        ...

    def contains(self, token: str) -> bool:
        ...


class EmbeddingFileProvider:
    """Word vectors read from a word2vec/GloVe text file.

    Lookup tries the exact token first, then its lower-cased form. Unknown
    tokens map to the zero vector.
    """

    def __init__(self, vocabulary: dict[str, int], vectors: np.ndarray):
        if vectors.ndim != 2 or vectors.shape[0] != len(vocabulary):
            raise ValueError(
                f"Expected a ({len(vocabulary)}, d) vector matrix, got shape {vectors.shape}"
            )
        self._vocabulary = dict(vocabulary)
        self._vectors = np.ascontiguousarray(vectors, dtype=np.float32)
        self._vectors.setflags(write=False)
        self._zero = np.zeros(self._vectors.shape[1], dtype=np.float32)
        self._zero.setflags(write=False)

    def __repr__(self) -> str:
        return f"EmbeddingFileProvider(vocab_size={len(self)}, dimensions={self.dimensions})"

    def __len__(self) -> int:
        return len(self._vocabulary)

    @property
    def dimensions(self) -> int:
        return int(self._vectors.shape[1])

    def contains(self, token: str) -> bool:
        return token in self._vocabulary or token.lower() in self._vocabulary

    def lookup(self, token: str) -> np.ndarray:
        index = self._vocabulary.get(token)
        if index is None:
            index = self._vocabulary.get(token.lower())
        if index is None:
            return self._zero
        return self._vectors[index]

    @classmethod
    def from_file(cls, path: str | Path) -> "EmbeddingFileProvider":
        """Load vectors from ``path``.

        Each line holds ``token v1 ... vd``. A leading ``count dim`` header,
        as written by word2vec, is skipped. Blank lines are ignored.

        Raises:
            FileLoadError: If the file is missing, unreadable or malformed
        """
        path = Path(path)
        try:
            with path.open("r", encoding="utf-8") as stream:
                lines = stream.readlines()
        except (OSError, UnicodeDecodeError) as e:
            raise FileLoadError(f"Cannot read feature file {path}: {e}") from e

        vocabulary: dict[str, int] = {}
        rows: list[list[float]] = []
        dim: int | None = None

        for line_no, raw in enumerate(lines, start=1):
            parts = raw.rstrip("\n").split()
            if not parts:
                continue
            if line_no == 1 and len(parts) == 2 and all(p.isdigit() for p in parts):
                continue  # word2vec header

            token, values = parts[0], parts[1:]
            if not values:
                raise FileLoadError(f"{path}:{line_no}: token {token!r} has no vector")
            if dim is None:
                dim = len(values)
            elif len(values) != dim:
                raise FileLoadError(
                    f"{path}:{line_no}: expected {dim} values for {token!r}, got {len(values)}"
                )
            try:
                row = [float(v) for v in values]
            except ValueError as e:
                raise FileLoadError(f"{path}:{line_no}: non-numeric vector value") from e

            if token in vocabulary:
                logger.warning(f"{path}:{line_no}: duplicate token {token!r}, keeping first vector")
                continue
            vocabulary[token] = len(rows)
            rows.append(row)

        if not rows:
            raise FileLoadError(f"Feature file {path} contains no vectors")

        vectors = np.asarray(rows, dtype=np.float32)
        if not np.all(np.isfinite(vectors)):
            raise FileLoadError(f"Feature file {path} contains non-finite values")

        logger.info(f"Loaded {len(vocabulary)} vectors of dimension {dim} from {path}")
        return cls(vocabulary, vectors)
