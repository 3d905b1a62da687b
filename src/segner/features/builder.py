"""Per-token structured features for the span detector and segment classifier.

Each token row is ``[embedding | shape flags | hashed indicators]``. The
hashed block uses ``zlib.crc32`` so features are identical across processes.
"""

from __future__ import annotations

import string
import zlib
from typing import Sequence

import numpy as np
import torch

from segner.features.provider import TokenFeatureProvider

SHAPE_FLAGS = (
    "all_caps",
    "title",
    "has_digit",
    "all_digits",
    "has_hyphen",
    "has_punct",
    "is_first",
    "is_last",
    "oov",
)

_PUNCT = set(string.punctuation)


def word_shape(token: str) -> str:
    """Collapse a token to its character-class shape, e.g. ``McDonald's`` -> ``XxXx'x``."""
    shape = []
    for char in token:
        if char.isupper():
            cls = "X"
        elif char.islower():
            cls = "x"
        elif char.isdigit():
            cls = "d"
        else:
            cls = char
        if not shape or shape[-1] != cls:
            shape.append(cls)
    return "".join(shape)


def _hash_keys(token: str) -> list[str]:
    lowered = token.lower()
    keys = [f"w={lowered}", f"shape={word_shape(token)}"]
    for n in range(1, 4):
        if len(lowered) >= n:
            keys.append(f"p{n}={lowered[:n]}")
            keys.append(f"s{n}={lowered[-n:]}")
    return keys


class StructuredFeatureBuilder:
    """Turn a token sequence into dense, mostly-zero feature rows."""

    def __init__(self, provider: TokenFeatureProvider, hash_buckets: int = 512, window_size: int = 1):
        if hash_buckets < 1:
            raise ValueError(f"hash_buckets must be >= 1, got {hash_buckets}")
        if window_size < 0:
            raise ValueError(f"window_size must be >= 0, got {window_size}")
        self.provider = provider
        self.hash_buckets = hash_buckets
        self.window_size = window_size
        self.embedding_dim = int(provider.dimensions)

    @property
    def base_dim(self) -> int:
        return self.embedding_dim + len(SHAPE_FLAGS) + self.hash_buckets

    @property
    def window_dim(self) -> int:
        return self.base_dim * (2 * self.window_size + 1)

    def token_features(self, tokens: Sequence[str]) -> torch.Tensor:
        """Return a ``(len(tokens), base_dim)`` float tensor."""
        num_tokens = len(tokens)
        rows = np.zeros((num_tokens, self.base_dim), dtype=np.float32)
        flag_offset = self.embedding_dim
        hash_offset = flag_offset + len(SHAPE_FLAGS)

        for i, token in enumerate(tokens):
            vector = np.asarray(self.provider.lookup(token), dtype=np.float32)
            if vector.shape != (self.embedding_dim,):
                raise ValueError(
                    f"Feature provider returned shape {vector.shape} for {token!r}, "
                    f"expected ({self.embedding_dim},)"
                )
            rows[i, :flag_offset] = vector

            flags = (
                token.isupper(),
                token.istitle(),
                any(c.isdigit() for c in token),
                token.isdigit(),
                "-" in token,
                any(c in _PUNCT for c in token),
                i == 0,
                i == num_tokens - 1,
                not self.provider.contains(token),
            )
            rows[i, flag_offset:hash_offset] = flags

            for key in _hash_keys(token):
                rows[i, hash_offset + zlib.crc32(key.encode("utf-8")) % self.hash_buckets] = 1.0

        return torch.from_numpy(rows)

    def windowed(self, features: torch.Tensor) -> torch.Tensor:
        """Concatenate each row with its ``window_size`` neighbours on both sides.

        Rows outside the sentence are zero.
        """
        if self.window_size == 0:
            return features
        num_tokens = features.shape[0]
        w = self.window_size
        padded = torch.nn.functional.pad(features, (0, 0, w, w))
        return torch.cat([padded[offset:offset + num_tokens] for offset in range(2 * w + 1)], dim=-1)
