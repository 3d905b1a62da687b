"""Token feature providers and the structured feature builder."""

from segner.features.builder import StructuredFeatureBuilder
from segner.features.provider import EmbeddingFileProvider, TokenFeatureProvider

__all__ = ["EmbeddingFileProvider", "StructuredFeatureBuilder", "TokenFeatureProvider"]
