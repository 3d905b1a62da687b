"""Span detector, segment classifier and the assembled extractor."""

from segner.models.classifier import SegmentClassifier, SegmentClassifierTrainer
from segner.models.extractor import Entity, NamedEntityExtractor
from segner.models.sampler import SegmentSampler
from segner.models.segmenter import SpanDetector, SpanDetectorTrainer

__all__ = [
    "Entity",
    "NamedEntityExtractor",
    "SegmentClassifier",
    "SegmentClassifierTrainer",
    "SegmentSampler",
    "SpanDetector",
    "SpanDetectorTrainer",
]
