"""Segner: span detector + segment classifier NER training."""

from segner.config import RunConfig, TrainerConfig
from segner.data import ConllCorpusReader, CorpusReader, JsonlCorpusReader, Span, TrainingInstance
from segner.errors import (
    CorpusFormatError,
    EmptyCorpusError,
    FileLoadError,
    InvalidParameterError,
    InvalidRangeError,
    SegnerError,
    TrainingError,
)
from segner.features import EmbeddingFileProvider, TokenFeatureProvider
from segner.models import Entity, NamedEntityExtractor
from segner.registry import get_reader, register_reader
from segner.trainer import NERTrainer

# Register corpus readers
register_reader("jsonl", JsonlCorpusReader)
register_reader("conll", ConllCorpusReader)

__all__ = [
    "NERTrainer",
    "TrainingInstance",
    "Span",
    "NamedEntityExtractor",
    "Entity",
    "TokenFeatureProvider",
    "EmbeddingFileProvider",
    "CorpusReader",
    "TrainerConfig",
    "RunConfig",
    "SegnerError",
    "InvalidRangeError",
    "InvalidParameterError",
    "FileLoadError",
    "EmptyCorpusError",
    "TrainingError",
    "CorpusFormatError",
    "register_reader",
    "get_reader",
]
