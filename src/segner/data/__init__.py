"""Training data and corpus readers."""

from segner.data.base import CorpusReader
from segner.data.conll import ConllCorpusReader, bio_to_spans
from segner.data.instance import Span, TrainingInstance
from segner.data.jsonl import JsonlCorpusReader

__all__ = [
    "CorpusReader",
    "ConllCorpusReader",
    "JsonlCorpusReader",
    "Span",
    "TrainingInstance",
    "bio_to_spans",
]
