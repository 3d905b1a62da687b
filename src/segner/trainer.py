"""NER trainer: accumulates annotated sentences and trains an extractor."""

from __future__ import annotations

import logging
import math
from collections import OrderedDict
from pathlib import Path
from typing import Sequence

import torch

from segner.config import TrainerConfig
from segner.data.instance import Span, TrainingInstance
from segner.errors import EmptyCorpusError, InvalidParameterError, InvalidRangeError
from segner.features.builder import StructuredFeatureBuilder
from segner.features.provider import EmbeddingFileProvider, TokenFeatureProvider
from segner.models.classifier import SegmentClassifierTrainer
from segner.models.extractor import NamedEntityExtractor
from segner.models.sampler import SegmentSampler
from segner.models.segmenter import SpanDetectorTrainer
from segner.parallel import parallel_map

logger = logging.getLogger(__name__)


class NERTrainer:
    """Collects training sentences and trains a :class:`NamedEntityExtractor`.

    Label ids are assigned in first-seen order across every added sentence,
    starting at 1; id 0 is reserved for "not an entity". Added sentences are
    copied, so later changes to a caller's :class:`TrainingInstance` do not
    affect the trainer.

    Mutating methods are not synchronized. ``train()`` only reads the
    trainer's state and may be called repeatedly.
    """

    def __init__(
        self,
        feature_provider: str | Path | TokenFeatureProvider,
        config: TrainerConfig | None = None,
    ):
        """Initialize the trainer.

        Args:
            feature_provider: Path of a word vector file, or a provider object
            config: Trainer configuration (defaults: beta 0.5, 16 threads)

        Raises:
            FileLoadError: If the feature file cannot be loaded
        """
        if isinstance(feature_provider, (str, Path)):
            feature_provider = EmbeddingFileProvider.from_file(feature_provider)
        self._provider = feature_provider
        self.config = config.model_copy() if config is not None else TrainerConfig()

        self._label_to_id: OrderedDict[str, int] = OrderedDict()
        self._sentences: list[tuple[str, ...]] = []
        self._chunks: list[tuple[Span, ...]] = []
        self._chunk_labels: list[tuple[int, ...]] = []

    def __len__(self) -> int:
        return self.size()

    def __repr__(self) -> str:
        return (
            f"NERTrainer(size={self.size()}, labels={self.get_all_labels()}, "
            f"beta={self.get_beta()}, num_threads={self.get_num_threads()})"
        )

    @property
    def feature_provider(self) -> TokenFeatureProvider:
        return self._provider

    def size(self) -> int:
        return len(self._sentences)

    def add(
        self,
        item: TrainingInstance | Sequence[str],
        ranges: Sequence[tuple[int, int]] | None = None,
        labels: Sequence[str] | None = None,
    ) -> None:
        """Add one training sentence.

        Either ``add(instance)`` or ``add(tokens, ranges, labels)``; the latter
        is equivalent to building a :class:`TrainingInstance`, adding each
        ``(range, label)`` pair and then adding the instance.

        Raises:
            InvalidRangeError: If a range is invalid or overlaps another one, or
                ``ranges`` and ``labels`` differ in length. Nothing is added.
        """
        if isinstance(item, TrainingInstance):
            if ranges is not None or labels is not None:
                raise TypeError("add(instance) does not take ranges or labels")
            instance = item
        else:
            instance = self._build_instance(
                item,
                [] if ranges is None else ranges,
                [] if labels is None else labels,
            )
        self._add_instance(instance)

    def add_many(
        self,
        tokens: Sequence[Sequence[str]],
        ranges: Sequence[Sequence[tuple[int, int]]],
        labels: Sequence[Sequence[str]],
    ) -> None:
        """Add several sentences at once.

        Every sentence is validated before any is added, so a failure leaves
        the trainer unchanged.
        """
        if not (len(tokens) == len(ranges) == len(labels)):
            raise InvalidRangeError(
                f"Got {len(tokens)} sentences, {len(ranges)} range lists and {len(labels)} label lists"
            )
        instances = [
            self._build_instance(sentence, sentence_ranges, sentence_labels)
            for sentence, sentence_ranges, sentence_labels in zip(tokens, ranges, labels)
        ]
        for instance in instances:
            self._add_instance(instance)

    def get_num_threads(self) -> int:
        return self.config.num_threads

    def set_num_threads(self, num: int) -> None:
        """Set the number of training threads.

        Raises:
            InvalidParameterError: If ``num`` is less than 1
        """
        if isinstance(num, bool) or not isinstance(num, int) or num < 1:
            raise InvalidParameterError(f"num_threads must be an integer >= 1, got {num!r}")
        self.config = self.config.model_copy(update={"num_threads": num})

    def get_beta(self) -> float:
        """Trade-off between avoiding false alarms and missing detections.

        ``beta < 1`` favours precision, ``beta == 1`` weighs both equally and
        ``beta > 1`` favours recall.
        """
        return self.config.beta

    def set_beta(self, new_beta: float) -> None:
        """Set beta.

        Raises:
            InvalidParameterError: If ``new_beta`` is negative or not finite
        """
        try:
            value = float(new_beta)
        except (TypeError, ValueError) as e:
            raise InvalidParameterError(f"beta must be a number, got {new_beta!r}") from e
        if not math.isfinite(value) or value < 0:
            raise InvalidParameterError(f"beta must be a finite number >= 0, got {new_beta!r}")
        self.config = self.config.model_copy(update={"beta": value})

    def get_all_labels(self) -> list[str]:
        """Label strings ordered by id, id 1 first."""
        return list(self._label_to_id.keys())

    def get_label_id(self, label: str) -> int:
        """Id of an already seen label.

        Raises:
            KeyError: If the label has not been seen
        """
        return self._label_to_id[label]

    def train(self) -> NamedEntityExtractor:
        """Train a named entity extractor from the sentences added so far.

        Raises:
            EmptyCorpusError: If no sentence has been added
            TrainingError: If detector or classifier training fails numerically
        """
        if self.size() == 0:
            raise EmptyCorpusError("Cannot train: no training instances have been added")

        config = self.config
        labels = self.get_all_labels()
        sentences, chunks, chunk_labels = list(self._sentences), list(self._chunks), list(self._chunk_labels)
        num_threads = config.num_threads

        logger.info(
            f"Training NER extractor on {len(sentences)} sentences, "
            f"{sum(len(c) for c in chunks)} entities, labels={labels}"
        )

        with torch.random.fork_rng(devices=[]):
            torch.manual_seed(config.seed)

            builder = StructuredFeatureBuilder(
                self._provider,
                hash_buckets=config.hash_buckets,
                window_size=config.window_size,
            )
            token_features = parallel_map(builder.token_features, sentences, num_threads)
            windowed = parallel_map(builder.windowed, token_features, num_threads)

            detector = SpanDetectorTrainer(
                beta=config.beta,
                num_threads=num_threads,
                c=config.detector_c,
                learning_rate=config.detector_learning_rate,
                max_epochs=config.detector_max_epochs,
                epsilon=config.detector_epsilon,
            ).train(windowed, chunks)

            samples, sample_labels = SegmentSampler(
                detector,
                num_threads=num_threads,
                near_miss_negatives=config.near_miss_negatives,
            ).sample(token_features, windowed, chunks, chunk_labels)

            classifier = SegmentClassifierTrainer(
                num_classes=len(labels) + 1,
                c=config.classifier_c,
                learning_rate=config.classifier_learning_rate,
                max_epochs=config.classifier_max_epochs,
                epsilon=config.classifier_epsilon,
            ).train(samples, sample_labels)

        return NamedEntityExtractor(builder, detector, classifier, labels)

    @staticmethod
    def _build_instance(
        tokens: Sequence[str],
        ranges: Sequence[tuple[int, int]],
        labels: Sequence[str],
    ) -> TrainingInstance:
        if len(ranges) != len(labels):
            raise InvalidRangeError(f"Got {len(ranges)} ranges but {len(labels)} labels")
        instance = TrainingInstance(tokens)
        for token_range, label in zip(ranges, labels):
            instance.add_entity(token_range, label)
        return instance

    def _add_instance(self, instance: TrainingInstance) -> None:
        spans = instance.spans
        label_ids = tuple(self._resolve_label_id(label) for label in instance.labels)
        self._sentences.append(instance.tokens)
        self._chunks.append(spans)
        self._chunk_labels.append(label_ids)

    def _resolve_label_id(self, label: str) -> int:
        if label not in self._label_to_id:
            self._label_to_id[label] = len(self._label_to_id) + 1
        return self._label_to_id[label]
