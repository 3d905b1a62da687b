"""The trained named entity extractor returned by :meth:`NERTrainer.train`."""

from __future__ import annotations

from typing import NamedTuple, Sequence

import torch

from segner.data.instance import Span
from segner.features.builder import StructuredFeatureBuilder
from segner.features.provider import TokenFeatureProvider
from segner.models.classifier import SegmentClassifier
from segner.models.sampler import NOT_AN_ENTITY, segment_features
from segner.models.segmenter import SpanDetector


class Entity(NamedTuple):
    span: Span
    label: str
    score: float


def _freeze(module: torch.nn.Module) -> torch.nn.Module:
    module.eval()
    for param in module.parameters():
        param.requires_grad_(False)
    return module


class NamedEntityExtractor:
    """Span detector + segment classifier + label table, ready for inference.

    Instances are not meant to be modified: the models are frozen and the
    components are exposed through read-only properties.
    """

    def __init__(
        self,
        builder: StructuredFeatureBuilder,
        detector: SpanDetector,
        classifier: SegmentClassifier,
        labels: Sequence[str],
    ):
        if classifier.num_classes != len(labels) + 1:
            raise ValueError(
                f"Classifier has {classifier.num_classes} classes but there are {len(labels)} labels "
                "plus the not-an-entity class"
            )
        self._builder = builder
        self._detector = _freeze(detector)
        self._classifier = _freeze(classifier)
        self._labels = tuple(labels)

    def __repr__(self) -> str:
        return f"NamedEntityExtractor(labels={list(self._labels)})"

    @property
    def feature_provider(self) -> TokenFeatureProvider:
        return self._builder.provider

    @property
    def builder(self) -> StructuredFeatureBuilder:
        return self._builder

    @property
    def detector(self) -> SpanDetector:
        return self._detector

    @property
    def classifier(self) -> SegmentClassifier:
        return self._classifier

    def get_tag_name_strings(self) -> list[str]:
        """Entity labels, ordered by id starting at id 1."""
        return list(self._labels)

    def extract_entities(self, tokens: Sequence[str]) -> list[Entity]:
        """Detect and type the entities of one tokenized sentence.

        Detected spans that the classifier assigns to the not-an-entity class
        are dropped.
        """
        if len(tokens) == 0:
            return []
        token_features = self._builder.token_features(tokens)
        entities = []
        for span in self._detector.segment(self._builder.windowed(token_features)):
            label_id, score = self._classifier.predict(segment_features(token_features, span))
            if label_id != NOT_AN_ENTITY:
                entities.append(Entity(span, self._labels[label_id - 1], score))
        return entities

    def predict(self, tokens: Sequence[str]) -> list[tuple[Span, str]]:
        """Like :meth:`extract_entities`, without scores."""
        return [(entity.span, entity.label) for entity in self.extract_entities(tokens)]
