"""Segment samples for training the segment classifier.

Candidates per sentence are the gold spans (with their label ids), every
detected span that does not exactly match a gold span (id 0), and optionally
boundary near-misses of the gold spans (id 0). The last two groups teach the
classifier to reject spurious or misaligned detections.
"""

from __future__ import annotations

import logging
from typing import Sequence

import torch

from segner.data.instance import Span
from segner.errors import TrainingError
from segner.models.segmenter import SpanDetector
from segner.parallel import parallel_map

logger = logging.getLogger(__name__)

NOT_AN_ENTITY = 0
LENGTH_BUCKETS = 5


def segment_feature_dim(base_dim: int) -> int:
    return 5 * base_dim + LENGTH_BUCKETS


def segment_features(token_features: torch.Tensor, span: Span) -> torch.Tensor:
    """Feature vector of one segment.

    Concatenates the mean of the member rows, the first and last member rows,
    the rows just outside the span (zeros at the sentence edges), and a
    one-hot length bucket.
    """
    num_tokens, base_dim = token_features.shape
    start, end = span
    members = token_features[start:end]
    zeros = token_features.new_zeros(base_dim)

    length = token_features.new_zeros(LENGTH_BUCKETS)
    length[min(end - start, LENGTH_BUCKETS) - 1] = 1.0

    return torch.cat([
        members.mean(dim=0),
        members[0],
        members[-1],
        token_features[start - 1] if start > 0 else zeros,
        token_features[end] if end < num_tokens else zeros,
        length,
    ])


def near_misses(span: Span, num_tokens: int) -> list[Span]:
    """Spans with one boundary moved by one token, in bounds and non-empty."""
    start, end = span
    shifted = [
        Span(start - 1, end),
        Span(start + 1, end),
        Span(start, end - 1),
        Span(start, end + 1),
    ]
    return [s for s in shifted if 0 <= s.start < s.end <= num_tokens]


class SegmentSampler:
    """Produce ``(segment features, label id)`` pairs from a trained detector."""

    def __init__(self, detector: SpanDetector, num_threads: int = 1, near_miss_negatives: bool = True):
        self.detector = detector
        self.num_threads = num_threads
        self.near_miss_negatives = near_miss_negatives

    def candidates(
        self,
        detected: Sequence[Span],
        gold_spans: Sequence[Span],
        gold_label_ids: Sequence[int],
        num_tokens: int,
    ) -> list[tuple[Span, int]]:
        """Labeled candidate segments for one sentence; no span appears twice."""
        labeled = list(zip(gold_spans, gold_label_ids))
        seen = set(gold_spans)

        for span in detected:
            if span not in seen:
                seen.add(span)
                labeled.append((span, NOT_AN_ENTITY))

        if self.near_miss_negatives:
            for gold in gold_spans:
                for span in near_misses(gold, num_tokens):
                    if span not in seen:
                        seen.add(span)
                        labeled.append((span, NOT_AN_ENTITY))

        return labeled

    def sample(
        self,
        token_features: Sequence[torch.Tensor],
        windowed_features: Sequence[torch.Tensor],
        gold_spans: Sequence[Sequence[Span]],
        gold_label_ids: Sequence[Sequence[int]],
    ) -> tuple[torch.Tensor, torch.Tensor]:
        """Sample every sentence of the corpus.

        Returns:
            ``(samples, labels)``: a ``(num_segments, feature_dim)`` float tensor
            and a ``(num_segments,)`` long tensor, in sentence order

        Raises:
            TrainingError: If the corpus yields no segments at all
        """
        sentences = list(zip(token_features, windowed_features, gold_spans, gold_label_ids))

        def sample_sentence(sentence):
            features, windowed, spans, label_ids = sentence
            detected = self.detector.segment(windowed)
            labeled = self.candidates(detected, spans, label_ids, features.shape[0])
            return [(segment_features(features, span), label_id) for span, label_id in labeled]

        per_sentence = parallel_map(sample_sentence, sentences, self.num_threads)
        pairs = [pair for sentence_pairs in per_sentence for pair in sentence_pairs]
        if not pairs:
            raise TrainingError(
                "No segment samples: the corpus has no entities and the detector found none"
            )

        samples = torch.stack([features for features, _ in pairs])
        labels = torch.tensor([label_id for _, label_id in pairs], dtype=torch.long)
        logger.info(
            f"Sampled {len(pairs)} segments "
            f"({int((labels == NOT_AN_ENTITY).sum())} labeled as not an entity)"
        )
        return samples, labels
