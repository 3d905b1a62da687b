"""Structured span detector and its structural-SVM trainer.

The detector is a linear emission layer over windowed token features feeding
a single-label BIOUL CRF. Training minimizes a margin-rescaled hinge: for each
sentence the most violating tag path is found by Viterbi over emissions
augmented with a per-token cost, where missing part of an entity costs
``beta`` and tagging a non-entity token costs ``1``.
"""

from __future__ import annotations

import logging
import math
from typing import Sequence

import torch
import torch.nn as nn

from segner.data.instance import Span
from segner.errors import TrainingError
from segner.models.crf import BIOULDecoder
from segner.parallel import parallel_reduce

logger = logging.getLogger(__name__)

NUM_TAGS = BIOULDecoder.U + 1


class SpanDetector(nn.Module):
    """Predicts non-overlapping entity spans over a token sequence."""

    def __init__(self, input_dim: int):
        super().__init__()
        self.input_dim = input_dim
        self.crf = BIOULDecoder(num_labels=1)
        self.emission = nn.Linear(input_dim, self.crf.num_tags)
        nn.init.zeros_(self.emission.weight)
        nn.init.zeros_(self.emission.bias)

    def forward(self, features: torch.Tensor) -> torch.Tensor:
        """Map ``(seq_len, input_dim)`` windowed features to ``(1, seq_len, num_tags)`` emissions."""
        return self.emission(features).unsqueeze(0)

    @torch.no_grad()
    def decode_tags(self, features: torch.Tensor, cost: torch.Tensor | None = None) -> torch.Tensor:
        """Best BIOUL path, optionally under cost-augmented emissions."""
        emissions = self(features)
        if cost is not None:
            emissions = emissions + cost.unsqueeze(0)
        mask = torch.ones(emissions.shape[:2], dtype=torch.bool)
        return self.crf.decode(emissions, mask)[0]

    def segment(self, features: torch.Tensor) -> list[Span]:
        """Detected spans, ordered by start."""
        if features.shape[0] == 0:
            return []
        return self.crf.decode_spans(self.decode_tags(features))


def tag_costs(gold_tags: torch.Tensor, beta: float, num_tags: int) -> torch.Tensor:
    """Per-token loss of predicting each tag, shape ``(seq_len, num_tags)``.

    Gold entity tokens cost ``beta`` for any other tag (a miss); gold ``O``
    tokens cost ``1`` for any entity tag (a false alarm).
    """
    num_tokens = gold_tags.shape[0]
    cost = torch.zeros(num_tokens, num_tags)
    in_entity = gold_tags != BIOULDecoder.O

    cost[in_entity] = beta
    cost[in_entity, gold_tags[in_entity]] = 0.0
    cost[~in_entity, 1:] = 1.0
    return cost


class SpanDetectorTrainer:
    """Fit a :class:`SpanDetector` on gold spans with a beta-weighted structured loss."""

    def __init__(
        self,
        beta: float = 0.5,
        num_threads: int = 1,
        c: float = 20.0,
        learning_rate: float = 0.05,
        max_epochs: int = 300,
        epsilon: float = 0.01,
    ):
        self.beta = beta
        self.num_threads = num_threads
        self.c = c
        self.learning_rate = learning_rate
        self.max_epochs = max_epochs
        self.epsilon = epsilon

    def train(self, features: Sequence[torch.Tensor], gold_spans: Sequence[Sequence[Span]]) -> SpanDetector:
        """Train on windowed per-sentence features and their gold spans.

        Args:
            features: One ``(num_tokens, input_dim)`` tensor per sentence
            gold_spans: Gold spans for each sentence

        Returns:
            Trained detector

        Raises:
            TrainingError: On an empty or all-zero feature set, or a non-finite loss
        """
        if len(features) != len(gold_spans):
            raise ValueError(f"Got {len(features)} feature tensors for {len(gold_spans)} sentences")

        examples = []
        for sentence_features, spans in zip(features, gold_spans):
            num_tokens = sentence_features.shape[0]
            if num_tokens == 0:
                continue
            gold_tags = BIOULDecoder.spans_to_tags(spans, num_tokens)
            examples.append((sentence_features, gold_tags, tag_costs(gold_tags, self.beta, NUM_TAGS)))

        if not examples:
            raise TrainingError("Cannot train the span detector: the corpus contains no tokens")
        if all(not torch.any(f) for f, _, _ in examples):
            raise TrainingError("Cannot train the span detector: all token features are zero")

        input_dim = examples[0][0].shape[1]
        detector = SpanDetector(input_dim)
        params = [p for p in detector.parameters() if p.requires_grad]
        optimizer = torch.optim.Adam(params, lr=self.learning_rate)
        num_examples = len(examples)

        logger.info(
            f"Training span detector on {num_examples} sentences "
            f"(beta={self.beta}, threads={self.num_threads})"
        )

        for epoch in range(1, self.max_epochs + 1):
            total_loss, grads = parallel_reduce(
                lambda chunk: self._chunk_loss(detector, params, chunk),
                _add_partials,
                examples,
                self.num_threads,
                (0.0, [torch.zeros_like(p) for p in params]),
            )
            mean_loss = total_loss / num_examples
            if not math.isfinite(mean_loss):
                raise TrainingError(f"Span detector loss became non-finite at epoch {epoch}")

            logger.debug(f"detector epoch {epoch}: mean hinge loss {mean_loss:.6f}")
            if mean_loss <= self.epsilon:
                logger.info(f"Span detector converged after {epoch} epochs (loss {mean_loss:.6f})")
                break

            optimizer.zero_grad()
            for param, grad in zip(params, grads):
                param.grad = grad / num_examples + param.detach() / (self.c * num_examples)
            optimizer.step()
        else:
            logger.info(f"Span detector stopped at max_epochs={self.max_epochs} (loss {mean_loss:.6f})")

        detector.eval()
        return detector

    @staticmethod
    def _chunk_loss(detector: SpanDetector, params: list[nn.Parameter], chunk: list) -> tuple[float, list[torch.Tensor]]:
        """Summed hinge loss and its gradient over one partition of sentences."""
        total = torch.zeros(())
        for features, gold_tags, cost in chunk:
            emissions = detector(features)
            mask = torch.ones(emissions.shape[:2], dtype=torch.bool)
            with torch.no_grad():
                predicted = detector.crf.decode(emissions + cost.unsqueeze(0), mask)

            if torch.equal(predicted[0], gold_tags):
                continue

            predicted_cost = cost.gather(1, predicted[0].unsqueeze(1)).sum()
            violation = (
                detector.crf.path_score(emissions, mask, predicted)
                + predicted_cost
                - detector.crf.path_score(emissions, mask, gold_tags.unsqueeze(0))
            )
            total = total + violation.sum()

        if not total.requires_grad:
            return 0.0, [torch.zeros_like(p) for p in params]

        grads = torch.autograd.grad(total, params, allow_unused=True)
        return float(total.detach()), [
            torch.zeros_like(p) if g is None else g for p, g in zip(params, grads)
        ]


def _add_partials(
    accumulated: tuple[float, list[torch.Tensor]],
    partial: tuple[float, list[torch.Tensor]],
) -> tuple[float, list[torch.Tensor]]:
    loss, grads = accumulated
    partial_loss, partial_grads = partial
    return loss + partial_loss, [g + pg for g, pg in zip(grads, partial_grads)]
