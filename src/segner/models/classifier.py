"""Multiclass linear segment classifier with class-imbalance reweighting."""

from __future__ import annotations

import logging
import math
from collections import Counter
from typing import Sequence

import torch
import torch.nn as nn

from segner.errors import TrainingError

logger = logging.getLogger(__name__)


def count_of_least_common_label(labels: Sequence[int]) -> int:
    """Sample count of the rarest label that occurs at all."""
    counts = Counter(int(label) for label in labels)
    if not counts:
        raise ValueError("count_of_least_common_label() needs at least one label")
    return min(counts.values())


def class_weights(labels: Sequence[int], num_classes: int) -> torch.Tensor:
    """Weight each class by ``least / count`` so every class carries the same total mass.

    Classes with no samples get weight 0.
    """
    counts = Counter(int(label) for label in labels)
    least = count_of_least_common_label(labels)
    weights = torch.zeros(num_classes)
    for label, count in counts.items():
        weights[label] = least / count
    return weights


class SegmentClassifier(nn.Module):
    """Linear decision function from a segment feature vector to a label id."""

    def __init__(self, input_dim: int, num_classes: int):
        super().__init__()
        self.input_dim = input_dim
        self.num_classes = num_classes
        self.linear = nn.Linear(input_dim, num_classes)
        nn.init.zeros_(self.linear.weight)
        nn.init.zeros_(self.linear.bias)

    @property
    def weight(self) -> torch.Tensor:
        return self.linear.weight

    @property
    def bias(self) -> torch.Tensor:
        return self.linear.bias

    def forward(self, features: torch.Tensor) -> torch.Tensor:
        return self.linear(features)

    @torch.no_grad()
    def predict(self, features: torch.Tensor) -> tuple[int, float]:
        """Return the best label id and its decision value for one segment."""
        scores = self(features)
        label_id = int(torch.argmax(scores))
        return label_id, float(scores[label_id])


class SegmentClassifierTrainer:
    """Train a :class:`SegmentClassifier` with a class-weighted multiclass hinge loss."""

    def __init__(
        self,
        num_classes: int,
        c: float = 300.0,
        learning_rate: float = 0.05,
        max_epochs: int = 500,
        epsilon: float = 1e-6,
        patience: int = 20,
    ):
        if num_classes < 1:
            raise ValueError(f"num_classes must be >= 1, got {num_classes}")
        self.num_classes = num_classes
        self.c = c
        self.learning_rate = learning_rate
        self.max_epochs = max_epochs
        self.epsilon = epsilon
        self.patience = patience

    def train(self, samples: torch.Tensor, labels: torch.Tensor) -> SegmentClassifier:
        """Fit the classifier on ``(num_samples, dim)`` samples and their label ids.

        Raises:
            TrainingError: On empty input, an all-zero feature matrix, or a non-finite loss
        """
        if samples.ndim != 2 or samples.shape[0] == 0:
            raise TrainingError("Cannot train the segment classifier without samples")
        if samples.shape[0] != labels.shape[0]:
            raise ValueError(f"Got {samples.shape[0]} samples for {labels.shape[0]} labels")
        if not torch.any(samples):
            raise TrainingError("Cannot train the segment classifier: all segment features are zero")
        if int(labels.max()) >= self.num_classes or int(labels.min()) < 0:
            raise ValueError(f"Label ids must lie in [0, {self.num_classes})")

        num_samples = samples.shape[0]
        weights = class_weights(labels.tolist(), self.num_classes)
        logger.info(
            f"Training segment classifier on {num_samples} segments, {self.num_classes} classes "
            f"(least common label count {count_of_least_common_label(labels.tolist())})"
        )

        classifier = SegmentClassifier(samples.shape[1], self.num_classes)
        optimizer = torch.optim.Adam(classifier.parameters(), lr=self.learning_rate)
        hinge = nn.MultiMarginLoss(weight=weights, reduction="sum")

        best_loss = math.inf
        stale_epochs = 0
        for epoch in range(1, self.max_epochs + 1):
            optimizer.zero_grad()
            data_loss = hinge(classifier(samples), labels) / num_samples
            regularizer = classifier.weight.pow(2).sum() / (2 * self.c * num_samples)
            loss = data_loss + regularizer

            loss_value = loss.item()
            if not math.isfinite(loss_value):
                raise TrainingError(f"Segment classifier loss became non-finite at epoch {epoch}")
            logger.debug(f"classifier epoch {epoch}: loss {loss_value:.6f}")

            if data_loss.item() == 0.0:
                logger.info(f"Segment classifier separated all segments after {epoch} epochs")
                break
            if loss_value < best_loss - self.epsilon:
                best_loss = loss_value
                stale_epochs = 0
            else:
                stale_epochs += 1
                if stale_epochs >= self.patience:
                    logger.info(f"Segment classifier stopped improving after {epoch} epochs")
                    break

            loss.backward()
            optimizer.step()

        classifier.eval()
        return classifier
