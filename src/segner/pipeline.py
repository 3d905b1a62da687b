"""Pipeline that connects corpus, trainer, and evaluation."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from segner.config import RunConfig
from segner.data.base import CorpusReader
from segner.data.instance import TrainingInstance
from segner.evaluation.span_evaluator import SpanEvaluator
from segner.models.extractor import NamedEntityExtractor
from segner.registry import get_reader
from segner.trainer import NERTrainer

logger = logging.getLogger(__name__)


def corpus_statistics(instances: list[TrainingInstance]) -> dict[str, Any]:
    """Sentence, token and entity counts, with per-label counts in first-seen order."""
    label_counts: dict[str, int] = {}
    for instance in instances:
        for label in instance.labels:
            label_counts[label] = label_counts.get(label, 0) + 1
    return {
        "sentences": len(instances),
        "tokens": sum(instance.num_tokens() for instance in instances),
        "entities": sum(instance.num_entities() for instance in instances),
        "labels": label_counts,
    }


class Pipeline:
    """Reads a corpus, trains an extractor, and evaluates it.

    The trained extractor is kept on the pipeline (``self.extractor``); it is
    never written to disk.
    """

    def __init__(self, config: RunConfig):
        """Initialize pipeline with configuration.

        Args:
            config: Run configuration
        """
        self.config = config
        reader_class = get_reader(config.corpus_format)
        self.reader: CorpusReader = reader_class()
        self.extractor: NamedEntityExtractor | None = None

    def load_train(self) -> list[TrainingInstance]:
        return self.reader.read(self.config.train_path)

    def load_eval(self) -> tuple[str, list[TrainingInstance]]:
        if self.config.eval_path:
            return "eval", self.reader.read(self.config.eval_path)
        return "train", self.load_train()

    def run(self) -> dict[str, Any]:
        """Run training and evaluation.

        Returns:
            Summary dictionary with config, corpus statistics, labels and
            evaluation metrics.
        """
        train_instances = self.load_train()
        trainer = NERTrainer(self.config.embeddings_path, self.config.trainer)
        for instance in train_instances:
            trainer.add(instance)

        summary: dict[str, Any] = {
            "config": self.config.model_dump(),
            "corpus": corpus_statistics(train_instances),
            "labels": trainer.get_all_labels(),
            "evaluation": {
                "split": None,
                "metrics": None,
            },
        }

        self.extractor = trainer.train()

        split, eval_instances = self.load_eval()
        predictions = [self.extractor.predict(instance.tokens) for instance in eval_instances]
        references = [list(instance.entities()) for instance in eval_instances]
        metrics = SpanEvaluator().evaluate(predictions, references)
        logger.info(f"Evaluation on {split} split: exact_f1={metrics['exact_f1']:.4f}")

        summary["evaluation"]["split"] = split
        summary["evaluation"]["metrics"] = metrics

        if self.config.output_path:
            output_path = Path(self.config.output_path).expanduser()
            output_path.parent.mkdir(parents=True, exist_ok=True)
            with output_path.open("w", encoding="utf-8") as f:
                json.dump(summary, f, indent=2)
            summary["output_path"] = str(output_path)

        return summary
