"""Configuration classes for runs and training."""

from typing import Literal

from pydantic import BaseModel, Field


class TrainerConfig(BaseModel):
    """Hyperparameters of the NER trainer."""

    beta: float = Field(default=0.5, ge=0.0, description="Recall/precision trade-off of the span detector loss")
    num_threads: int = Field(default=16, ge=1, description="Worker threads used by train()")
    seed: int = Field(default=42, description="Random seed for reproducibility")

    # Structured feature builder
    hash_buckets: int = Field(default=512, ge=1, description="Number of hashed sparse feature slots per token")
    window_size: int = Field(default=1, ge=0, description="Neighbour tokens on each side fed to the detector")

    # Span detector (structural SVM)
    detector_c: float = Field(default=20.0, gt=0.0, description="Inverse L2 regularization strength of the detector")
    detector_learning_rate: float = Field(default=0.05, gt=0.0, description="Detector learning rate")
    detector_max_epochs: int = Field(default=300, ge=1, description="Maximum passes over the corpus")
    detector_epsilon: float = Field(default=0.01, ge=0.0, description="Stop once the mean hinge loss drops below this")

    # Segment classifier
    classifier_c: float = Field(default=300.0, gt=0.0, description="Inverse L2 regularization strength of the classifier")
    classifier_learning_rate: float = Field(default=0.05, gt=0.0, description="Classifier learning rate")
    classifier_max_epochs: int = Field(default=500, ge=1, description="Maximum classifier epochs")
    classifier_epsilon: float = Field(default=1e-6, ge=0.0, description="Minimum loss improvement before stopping")
    near_miss_negatives: bool = Field(default=True, description="Add boundary-shifted gold spans as negatives")


class RunConfig(BaseModel):
    """Main run configuration."""

    embeddings_path: str = Field(..., description="Word vector file in word2vec/GloVe text format")
    train_path: str = Field(..., description="Training corpus")
    eval_path: str | None = Field(default=None, description="Evaluation corpus; defaults to the training corpus")
    corpus_format: Literal["jsonl", "conll"] = Field(default="jsonl", description="Corpus file format")
    output_path: str | None = Field(default=None, description="Optional JSON file for the run summary")
    trainer: TrainerConfig = Field(default_factory=TrainerConfig, description="Trainer configuration")
