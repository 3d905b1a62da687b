"""Evaluation abstractions."""

from segner.evaluation.base import Evaluator
from segner.evaluation.span_evaluator import SpanEvaluator

__all__ = ["Evaluator", "SpanEvaluator"]
