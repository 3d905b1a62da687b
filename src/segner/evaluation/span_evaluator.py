"""Span-level evaluation of token-offset entity predictions."""

from collections import defaultdict
from typing import Iterable, Sequence

from segner.data.instance import Span
from segner.evaluation.base import Evaluator

LabeledSpan = tuple[int, int, str]


def _prf(tp: int, fp: int, fn: int) -> tuple[float, float, float]:
    precision = tp / (tp + fp) if (tp + fp) > 0 else 0.0
    recall = tp / (tp + fn) if (tp + fn) > 0 else 0.0
    f1 = 2 * precision * recall / (precision + recall) if (precision + recall) > 0 else 0.0
    return precision, recall, f1


class SpanEvaluator(Evaluator):
    """Evaluate labeled token spans sentence by sentence.

    Computes micro precision/recall/F1 for exact matches (same start, end
    and label) and partial matches (any overlap with the same label), plus
    per-label exact F1.
    """

    def evaluate(
        self,
        predictions: Sequence[Iterable[tuple[Span, str]]],
        references: Sequence[Iterable[tuple[Span, str]]],
    ) -> dict[str, float]:
        """Evaluate span predictions.

        Args:
            predictions: Per-sentence ``(span, label)`` predictions
            references: Per-sentence gold ``(span, label)`` pairs

        Returns:
            Dictionary with exact_*, partial_* and ``<label>_exact_f1`` entries
        """
        if len(predictions) != len(references):
            raise ValueError(
                f"Got predictions for {len(predictions)} sentences but {len(references)} references"
            )
        pred_spans = [self._to_set(sentence) for sentence in predictions]
        gold_spans = [self._to_set(sentence) for sentence in references]

        exact = self._compute_metrics(pred_spans, gold_spans, exact=True)
        partial = self._compute_metrics(pred_spans, gold_spans, exact=False)

        results = {
            'exact_f1': exact['micro_f1'],
            'exact_precision': exact['micro_precision'],
            'exact_recall': exact['micro_recall'],
            'partial_f1': partial['micro_f1'],
            'partial_precision': partial['micro_precision'],
            'partial_recall': partial['micro_recall'],
        }
        for label, metrics in sorted(exact['per_type'].items()):
            results[f'{label}_exact_f1'] = metrics['f1']
        return results

    @staticmethod
    def _to_set(sentence: Iterable[tuple[Span, str]]) -> set[LabeledSpan]:
        return {(int(span[0]), int(span[1]), label) for span, label in sentence}

    def _compute_metrics(
        self, pred_spans: list[set[LabeledSpan]], gold_spans: list[set[LabeledSpan]], exact: bool
    ) -> dict:
        """Compute precision, recall, F1 for spans."""
        total_tp = total_fp = total_fn = 0
        type_counts = defaultdict(lambda: {'tp': 0, 'fp': 0, 'fn': 0})

        for pred_set, gold_set in zip(pred_spans, gold_spans):
            if exact:
                matched_pred = pred_set & gold_set
                matched_gold = matched_pred
            else:
                # Partial match: any overlap with the same label; each gold span matches once
                matched_pred = set()
                matched_gold = set()
                for p_start, p_end, p_label in sorted(pred_set):
                    for g_span in sorted(gold_set - matched_gold):
                        g_start, g_end, g_label = g_span
                        if p_label == g_label and p_start < g_end and g_start < p_end:
                            matched_pred.add((p_start, p_end, p_label))
                            matched_gold.add(g_span)
                            break

            total_tp += len(matched_pred)
            total_fp += len(pred_set - matched_pred)
            total_fn += len(gold_set - matched_gold)

            for span in matched_pred:
                type_counts[span[2]]['tp'] += 1
            for span in pred_set - matched_pred:
                type_counts[span[2]]['fp'] += 1
            for span in gold_set - matched_gold:
                type_counts[span[2]]['fn'] += 1

        precision, recall, f1 = _prf(total_tp, total_fp, total_fn)
        per_type = {}
        for label, counts in type_counts.items():
            p, r, f = _prf(counts['tp'], counts['fp'], counts['fn'])
            per_type[label] = {'precision': p, 'recall': r, 'f1': f}

        return {
            'micro_precision': precision,
            'micro_recall': recall,
            'micro_f1': f1,
            'per_type': per_type,
        }
