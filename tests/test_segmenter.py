import pytest
import torch

from segner.data.instance import Span
from segner.errors import TrainingError
from segner.features.builder import StructuredFeatureBuilder
from segner.models.crf import BIOULDecoder
from segner.models.segmenter import NUM_TAGS, SpanDetector, SpanDetectorTrainer, tag_costs


@pytest.mark.parametrize("beta", [0.0, 0.5, 1.0, 4.0])
def test_tag_costs(beta):
    gold = BIOULDecoder.spans_to_tags([Span(0, 2)], 3)
    cost = tag_costs(gold, beta=beta, num_tags=NUM_TAGS)

    assert cost[0].tolist() == [beta, beta, 0.0, beta, beta]
    assert cost[1].tolist() == [beta, beta, beta, 0.0, beta]
    assert cost[2].tolist() == [0.0, 1.0, 1.0, 1.0, 1.0]


def test_untrained_detector_emits_zero_scores():
    detector = SpanDetector(input_dim=6)
    assert detector(torch.ones(3, 6)).shape == (1, 3, NUM_TAGS)
    assert not torch.any(detector(torch.ones(3, 6)))
    assert detector.segment(torch.zeros(0, 6)) == []


class TestSpanDetectorTrainer:
    def _windowed(self, provider, sentences):
        builder = StructuredFeatureBuilder(provider, hash_buckets=64)
        return [builder.windowed(builder.token_features(tokens)) for tokens in sentences]

    @pytest.mark.parametrize("num_threads", [1, 3])
    def test_learns_training_spans(self, provider, num_threads):
        sentences = [
            ["John", "Smith", "lives", "in", "Paris", "."],
            ["nothing", "to", "see", "here"],
            ["Mary", "went", "to", "New", "York"],
        ]
        gold = [[Span(0, 2), Span(4, 5)], [], [Span(0, 1), Span(3, 5)]]
        features = self._windowed(provider, sentences)

        detector = SpanDetectorTrainer(beta=0.5, num_threads=num_threads).train(features, gold)

        assert not detector.training
        for sentence_features, spans in zip(features, gold):
            assert detector.segment(sentence_features) == spans

    def test_skips_empty_sentences(self, provider):
        features = self._windowed(provider, [["Alice", "slept"], []])
        detector = SpanDetectorTrainer().train(features, [[Span(0, 1)], []])
        assert detector.segment(features[0]) == [Span(0, 1)]

    def test_no_tokens(self, provider):
        features = self._windowed(provider, [[]])
        with pytest.raises(TrainingError):
            SpanDetectorTrainer().train(features, [[]])

    def test_all_zero_features(self):
        with pytest.raises(TrainingError):
            SpanDetectorTrainer().train([torch.zeros(3, 4)], [[Span(0, 1)]])

    def test_mismatched_inputs(self):
        with pytest.raises(ValueError):
            SpanDetectorTrainer().train([torch.ones(3, 4)], [])
