import pytest
import torch

from segner.data.instance import Span
from segner.models.crf import BIOULDecoder

O, I, B, L, U = BIOULDecoder.O, BIOULDecoder.I, BIOULDecoder.B, BIOULDecoder.L, BIOULDecoder.U


@pytest.fixture
def crf():
    return BIOULDecoder(num_labels=1)


def _emissions_for(path, num_tags=5, strength=5.0):
    emissions = torch.zeros(1, len(path), num_tags)
    for position, tag in enumerate(path):
        emissions[0, position, tag] = strength
    return emissions


def test_spans_to_tags():
    tags = BIOULDecoder.spans_to_tags([Span(0, 2), Span(3, 4), Span(4, 7)], 8)
    assert tags.tolist() == [B, L, O, U, B, I, L, O]


@pytest.mark.parametrize(
    "spans",
    [
        [],
        [Span(0, 1)],
        [Span(0, 1), Span(1, 2)],
        [Span(1, 5)],
        [Span(0, 3), Span(3, 4), Span(5, 6)],
    ],
)
def test_decode_spans_inverts_spans_to_tags(crf, spans):
    assert crf.decode_spans(BIOULDecoder.spans_to_tags(spans, 6)) == spans


def test_decode_follows_emissions_on_valid_path(crf):
    path = [B, L, O, U, U, O]
    mask = torch.ones(1, len(path), dtype=torch.bool)
    assert crf.decode(_emissions_for(path), mask)[0].tolist() == path


def test_decode_never_returns_forbidden_transitions(crf):
    # I at the start and O -> L are forbidden
    emissions = _emissions_for([I, O, L, O])
    mask = torch.ones(1, 4, dtype=torch.bool)
    decoded = crf.decode(emissions, mask)[0]
    spans = crf.decode_spans(decoded)
    assert BIOULDecoder.spans_to_tags(spans, 4).tolist() == decoded.tolist()


def test_single_token_sentence(crf):
    mask = torch.ones(1, 1, dtype=torch.bool)
    assert crf.decode(_emissions_for([U]), mask)[0].tolist() == [U]
    assert crf.decode(torch.zeros(1, 1, 5), mask)[0].tolist() in ([O], [U])


def test_path_score_sums_emissions_with_zero_transitions(crf):
    torch.manual_seed(0)
    emissions = torch.randn(1, 4, 5, requires_grad=True)
    mask = torch.ones(1, 4, dtype=torch.bool)
    tags = torch.tensor([[B, L, O, U]])

    score = crf.path_score(emissions, mask, tags)
    expected = emissions[0, torch.arange(4), tags[0]].sum()
    assert torch.allclose(score, expected)

    score.sum().backward()
    assert emissions.grad[0, 0, B] == 1.0
    assert emissions.grad[0, 0, O] == 0.0


def test_path_score_is_differentiable_in_transitions(crf):
    emissions = torch.zeros(1, 3, 5)
    mask = torch.ones(1, 3, dtype=torch.bool)
    score = crf.path_score(emissions, mask, torch.tensor([[B, L, O]]))
    score.sum().backward()
    assert crf.transitions.grad[B, L] == 1.0
    assert crf.transitions.grad[L, O] == 1.0
