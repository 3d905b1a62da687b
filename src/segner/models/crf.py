"""Linear Chain CRF and BIOUL decoder for span detection.

Key features:
- Viterbi decoding under transition constraints
- Differentiable path scores for structured (margin-based) training
- BIOUL transition constraints so every decoded path is a valid chunking
"""

from __future__ import annotations

from typing import Sequence

import torch
import torch.nn as nn

from segner.data.instance import Span


IMPOSSIBLE = -100000


def multi_dim_triu(x: torch.Tensor, diagonal: int = 0) -> torch.Tensor:
    """Apply upper triangular mask to last two dimensions."""
    return x.masked_fill(
        ~torch.ones(x.shape[-2], x.shape[-1], dtype=torch.bool, device=x.device).triu(diagonal=diagonal),
        0
    )


class LinearChainCRF(nn.Module):
    """Linear Chain CRF for sequence labeling.

    Supports:
    - Viterbi decoding for best path
    - Scoring of a given tag path
    - Learnable transition parameters
    - Start/end transition constraints
    """

    def __init__(
        self,
        forbidden_transitions: torch.Tensor,
        start_forbidden_transitions: torch.Tensor | None = None,
        end_forbidden_transitions: torch.Tensor | None = None,
        learnable_transitions: bool = True,
        with_start_end_transitions: bool = True,
    ):
        super().__init__()

        num_tags = forbidden_transitions.shape[0]
        self.num_tags = num_tags

        self.register_buffer('forbidden_transitions', forbidden_transitions.bool())

        if start_forbidden_transitions is not None:
            self.register_buffer('start_forbidden_transitions', start_forbidden_transitions.bool())
        else:
            self.register_buffer('start_forbidden_transitions', torch.zeros(num_tags, dtype=torch.bool))

        if end_forbidden_transitions is not None:
            self.register_buffer('end_forbidden_transitions', end_forbidden_transitions.bool())
        else:
            self.register_buffer('end_forbidden_transitions', torch.zeros(num_tags, dtype=torch.bool))

        if learnable_transitions:
            self.transitions = nn.Parameter(torch.zeros_like(forbidden_transitions, dtype=torch.float))
        else:
            self.register_buffer('transitions', torch.zeros_like(forbidden_transitions, dtype=torch.float))

        if learnable_transitions and with_start_end_transitions:
            self.start_transitions = nn.Parameter(torch.zeros(num_tags, dtype=torch.float))
            self.end_transitions = nn.Parameter(torch.zeros(num_tags, dtype=torch.float))
        else:
            self.register_buffer('start_transitions', torch.zeros(num_tags, dtype=torch.float))
            self.register_buffer('end_transitions', torch.zeros(num_tags, dtype=torch.float))

    def decode(self, emissions: torch.Tensor, mask: torch.Tensor) -> torch.Tensor:
        """Viterbi decoding to find best tag sequence.

        Args:
            emissions: (batch, seq_len, num_tags) emission scores
            mask: (batch, seq_len) boolean mask

        Returns:
            (batch, seq_len) best tag sequence
        """
        backtrack = self.propagate(emissions, mask, ring_op_name="max")[2]
        path = [backtrack[-1][0, :, 0]]

        if len(backtrack) > 1:
            backtrack = torch.stack(backtrack[:-1] + backtrack[-2:-1], 2).squeeze(0)
            backtrack[range(len(mask)), mask.sum(1) - 1] = path[-1].unsqueeze(-1)

            # Backward max path following
            for k in range(backtrack.shape[1] - 2, -1, -1):
                path.insert(0, backtrack[:, k][range(len(path[0])), path[0]])

        path = torch.stack(path, -1).masked_fill(~mask, 0)
        return path

    def path_score(self, emissions: torch.Tensor, mask: torch.Tensor, tags: torch.Tensor) -> torch.Tensor:
        """Total potential (emissions + transitions) of the given tag paths.

        Args:
            emissions: (batch, seq_len, num_tags)
            mask: (batch, seq_len)
            tags: (batch, seq_len)

        Returns:
            (batch,) path scores, differentiable w.r.t. emissions and transitions
        """
        return self.propagate(emissions, mask, tags, ring_op_name="posterior")[0].squeeze(0)

    def propagate(
        self,
        emissions: torch.Tensor,
        mask: torch.Tensor,
        tags: torch.Tensor | None = None,
        ring_op_name: str = "posterior",
        use_constraints: bool = True,
    ):
        """Forward propagation with different semirings.

        Args:
            emissions: (batch, seq_len, num_tags)
            mask: (batch, seq_len)
            tags: Target tags, required for 'posterior'
            ring_op_name: 'posterior' or 'max'
            use_constraints: Whether to apply forbidden transitions

        Returns:
            (partition, log_probs, backtrack)
        """
        emissions = emissions.transpose(0, 1)
        mask = mask.transpose(0, 1)

        if tags is not None:
            tags = tags.transpose(0, 1).unsqueeze(1)

        backtrack = None

        if ring_op_name == "posterior":
            if tags is None:
                raise ValueError("posterior propagation requires tags")

            def ring_op(last_potential, trans, loc):
                return trans[tags[loc]] + last_potential[
                    torch.arange(tags.shape[1]).unsqueeze(1),
                    torch.arange(tags.shape[2]).unsqueeze(0),
                    tags[loc]
                ].unsqueeze(-1)
        elif ring_op_name == "max":
            backtrack = []

            def ring_op(last_potential, trans, loc):
                res, indices = (last_potential.unsqueeze(-1) + trans.unsqueeze(0).unsqueeze(0)).max(2)
                backtrack.append(indices)
                return res
        else:
            raise NotImplementedError(f"Unknown ring_op: {ring_op_name}")

        dtype = emissions.dtype
        if use_constraints:
            start_transitions = self.start_transitions.to(dtype).masked_fill(self.start_forbidden_transitions, IMPOSSIBLE)
            transitions = self.transitions.to(dtype).masked_fill(self.forbidden_transitions, IMPOSSIBLE)
            end_transitions = self.end_transitions.to(dtype).masked_fill(self.end_forbidden_transitions, IMPOSSIBLE)
        else:
            start_transitions = self.start_transitions.to(dtype)
            transitions = self.transitions.to(dtype)
            end_transitions = self.end_transitions.to(dtype)

        log_probs = [(start_transitions + emissions[0]).unsqueeze(0).repeat_interleave(
            tags.shape[1] if tags is not None else 1, dim=0
        )]

        for k in range(1, len(emissions)):
            res = ring_op(log_probs[-1], transitions, k - 1)
            log_probs.append(torch.where(
                mask[k].unsqueeze(-1),
                res + emissions[k],
                log_probs[-1]
            ))

        z = ring_op(
            log_probs[-1],
            end_transitions.unsqueeze(1),
            ((mask.sum(0) - 1).unsqueeze(0), torch.arange(log_probs[-1].shape[0]).unsqueeze(1), torch.arange(mask.shape[1]).unsqueeze(0))
        ).squeeze(-1)

        log_probs = torch.cat(log_probs, dim=0)

        return z, log_probs, backtrack


class BIOULDecoder(LinearChainCRF):
    """BIOUL CRF decoder for entity chunking.

    Tag scheme: O, I-label, B-label, L-label, U-label
    - O: Outside any entity
    - B: Beginning of multi-token entity
    - I: Inside multi-token entity
    - L: Last token of multi-token entity
    - U: Unit/single-token entity

    The span detector uses a single label: it finds boundaries only and
    leaves typing to the segment classifier.
    """

    O, I, B, L, U = 0, 1, 2, 3, 4

    def __init__(
        self,
        num_labels: int = 1,
        with_start_end_transitions: bool = True,
        allow_juxtaposition: bool = True,
        learnable_transitions: bool = True,
    ):
        O, I, B, L, U = 0, 1, 2, 3, 4

        self.num_labels = num_labels
        num_tags = 1 + num_labels * 4  # O + (I, B, L, U) per label

        # Build forbidden transition matrix
        forbidden_transitions = torch.ones(num_tags, num_tags, dtype=torch.bool)
        forbidden_transitions[O, O] = 0  # O to O

        for i in range(num_labels):
            STRIDE = 4 * i
            for j in range(num_labels):
                STRIDE_J = j * 4
                forbidden_transitions[L + STRIDE, B + STRIDE_J] = 0  # L-i to B-j
                forbidden_transitions[L + STRIDE, U + STRIDE_J] = 0  # L-i to U-j
                forbidden_transitions[U + STRIDE, B + STRIDE_J] = 0  # U-i to B-j
                forbidden_transitions[U + STRIDE, U + STRIDE_J] = 0  # U-i to U-j

            forbidden_transitions[O, B + STRIDE] = 0  # O to B-i
            forbidden_transitions[B + STRIDE, I + STRIDE] = 0  # B-i to I-i
            forbidden_transitions[I + STRIDE, I + STRIDE] = 0  # I-i to I-i
            forbidden_transitions[I + STRIDE, L + STRIDE] = 0  # I-i to L-i
            forbidden_transitions[B + STRIDE, L + STRIDE] = 0  # B-i to L-i

            forbidden_transitions[L + STRIDE, O] = 0  # L-i to O
            forbidden_transitions[O, U + STRIDE] = 0  # O to U-i
            forbidden_transitions[U + STRIDE, O] = 0  # U-i to O

            if not allow_juxtaposition:
                forbidden_transitions[L + STRIDE, U + STRIDE] = 1  # L-i to U-i
                forbidden_transitions[U + STRIDE, B + STRIDE] = 1  # U-i to B-i
                forbidden_transitions[U + STRIDE, U + STRIDE] = 1  # U-i to U-i
                forbidden_transitions[L + STRIDE, B + STRIDE] = 1  # L-i to B-i

        # Start/end constraints
        start_forbidden_transitions = torch.zeros(num_tags, dtype=torch.bool)
        end_forbidden_transitions = torch.zeros(num_tags, dtype=torch.bool)

        if with_start_end_transitions:
            for i in range(num_labels):
                STRIDE = 4 * i
                start_forbidden_transitions[I + STRIDE] = 1  # Can't start with I
                start_forbidden_transitions[L + STRIDE] = 1  # Can't start with L
                end_forbidden_transitions[I + STRIDE] = 1  # Can't end with I
                end_forbidden_transitions[B + STRIDE] = 1  # Can't end with B

        super().__init__(
            forbidden_transitions,
            start_forbidden_transitions,
            end_forbidden_transitions,
            with_start_end_transitions=with_start_end_transitions,
            learnable_transitions=learnable_transitions,
        )

    def tags_to_spans(self, tags: torch.Tensor, mask: torch.Tensor | None = None) -> torch.Tensor:
        """Convert BIOUL tags to span predictions.

        Args:
            tags: (batch, seq_len) tag indices
            mask: (batch, seq_len) optional mask

        Returns:
            (batch, seq_len, seq_len) boolean matrix; ``[b, i, j]`` marks the
            inclusive span ``i..j``
        """
        I, B, L, U = 0, 1, 2, 3

        if mask is not None:
            tags = tags.masked_fill(~mask, 0)

        unstrided_tags = ((tags - 1) % 4).masked_fill(tags == 0, -1)
        is_B_or_U = (unstrided_tags == B) | (unstrided_tags == U)
        is_L_or_U = (unstrided_tags == L) | (unstrided_tags == U)

        # Only prevent O tag between two bounds
        cs_no_hole = (tags == 0).long().cumsum(1)
        has_no_hole = (cs_no_hole.unsqueeze(-1) - cs_no_hole.unsqueeze(-2)) == 0

        prediction = multi_dim_triu((is_B_or_U).unsqueeze(-1) & (is_L_or_U).unsqueeze(-2) & has_no_hole)

        # No overlapping: nothing other than I between two bounds
        begin_cs = (is_B_or_U).cumsum(1)
        end_cs = (is_L_or_U).cumsum(1)
        begin_count = begin_cs.unsqueeze(-1) - begin_cs.unsqueeze(-2)
        end_count = end_cs.unsqueeze(-1) - end_cs.unsqueeze(-2)
        prediction &= ((begin_count + end_count) == 0) | ((begin_count + end_count == -1))

        if mask is not None:
            prediction = prediction & mask.unsqueeze(-1) & mask.unsqueeze(-2)

        return prediction

    def decode_spans(self, tags: torch.Tensor) -> list[Span]:
        """Return the half-open spans encoded by one ``(seq_len,)`` tag path."""
        matrix = self.tags_to_spans(tags.unsqueeze(0))[0]
        return [Span(int(i), int(j) + 1) for i, j in matrix.nonzero().tolist()]

    @classmethod
    def spans_to_tags(cls, spans: Sequence[Span], num_tokens: int) -> torch.Tensor:
        """Encode non-overlapping single-label spans as a ``(num_tokens,)`` BIOUL path."""
        tags = torch.full((num_tokens,), cls.O, dtype=torch.long)
        for start, end in spans:
            if end - start == 1:
                tags[start] = cls.U
            else:
                tags[start] = cls.B
                tags[start + 1:end - 1] = cls.I
                tags[end - 1] = cls.L
        return tags
