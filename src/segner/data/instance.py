"""Annotated token sequences used as NER training data."""

from __future__ import annotations

import operator
from typing import Iterator, NamedTuple, Sequence

from segner.errors import InvalidParameterError, InvalidRangeError


class Span(NamedTuple):
    """Half-open token range ``[start, end)``."""

    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start

    def overlaps(self, other: "Span") -> bool:
        return self.start < other.end and other.start < self.end


class TrainingInstance:
    """A sentence together with its non-overlapping labeled entity spans.

    Tokens are fixed at construction. Entities can only be appended, and
    every append is checked against the token bounds and the entities
    already present.
    """

    def __init__(self, tokens: Sequence[str]):
        self._tokens: tuple[str, ...] = tuple(str(token) for token in tokens)
        self._spans: list[Span] = []
        self._labels: list[str] = []

    def __repr__(self) -> str:
        return f"TrainingInstance(num_tokens={self.num_tokens()}, num_entities={self.num_entities()})"

    def num_tokens(self) -> int:
        return len(self._tokens)

    def num_entities(self) -> int:
        return len(self._spans)

    @property
    def tokens(self) -> tuple[str, ...]:
        return self._tokens

    @property
    def spans(self) -> tuple[Span, ...]:
        return tuple(self._spans)

    @property
    def labels(self) -> tuple[str, ...]:
        return tuple(self._labels)

    def entities(self) -> Iterator[tuple[Span, str]]:
        """Yield ``(span, label)`` pairs in insertion order."""
        return iter(list(zip(self._spans, self._labels)))

    def overlaps_any_entity(self, start: int, length: int) -> bool:
        """Return True if ``[start, start+length)`` intersects an existing entity.

        Raises:
            InvalidRangeError: If length is not positive or the range is out of bounds
        """
        try:
            end = operator.index(start) + operator.index(length)
        except TypeError as e:
            raise InvalidRangeError(f"Invalid entity start/length ({start!r}, {length!r})") from e
        span = self._checked_span(start, end)
        return any(span.overlaps(existing) for existing in self._spans)

    def add_entity(self, *args) -> None:
        """Add a labeled entity.

        Accepts either ``add_entity((start, end), label)`` with a half-open
        range, or ``add_entity(start, length, label)``.

        Raises:
            InvalidRangeError: If the span is out of bounds, empty, or overlaps
                an entity already present. The instance is left unchanged.
            InvalidParameterError: If the label is not a non-empty string
        """
        if len(args) == 2:
            token_range, label = args
            try:
                start, end = token_range
            except (TypeError, ValueError) as e:
                raise InvalidRangeError(f"Expected a (start, end) pair, got {token_range!r}") from e
        elif len(args) == 3:
            start, length, label = args
            try:
                end = operator.index(start) + operator.index(length)
            except TypeError as e:
                raise InvalidRangeError(f"Invalid entity start/length ({start!r}, {length!r})") from e
        else:
            raise TypeError(
                "add_entity() takes ((start, end), label) or (start, length, label), "
                f"got {len(args)} arguments"
            )

        if not isinstance(label, str) or not label:
            raise InvalidParameterError(f"Entity label must be a non-empty string, got {label!r}")

        span = self._checked_span(start, end)
        for existing in self._spans:
            if span.overlaps(existing):
                raise InvalidRangeError(
                    f"Entity [{span.start}, {span.end}) overlaps existing entity "
                    f"[{existing.start}, {existing.end})"
                )

        self._spans.append(span)
        self._labels.append(label)

    def _checked_span(self, start: int, end: int) -> Span:
        if isinstance(start, bool) or isinstance(end, bool):
            raise InvalidRangeError(f"Invalid entity range [{start}, {end})")
        try:
            start, end = operator.index(start), operator.index(end)
        except TypeError as e:
            raise InvalidRangeError(f"Invalid entity range [{start}, {end})") from e
        if end <= start:
            raise InvalidRangeError(f"Entity range [{start}, {end}) must have positive length")
        if start < 0 or end > len(self._tokens):
            raise InvalidRangeError(
                f"Entity range [{start}, {end}) is outside the {len(self._tokens)} tokens of the sentence"
            )
        return Span(start, end)
