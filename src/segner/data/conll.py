"""CoNLL-style corpus reader with BIO/IOB2 tags.

One ``token tag`` pair per line (extra middle columns are ignored, the tag
is the last column), sentences separated by blank lines. ``-DOCSTART-``
lines are skipped.
"""

from pathlib import Path
from typing import Sequence

from segner.data.base import CorpusReader
from segner.data.instance import Span, TrainingInstance
from segner.errors import CorpusFormatError


def bio_to_spans(tags: Sequence[str]) -> list[tuple[Span, str]]:
    """Convert a BIO tag sequence to labeled half-open spans.

    An ``I-X`` that does not continue an ``X`` entity starts a new one.
    """
    spans: list[tuple[Span, str]] = []
    start: int | None = None
    label: str | None = None

    for i, tag in enumerate(list(tags) + ["O"]):
        if tag == "O":
            prefix, tag_label = "O", None
        elif len(tag) > 2 and tag[1] == "-" and tag[0] in "BI":
            prefix, tag_label = tag[0], tag[2:]
        else:
            raise ValueError(f"Invalid BIO tag {tag!r} at position {i}")

        continues = prefix == "I" and tag_label == label
        if start is not None and not continues:
            spans.append((Span(start, i), label))
            start, label = None, None
        if prefix == "B" or (prefix == "I" and not continues):
            start, label = i, tag_label

    return spans


class ConllCorpusReader(CorpusReader):
    """Reads BIO-tagged token columns."""

    @property
    def name(self) -> str:
        return "conll"

    def read(self, path: str | Path) -> list[TrainingInstance]:
        path = Path(path)
        try:
            with path.open("r", encoding="utf-8") as f:
                lines = f.readlines()
        except (OSError, UnicodeDecodeError) as e:
            raise CorpusFormatError(f"Cannot read corpus {path}: {e}") from e

        instances = []
        tokens: list[str] = []
        tags: list[str] = []
        first_line = 1

        for line_no, line in enumerate(lines + ["\n"], start=1):
            parts = line.split()
            if parts and parts[0] == "-DOCSTART-":
                continue
            if not parts:
                if tokens:
                    instances.append(self._to_instance(tokens, tags, f"{path}:{first_line}"))
                tokens, tags = [], []
                first_line = line_no + 1
                continue
            if len(parts) < 2:
                raise CorpusFormatError(f"{path}:{line_no}: expected 'token tag', got {line.strip()!r}")
            tokens.append(parts[0])
            tags.append(parts[-1])

        return instances

    @staticmethod
    def _to_instance(tokens: list[str], tags: list[str], where: str) -> TrainingInstance:
        try:
            spans = bio_to_spans(tags)
        except ValueError as e:
            raise CorpusFormatError(f"sentence starting at {where}: {e}") from e
        instance = TrainingInstance(tokens)
        for span, label in spans:
            instance.add_entity(span, label)
        return instance
