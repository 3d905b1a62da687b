import json

import pytest

from segner.data.conll import ConllCorpusReader, bio_to_spans
from segner.data.instance import Span
from segner.data.jsonl import JsonlCorpusReader
from segner.errors import CorpusFormatError
from segner.registry import get_reader


def test_bio_to_spans():
    tags = ["B-PER", "I-PER", "O", "I-LOC", "B-LOC", "B-PER"]
    assert bio_to_spans(tags) == [
        (Span(0, 2), "PER"),
        (Span(3, 4), "LOC"),
        (Span(4, 5), "LOC"),
        (Span(5, 6), "PER"),
    ]


def test_bio_label_change_inside_entity_starts_new_span():
    assert bio_to_spans(["B-PER", "I-LOC"]) == [(Span(0, 1), "PER"), (Span(1, 2), "LOC")]


def test_bio_invalid_tag():
    with pytest.raises(ValueError):
        bio_to_spans(["B-PER", "X"])


class TestJsonlCorpusReader:
    def test_reads_sentences(self, tmp_path):
        path = tmp_path / "train.jsonl"
        records = [
            {"tokens": ["Ada", "Lovelace", "wrote"], "entities": [{"start": 0, "end": 2, "label": "PERSON"}]},
            {"tokens": ["nothing", "here"]},
        ]
        path.write_text("\n".join(json.dumps(r) for r in records) + "\n\n", encoding="utf-8")

        instances = JsonlCorpusReader().read(path)

        assert len(instances) == 2
        assert list(instances[0].entities()) == [(Span(0, 2), "PERSON")]
        assert instances[1].num_entities() == 0

    def test_invalid_json_reports_line(self, tmp_path):
        path = tmp_path / "bad.jsonl"
        path.write_text('{"tokens": ["a"]}\n{not json\n', encoding="utf-8")
        with pytest.raises(CorpusFormatError, match=":2:"):
            JsonlCorpusReader().read(path)

    @pytest.mark.parametrize(
        "record",
        [
            {"words": ["a"]},
            {"tokens": ["a"], "entities": None},
            {"tokens": ["a"], "entities": 3},
            {"tokens": ["a", "b"], "entities": [{"start": 0, "label": "X"}]},
            {"tokens": ["a", "b"], "entities": [{"start": 0, "end": 3, "label": "X"}]},
            {"tokens": ["a", "b", "c"], "entities": [
                {"start": 0, "end": 2, "label": "X"},
                {"start": 1, "end": 3, "label": "Y"},
            ]},
        ],
        ids=["no-tokens", "null-entities", "non-list-entities", "missing-end", "out-of-bounds", "overlap"],
    )
    def test_invalid_records(self, tmp_path, record):
        path = tmp_path / "bad.jsonl"
        path.write_text(json.dumps(record) + "\n", encoding="utf-8")
        with pytest.raises(CorpusFormatError):
            JsonlCorpusReader().read(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(CorpusFormatError):
            JsonlCorpusReader().read(tmp_path / "missing.jsonl")


class TestConllCorpusReader:
    def test_reads_sentences(self, tmp_path):
        path = tmp_path / "train.conll"
        path.write_text(
            "-DOCSTART- -X- O\n"
            "\n"
            "John NNP B-PER\n"
            "Smith NNP I-PER\n"
            "visited VBD O\n"
            "Paris NNP B-LOC\n"
            "\n"
            "\n"
            "It PRP O\n"
            "rained VBD O\n",
            encoding="utf-8",
        )

        instances = ConllCorpusReader().read(path)

        assert [inst.tokens for inst in instances] == [
            ("John", "Smith", "visited", "Paris"),
            ("It", "rained"),
        ]
        assert list(instances[0].entities()) == [(Span(0, 2), "PER"), (Span(3, 4), "LOC")]

    def test_missing_tag_column(self, tmp_path):
        path = tmp_path / "bad.conll"
        path.write_text("John B-PER\nSmith\n", encoding="utf-8")
        with pytest.raises(CorpusFormatError, match=":2:"):
            ConllCorpusReader().read(path)

    def test_invalid_tag(self, tmp_path):
        path = tmp_path / "bad.conll"
        path.write_text("John PERSON\n", encoding="utf-8")
        with pytest.raises(CorpusFormatError):
            ConllCorpusReader().read(path)


def test_registry():
    import segner  # noqa: F401  registers the built-in readers

    assert get_reader("jsonl") is JsonlCorpusReader
    assert get_reader("conll") is ConllCorpusReader
    with pytest.raises(KeyError):
        get_reader("xml")
