"""JSON Lines corpus reader.

Each non-blank line is one sentence::

    {"tokens": ["Ada", "Lovelace", "wrote"], "entities": [{"start": 0, "end": 2, "label": "PERSON"}]}

``end`` is exclusive.
"""

import json
from pathlib import Path
from typing import Any

from segner.data.base import CorpusReader
from segner.data.instance import TrainingInstance
from segner.errors import CorpusFormatError, SegnerError


class JsonlCorpusReader(CorpusReader):
    """Reads token/entity records from a ``.jsonl`` file."""

    @property
    def name(self) -> str:
        return "jsonl"

    def read(self, path: str | Path) -> list[TrainingInstance]:
        path = Path(path)
        try:
            with path.open("r", encoding="utf-8") as f:
                lines = f.readlines()
        except (OSError, UnicodeDecodeError) as e:
            raise CorpusFormatError(f"Cannot read corpus {path}: {e}") from e

        instances = []
        for line_no, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError as e:
                raise CorpusFormatError(f"{path}:{line_no}: invalid JSON: {e.msg}") from e
            instances.append(self._to_instance(record, f"{path}:{line_no}"))
        return instances

    @staticmethod
    def _to_instance(record: Any, where: str) -> TrainingInstance:
        if not isinstance(record, dict) or not isinstance(record.get("tokens"), list):
            raise CorpusFormatError(f"{where}: expected an object with a 'tokens' list")

        instance = TrainingInstance(record["tokens"])
        entities = record.get("entities", [])
        if not isinstance(entities, list):
            raise CorpusFormatError(f"{where}: 'entities' must be a list, got {entities!r}")
        for entity in entities:
            try:
                instance.add_entity((entity["start"], entity["end"]), entity["label"])
            except (KeyError, TypeError) as e:
                raise CorpusFormatError(
                    f"{where}: entities need 'start', 'end' and 'label' fields, got {entity!r}"
                ) from e
            except SegnerError as e:
                raise CorpusFormatError(f"{where}: {e}") from e
        return instance
