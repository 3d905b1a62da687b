"""Base corpus reader abstraction.

A CorpusReader turns an annotated corpus file into training instances.
"""

from abc import ABC, abstractmethod
from pathlib import Path

from segner.data.instance import TrainingInstance


class CorpusReader(ABC):
    """Base class for all corpus readers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the reader name."""
        pass

    @abstractmethod
    def read(self, path: str | Path) -> list[TrainingInstance]:
        """Read every sentence of a corpus file.

        Args:
            path: Corpus file

        Returns:
            One training instance per sentence, in file order

        Raises:
            CorpusFormatError: If the file does not follow the reader's format
        """
        pass
