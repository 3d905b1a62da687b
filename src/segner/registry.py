"""Registry for corpus readers."""

from typing import Type

from segner.data.base import CorpusReader


_readers: dict[str, Type[CorpusReader]] = {}


def register_reader(name: str, reader_class: Type[CorpusReader]) -> None:
    """Register a corpus reader class.

    Args:
        name: Corpus format name
        reader_class: CorpusReader class
    """
    _readers[name] = reader_class


def get_reader(name: str) -> Type[CorpusReader]:
    """Get a corpus reader class by format name.

    Args:
        name: Corpus format name

    Returns:
        CorpusReader class

    Raises:
        KeyError: If no reader is registered under that name
    """
    if name not in _readers:
        raise KeyError(f"Corpus format '{name}' not found. Available: {list(_readers.keys())}")
    return _readers[name]
