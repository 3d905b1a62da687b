"""Exception hierarchy for segner."""


class SegnerError(Exception):
    """Base class for all segner errors."""


class InvalidRangeError(SegnerError, ValueError):
    """An entity span is out of bounds, empty, or overlaps another span."""


class InvalidParameterError(SegnerError, ValueError):
    """A hyperparameter or argument is outside its valid domain."""


class FileLoadError(SegnerError, OSError):
    """A feature provider file could not be read or parsed."""


class EmptyCorpusError(SegnerError, RuntimeError):
    """Training was requested before any instance was added."""


class TrainingError(SegnerError, RuntimeError):
    """Numerical failure while fitting the detector or the classifier."""


class CorpusFormatError(SegnerError, ValueError):
    """A corpus file does not follow the expected layout."""
