"""
Exception types raised by the classifier core.

ValidationError: empty or malformed datasets, unknown backend kinds,
    malformed feature vectors or confusion matrices.
StateError: predicting/evaluating an untrained model, or re-entering an
    operation that is already in flight.
DecodeError: the image source could not supply pixels.
"""


class ClassifierError(Exception):
    """Base class for all classifier errors."""


class ValidationError(ClassifierError, ValueError):
    pass


class StateError(ClassifierError, RuntimeError):
    pass


class DecodeError(ClassifierError, ValueError):
    pass
