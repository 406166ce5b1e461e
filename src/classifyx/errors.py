"""Exception hierarchy for ClassifyX.

Construction-time errors (``ModelLoadError``, ``UnsupportedModelShape``) are
fatal to ``Classifier.open``. Per-call errors (``DecodeError``,
``UnsupportedOutputShape``, ``InferenceError``) only fail the call that
raised them.
"""

from __future__ import annotations


class ClassifyXError(Exception):
    """Base class for all ClassifyX errors."""


class ModelLoadError(ClassifyXError):
    """The inference engine rejected the model file, or no model could be found."""


class UnsupportedModelShape(ClassifyXError):  # noqa: N818
    """The model input is not a single rank-4 image tensor."""


class LabelFileError(ClassifyXError):
    """A labels file exists but could not be read."""


class DecodeError(ClassifyXError):
    """An image could not be decoded or resampled."""


class UnsupportedOutputShape(ClassifyXError):  # noqa: N818
    """The model output is not one of the recognized score-vector shapes."""


class InferenceError(ClassifyXError):
    """The inference engine failed while executing the model."""


class ClassifierClosedError(ClassifyXError):
    """A classification was requested after the classifier was closed."""
