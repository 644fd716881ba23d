"""Exception hierarchy for secondary-vertex reconstruction.

Configuration problems and track bookkeeping errors are fatal. Degenerate fits
and non-positive-definite covariances are recoverable and are absorbed at
the jet level by the producer.
"""

from __future__ import annotations


class SVRecoError(Exception):
    """Base class for all package errors."""


class ConfigurationError(SVRecoError, ValueError):
    """Invalid option name or malformed threshold block."""


class VertexFitError(SVRecoError):
    """The vertex fitter could not produce a vertex from its input tracks."""


class CovarianceError(SVRecoError, ArithmeticError):
    """A covariance matrix needed for a significance is not positive-definite."""


class TrackNotFoundError(SVRecoError, LookupError):
    """A fitted vertex references a track that is not in the jet's track list."""
