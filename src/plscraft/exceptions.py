"""
Errors and warnings raised by the PLS engine.

Configuration and dimension errors are fatal and are raised before any
expensive computation starts. Degenerate data is reported through warnings
so the caller can decide whether a result is usable.
"""


class PLSError(Exception):
    """Base class for all PLSCraft errors."""


class InvalidConfigurationError(PLSError, ValueError):
    """An option value lies outside its allowed domain."""


class InvalidModeError(InvalidConfigurationError):
    """Unknown normalization or Procrustes mode."""


class UndefinedBehaviorTypeError(InvalidConfigurationError):
    """Unknown behavioral design mode."""


class UnsupportedGroupCountError(PLSError, ValueError):
    """Contrast designs need exactly 2 or 3 groups."""


class DimensionMismatchError(PLSError, ValueError):
    """Subject or variable counts disagree across inputs."""


class DegenerateResampleError(PLSError, RuntimeError):
    """A resample produced a layout for which the covariance is undefined."""


class PLSWarning(UserWarning):
    """Base class for all PLSCraft warnings."""


class DegenerateColumnWarning(PLSWarning):
    """A column has zero variance, so its normalization or correlation is undefined."""


class DegenerateResampleWarning(PLSWarning):
    """A bootstrap resample contains a group with fewer than two distinct subjects."""
