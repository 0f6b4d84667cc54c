"""Exception types raised by sktrajopt.

They derive from ``ValueError`` and ``RuntimeError`` so callers that
catch the builtin types keep working.
"""


class ConfigurationError(ValueError):
    """Invalid construction parameters (timestep bounds, knot count...)."""


class DimensionMismatchError(ValueError):
    """A vector or matrix of the wrong size crossed a public boundary."""


class SequencingError(RuntimeError):
    """An operation was called at the wrong point of the compile lifecycle."""


def check_size(name, value, expected):
    """Raise DimensionMismatchError unless ``value`` has ``expected`` entries.

    Parameters
    ----------
    name : str
        Argument name used in the error message.
    value : array-like
        One dimensional array (numpy, jax or traced).
    expected : int
        Required length.
    """
    shape = getattr(value, 'shape', None)
    if shape is None:
        shape = (len(value),)
    if len(shape) != 1 or shape[0] != expected:
        raise DimensionMismatchError(
            f"{name} must have shape ({expected},), got {tuple(shape)}")
