"""JAX backend implementation.

Jacobians are taken in forward mode with ``jax.jacfwd``, so residual
code traced by this backend sees forward-mode tracers as its scalars.
"""

import os
import platform
from typing import Callable
from typing import List
from typing import Tuple
from typing import Union


# Ensure CPU backend on Mac before JAX imports
if platform.system() == 'Darwin':
    if 'JAX_PLATFORMS' not in os.environ:
        os.environ['JAX_PLATFORMS'] = 'cpu'

import numpy as np


_jax = None
_jnp = None


def _ensure_jax():
    """Ensure JAX is imported."""
    global _jax, _jnp
    if _jax is None:
        import jax
        import jax.numpy as jnp

        _jax = jax
        _jnp = jnp

        # Enable float64 by default
        jax.config.update("jax_enable_x64", True)


class JaxBackend:
    """JAX backend for differentiable array operations.

    Parameters
    ----------
    enable_x64 : bool
        Enable 64-bit floating point precision. Default is True.

    Examples
    --------
    >>> from sktrajopt.backend.jax_backend import JaxBackend
    >>> backend = JaxBackend()
    >>> jac = backend.jacobian(lambda x: x ** 2)
    >>> jac(backend.array([1.0, 2.0]))
    Array([[2., 0.],
           [0., 4.]], dtype=float64)
    """

    def __init__(self, enable_x64: bool = True):
        _ensure_jax()
        if enable_x64:
            _jax.config.update("jax_enable_x64", True)

    # === Backend Info ===

    @property
    def name(self) -> str:
        """Backend name."""
        return 'jax'

    def is_concrete(self, arr) -> bool:
        """Whether ``arr`` holds data rather than a trace-time placeholder."""
        return not isinstance(arr, _jax.core.Tracer)

    # === Array Creation ===

    def array(self, data):
        """Convert data to JAX array."""
        return _jnp.asarray(data)

    def zeros(self, shape: Union[int, Tuple[int, ...]]):
        """Create array of zeros."""
        return _jnp.zeros(shape)

    def to_numpy(self, arr) -> np.ndarray:
        """Convert JAX array to numpy array."""
        return np.asarray(arr)

    # === Array Manipulation ===

    def concatenate(self, arrays: List, axis: int = 0):
        """Concatenate arrays along axis."""
        return _jnp.concatenate(arrays, axis=axis)

    def stack(self, arrays: List, axis: int = 0):
        """Stack arrays along new axis."""
        return _jnp.stack(arrays, axis=axis)

    # === Math Operations ===

    def matmul(self, a, b):
        """Matrix multiplication."""
        return _jnp.matmul(a, b)

    def outer(self, a, b):
        """Outer product."""
        return _jnp.outer(a, b)

    def sin(self, arr):
        """Sine."""
        return _jnp.sin(arr)

    def cos(self, arr):
        """Cosine."""
        return _jnp.cos(arr)

    # === Automatic Differentiation ===

    def jacobian(self, fn: Callable) -> Callable:
        """Return function that computes the Jacobian in forward mode.

        Parameters
        ----------
        fn : callable
            Vector-valued function.

        Returns
        -------
        callable
            Function returning the (m, n) Jacobian matrix.
        """
        return _jax.jacfwd(fn)
