"""NumPy backend implementation.

This module provides the plain real-valued backend. Residuals evaluated
with it return float64 arrays; derivatives are taken by forward finite
differences.
"""

from typing import Callable
from typing import List
from typing import Tuple
from typing import Union

import numpy as np


class NumpyBackend:
    """NumPy backend for array operations.

    Parameters
    ----------
    dtype : numpy.dtype, optional
        Default data type for arrays. Default is float64.

    Examples
    --------
    >>> from sktrajopt.backend.numpy_backend import NumpyBackend
    >>> backend = NumpyBackend()
    >>> x = backend.array([1.0, 2.0, 3.0])
    >>> backend.matmul(x, x)
    14.0
    """

    def __init__(self, dtype=np.float64):
        self._dtype = dtype

    # === Backend Info ===

    @property
    def name(self) -> str:
        """Backend name."""
        return 'numpy'

    def is_concrete(self, arr) -> bool:
        """NumPy values always carry concrete data."""
        return True

    # === Array Creation ===

    def array(self, data) -> np.ndarray:
        """Convert data to numpy array."""
        return np.asarray(data, dtype=self._dtype)

    def zeros(self, shape: Union[int, Tuple[int, ...]]) -> np.ndarray:
        """Create array of zeros."""
        return np.zeros(shape, dtype=self._dtype)

    def to_numpy(self, arr: np.ndarray) -> np.ndarray:
        """Convert to numpy array (identity for numpy backend)."""
        return np.asarray(arr)

    # === Array Manipulation ===

    def concatenate(
        self,
        arrays: List[np.ndarray],
        axis: int = 0,
    ) -> np.ndarray:
        """Concatenate arrays along axis."""
        return np.concatenate(arrays, axis=axis)

    def stack(
        self,
        arrays: List[np.ndarray],
        axis: int = 0,
    ) -> np.ndarray:
        """Stack arrays along new axis."""
        return np.stack(arrays, axis=axis)

    # === Math Operations ===

    def matmul(self, a: np.ndarray, b: np.ndarray) -> np.ndarray:
        """Matrix multiplication."""
        return np.matmul(a, b)

    def outer(self, a: np.ndarray, b: np.ndarray) -> np.ndarray:
        """Outer product."""
        return np.outer(a, b)

    def sin(self, arr: np.ndarray) -> np.ndarray:
        """Sine."""
        return np.sin(arr)

    def cos(self, arr: np.ndarray) -> np.ndarray:
        """Cosine."""
        return np.cos(arr)

    # === Differentiation (Numerical) ===

    def jacobian(self, fn: Callable, eps: float = 1e-7) -> Callable:
        """Return function that computes a forward-difference Jacobian.

        Parameters
        ----------
        fn : callable
            Vector-valued function.
        eps : float
            Finite difference step size.

        Returns
        -------
        callable
            Function returning the (m, n) Jacobian matrix.
        """
        def jac_fn(x):
            x = np.asarray(x, dtype=self._dtype)
            f0 = np.atleast_1d(fn(x)).flatten()
            m = f0.size
            n = x.size
            jac = np.zeros((m, n), dtype=self._dtype)
            for i in range(n):
                x_plus = x.copy()
                x_plus.flat[i] += eps
                f_plus = np.atleast_1d(fn(x_plus)).flatten()
                jac[:, i] = (f_plus - f0) / eps
            return jac
        return jac_fn
