"""Backend abstraction for differentiable array operations.

Every residual in sktrajopt is written once against this interface and
evaluated either with plain float64 values (``'numpy'``) or with
forward-mode differentiable values (``'jax'``).

Example
-------
>>> from sktrajopt.backend import get_backend
>>> backend = get_backend('jax')
>>> x = backend.array([1.0, 2.0, 3.0])
>>> jac = backend.jacobian(lambda x: x * x)
>>> jac(x)  # diag([2.0, 4.0, 6.0])
"""

from sktrajopt.backend.jax_backend import JaxBackend
from sktrajopt.backend.numpy_backend import NumpyBackend
from sktrajopt.backend.registry import BackendRegistry
from sktrajopt.backend.registry import get_backend
from sktrajopt.backend.registry import list_backends
from sktrajopt.backend.registry import set_default_backend
from sktrajopt.backend.registry import use_backend


BackendRegistry.register('numpy', NumpyBackend)
BackendRegistry.register('jax', JaxBackend)


__all__ = [
    'BackendRegistry',
    'JaxBackend',
    'NumpyBackend',
    'get_backend',
    'set_default_backend',
    'list_backends',
    'use_backend',
]
