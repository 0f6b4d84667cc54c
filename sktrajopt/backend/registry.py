"""Backend registry for managing and switching between backends.

This module provides a registry for differentiable backends. The backend
name doubles as the scalar type of an evaluation: ``'numpy'`` evaluates
with plain float64 arrays, ``'jax'`` with forward-mode differentiable
tracers.
"""

from contextlib import contextmanager
from typing import Dict
from typing import List
from typing import Optional
from typing import Type


class BackendRegistry:
    """Registry for managing differentiable backends.

    Examples
    --------
    >>> from sktrajopt.backend import get_backend, set_default_backend
    >>> backend = get_backend('numpy')
    >>> set_default_backend('jax')
    >>> backend = get_backend()  # Now returns JAX backend
    """

    _backends: Dict[str, Type] = {}
    _default: Optional[str] = None
    _instance_cache: Dict[str, object] = {}

    @classmethod
    def register(cls, name: str, backend_class: Type) -> None:
        """Register a backend implementation.

        Parameters
        ----------
        name : str
            Name of the backend (e.g., 'numpy', 'jax').
        backend_class : type
            Backend class.
        """
        cls._backends[name] = backend_class

    @classmethod
    def get(cls, name: Optional[str] = None, **kwargs) -> object:
        """Get a backend instance.

        Parameters
        ----------
        name : str, optional
            Name of the backend. If None, returns the default backend.
        **kwargs
            Additional arguments passed to the backend constructor.

        Returns
        -------
        backend
            Backend instance.

        Raises
        ------
        ValueError
            If the backend is not found.
        """
        if name is None:
            name = cls._default or 'jax'

        if name not in cls._backends:
            available = list(cls._backends.keys())
            raise ValueError(
                f"Unknown backend: '{name}'. "
                f"Available backends: {available}"
            )

        cache_key = name
        if not kwargs and cache_key in cls._instance_cache:
            return cls._instance_cache[cache_key]

        instance = cls._backends[name](**kwargs)
        if not kwargs:
            cls._instance_cache[cache_key] = instance
        return instance

    @classmethod
    def set_default(cls, name: str) -> None:
        """Set the default backend.

        Raises
        ------
        ValueError
            If the backend is not registered.
        """
        if name not in cls._backends:
            available = list(cls._backends.keys())
            raise ValueError(
                f"Unknown backend: '{name}'. "
                f"Available backends: {available}"
            )
        cls._default = name

    @classmethod
    def available(cls) -> List[str]:
        """Get list of registered backends."""
        return list(cls._backends.keys())


def get_backend(name=None, **kwargs):
    """Get a backend instance.

    Parameters
    ----------
    name : str or backend, optional
        Name of the backend ('numpy', 'jax'). A backend instance is
        returned unchanged. If None, returns the default backend.
    **kwargs
        Additional arguments passed to the backend constructor.

    Returns
    -------
    backend
        Backend instance.

    Examples
    --------
    >>> from sktrajopt.backend import get_backend
    >>> backend = get_backend('numpy')
    >>> x = backend.array([1.0, 2.0, 3.0])
    >>> backend.matmul(x, x)
    14.0
    """
    if name is not None and not isinstance(name, str):
        return name
    return BackendRegistry.get(name, **kwargs)


def set_default_backend(name: str) -> None:
    """Set the default backend."""
    BackendRegistry.set_default(name)


def list_backends() -> List[str]:
    """Get list of registered backends.

    Examples
    --------
    >>> from sktrajopt.backend import list_backends
    >>> list_backends()
    ['numpy', 'jax']
    """
    return BackendRegistry.available()


@contextmanager
def use_backend(name: str, **kwargs):
    """Context manager for temporarily using a different backend.

    Examples
    --------
    >>> from sktrajopt.backend import use_backend
    >>> with use_backend('numpy') as backend:
    ...     x = backend.array([1.0, 2.0, 3.0])
    ...     print(backend.matmul(x, x))
    14.0
    """
    old_default = BackendRegistry._default
    try:
        BackendRegistry.set_default(name)
        yield BackendRegistry.get(name, **kwargs)
    finally:
        BackendRegistry._default = old_default
