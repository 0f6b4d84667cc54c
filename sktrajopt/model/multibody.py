"""Dynamics-engine interface consumed by the transcription core."""

from abc import ABC
from abc import abstractmethod

import numpy as np


class KinematicsSolution(object):
    """Kinematic quantities of a model at one configuration (and velocity).

    Instances are produced by :meth:`MultibodyModel.compute_kinematics` and
    are only meaningful for the model and backend that created them.

    Attributes
    ----------
    q : array
        Generalized positions.
    v : array or None
        Generalized velocities, None for position-only kinematics.
    backend : backend
        Backend the quantities were computed with.
    data : dict
        Engine specific cached quantities.
    """

    def __init__(self, q, v, backend, data=None):
        self.q = q
        self.v = v
        self.backend = backend
        self.data = data or {}

    @property
    def has_velocity(self):
        return self.v is not None


class MultibodyModel(ABC):
    """Abstract rigid multibody dynamics engine.

    The equations of motion are

    .. math::
        M(q) \\dot{v} + c(q, v) = B u + J(q)^T \\lambda

    Subclasses supply kinematics, the mass matrix, the bias term ``c``
    (Coriolis, gravity and other velocity dependent terms), the
    holonomic position constraints and their Jacobian. All methods taking
    a :class:`KinematicsSolution` must work with the backend it was built
    with, so that the same code evaluates plain values and forward-mode
    derivatives.
    """

    @property
    @abstractmethod
    def num_positions(self):
        """Number of generalized positions ``nq``."""

    @property
    @abstractmethod
    def num_velocities(self):
        """Number of generalized velocities ``nv``."""

    @property
    @abstractmethod
    def num_actuators(self):
        """Number of actuators ``nu``."""

    @property
    @abstractmethod
    def num_position_constraints(self):
        """Number of scalar holonomic position constraints ``nc``."""

    @property
    @abstractmethod
    def actuator_selection_matrix(self):
        """Constant ``B`` matrix of shape (nv, nu)."""

    @property
    def joint_limits_lower(self):
        return np.full(self.num_positions, -np.inf)

    @property
    def joint_limits_upper(self):
        return np.full(self.num_positions, np.inf)

    @abstractmethod
    def compute_kinematics(self, q, v=None, backend=None):
        """Compute kinematics at ``q`` (and ``v``).

        Returns
        -------
        KinematicsSolution
        """

    @abstractmethod
    def mass_matrix(self, kinsol):
        """Mass matrix of shape (nv, nv)."""

    @abstractmethod
    def dynamics_bias_term(self, kinsol, external_wrenches=None):
        """Bias term ``c(q, v)`` of shape (nv,).

        ``kinsol`` must carry velocities.
        """

    @abstractmethod
    def position_constraints(self, kinsol):
        """Position constraint residual ``phi(q)`` of shape (nc,)."""

    @abstractmethod
    def position_constraint_jacobian(self, kinsol):
        """Position constraint Jacobian of shape (nc, nv)."""
