"""Generalized constraint forces added to the transcribed dynamics.

Each evaluator maps a configuration ``q`` and its own slice of the
interval's multiplier vector to a generalized force in velocity
coordinates. The transcription residual sums the outputs of all
evaluators registered for an interval.
"""

from abc import ABC
from abc import abstractmethod

import numpy as np

from sktrajopt.backend import get_backend
from sktrajopt.errors import check_size
from sktrajopt.errors import ConfigurationError
from sktrajopt.kinematics import KinematicsCacheHelper


class GeneralizedConstraintForceEvaluator(ABC):
    """Abstract generalized constraint force ``f(q, lambda)``.

    Parameters
    ----------
    model : MultibodyModel
        Model the force acts on.
    num_multipliers : int
        Length of the multiplier vector consumed by this evaluator.

    Notes
    -----
    Subclasses implement :meth:`_evaluate` with backend operations only,
    so that the force is differentiable in both ``q`` and ``lambda``.
    """

    def __init__(self, model, num_multipliers):
        if num_multipliers < 0:
            raise ConfigurationError(
                f"num_multipliers must be non-negative, got {num_multipliers}")
        self.model = model
        self._num_multipliers = int(num_multipliers)

    @property
    def num_multipliers(self):
        return self._num_multipliers

    @property
    def num_inputs(self):
        return self.model.num_positions + self._num_multipliers

    @property
    def num_outputs(self):
        return self.model.num_velocities

    def evaluate_generalized_force(self, q, lambda_local, backend=None):
        """Generalized force at ``q`` for multipliers ``lambda_local``.

        Parameters
        ----------
        q : array, shape (nq,)
            Generalized positions.
        lambda_local : array, shape (num_multipliers,)
            This evaluator's multipliers.
        backend : str or backend, optional
            Backend (scalar type) of the evaluation.

        Returns
        -------
        force : array, shape (nv,)
        """
        backend = get_backend(backend)
        check_size('q', q, self.model.num_positions)
        check_size('lambda', lambda_local, self._num_multipliers)
        return self._evaluate(
            backend.array(q), backend.array(lambda_local), backend)

    def eval(self, x, backend=None):
        """Evaluate on the packed input ``[q; lambda]``."""
        check_size('x', x, self.num_inputs)
        nq = self.model.num_positions
        return self.evaluate_generalized_force(x[:nq], x[nq:], backend)

    @abstractmethod
    def _evaluate(self, q, lambda_local, backend):
        pass


class PositionConstraintForceEvaluator(GeneralizedConstraintForceEvaluator):
    """Force ``J(q)^T lambda`` of the model's holonomic position constraints.

    Parameters
    ----------
    model : MultibodyModel
        Model providing ``position_constraint_jacobian``.
    kinematics_helper : KinematicsCacheHelper, optional
        Position-only kinematics cache. A private one is created when
        omitted.
    """

    def __init__(self, model, kinematics_helper=None):
        super().__init__(model, model.num_position_constraints)
        if kinematics_helper is None:
            kinematics_helper = KinematicsCacheHelper(model)
        self.kinematics_helper = kinematics_helper

    def _evaluate(self, q, lambda_local, backend):
        kinsol = self.kinematics_helper.update_kinematics(q, backend)
        J = self.model.position_constraint_jacobian(kinsol)
        return backend.matmul(J.T, lambda_local)


class JointLimitConstraintForceEvaluator(GeneralizedConstraintForceEvaluator):
    """Joint limit forces on a run of consecutive joints.

    The multipliers are laid out as ``[lambda_lower; lambda_upper]``,
    ``num_joints`` entries each. The force on joint ``joint_index + k`` is
    ``lambda_lower[k] - lambda_upper[k]``: a lower limit pushes the joint
    up and an upper limit pushes it down.

    Parameters
    ----------
    model : MultibodyModel
        Model whose joints are limited. Joint ``i`` is position ``i`` and
        velocity ``i``.
    joint_index : int
        First limited joint.
    num_joints : int
        Number of consecutive limited joints.
    """

    def __init__(self, model, joint_index, num_joints):
        if num_joints < 1:
            raise ConfigurationError(
                f"num_joints must be positive, got {num_joints}")
        if joint_index < 0 \
                or joint_index + num_joints > model.num_velocities:
            raise IndexError(
                f"joints [{joint_index}, {joint_index + num_joints}) out of "
                f"range for {model.num_velocities} velocities")
        super().__init__(model, 2 * num_joints)
        self.joint_index = joint_index
        self.num_joints = num_joints
        selection = np.zeros((model.num_velocities, num_joints))
        selection[joint_index + np.arange(num_joints),
                  np.arange(num_joints)] = 1.0
        self._selection = selection

    def _evaluate(self, q, lambda_local, backend):
        n = self.num_joints
        return backend.matmul(backend.array(self._selection),
                              lambda_local[:n] - lambda_local[n:])


__all__ = [
    'GeneralizedConstraintForceEvaluator',
    'JointLimitConstraintForceEvaluator',
    'PositionConstraintForceEvaluator',
]
