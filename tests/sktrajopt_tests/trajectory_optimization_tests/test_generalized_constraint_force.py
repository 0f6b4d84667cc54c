import os
import unittest

import numpy as np
from numpy import testing


os.environ.setdefault('JAX_PLATFORMS', 'cpu')

from sktrajopt.backend import get_backend  # noqa: E402
from sktrajopt.errors import ConfigurationError  # noqa: E402
from sktrajopt.errors import DimensionMismatchError  # noqa: E402
from sktrajopt.kinematics import KinematicsCacheHelper  # noqa: E402
from sktrajopt.models import FiveBarLinkage  # noqa: E402
from sktrajopt.trajectory_optimization import GeneralizedConstraintForceEvaluator  # noqa: E402
from sktrajopt.trajectory_optimization import JointLimitConstraintForceEvaluator  # noqa: E402
from sktrajopt.trajectory_optimization import PositionConstraintForceEvaluator  # noqa: E402


class _ConstantForce(GeneralizedConstraintForceEvaluator):

    def _evaluate(self, q, lambda_local, backend):
        return backend.zeros(self.model.num_velocities)


class TestPositionConstraintForceEvaluator(unittest.TestCase):

    def setUp(self):
        self.model = FiveBarLinkage()
        self.q = self.model.reset_pose() + np.array([0.1, -0.1, 0.2, 0.0])
        self.lam = np.array([0.7, -1.3])

    def test_force(self):
        model = self.model
        evaluator = PositionConstraintForceEvaluator(model)
        self.assertEqual(evaluator.num_multipliers, 2)
        self.assertEqual(evaluator.num_inputs, 6)
        self.assertEqual(evaluator.num_outputs, 4)
        kinsol = model.compute_kinematics(self.q, backend='numpy')
        J = model.position_constraint_jacobian(kinsol)
        testing.assert_allclose(
            evaluator.evaluate_generalized_force(self.q, self.lam, 'numpy'),
            J.T.dot(self.lam), atol=1e-12)

    def test_packed_eval(self):
        evaluator = PositionConstraintForceEvaluator(self.model)
        x = np.concatenate([self.q, self.lam])
        testing.assert_allclose(
            evaluator.eval(x, 'numpy'),
            evaluator.evaluate_generalized_force(self.q, self.lam, 'numpy'))

    def test_jax_matches_numpy(self):
        evaluator = PositionConstraintForceEvaluator(self.model)
        testing.assert_allclose(
            np.asarray(evaluator.evaluate_generalized_force(
                self.q, self.lam, 'jax')),
            evaluator.evaluate_generalized_force(self.q, self.lam, 'numpy'),
            atol=1e-12)

    def test_derivative_in_q_and_lambda(self):
        evaluator = PositionConstraintForceEvaluator(self.model)
        x = np.concatenate([self.q, self.lam])
        jax_backend = get_backend('jax')
        numpy_backend = get_backend('numpy')
        jac = np.asarray(jax_backend.jacobian(
            lambda z: evaluator.eval(z, jax_backend))(x))
        jac_fd = numpy_backend.jacobian(
            lambda z: evaluator.eval(z, numpy_backend))(x)
        self.assertEqual(jac.shape, (4, 6))
        testing.assert_allclose(jac, jac_fd, atol=1e-5)

    def test_shared_helper(self):
        helper = KinematicsCacheHelper(self.model)
        evaluator = PositionConstraintForceEvaluator(self.model, helper)
        self.assertIs(evaluator.kinematics_helper, helper)
        evaluator.evaluate_generalized_force(self.q, self.lam, 'numpy')
        evaluator.evaluate_generalized_force(self.q, -self.lam, 'numpy')
        self.assertEqual(helper.num_updates, 1)

    def test_wrong_size(self):
        evaluator = PositionConstraintForceEvaluator(self.model)
        with self.assertRaises(DimensionMismatchError):
            evaluator.evaluate_generalized_force(self.q, np.zeros(3))
        with self.assertRaises(DimensionMismatchError):
            evaluator.evaluate_generalized_force(np.zeros(3), self.lam)
        with self.assertRaises(DimensionMismatchError):
            evaluator.eval(np.zeros(5))


class TestJointLimitConstraintForceEvaluator(unittest.TestCase):

    def setUp(self):
        self.model = FiveBarLinkage()

    def test_single_joint(self):
        evaluator = JointLimitConstraintForceEvaluator(self.model, 1, 1)
        self.assertEqual(evaluator.num_multipliers, 2)
        force = evaluator.evaluate_generalized_force(
            np.zeros(4), np.array([2.0, 0.5]), 'numpy')
        testing.assert_allclose(force, [0.0, 1.5, 0.0, 0.0])

    def test_consecutive_joints(self):
        evaluator = JointLimitConstraintForceEvaluator(self.model, 2, 2)
        self.assertEqual(evaluator.num_multipliers, 4)
        force = evaluator.evaluate_generalized_force(
            np.zeros(4), np.array([1.0, 2.0, 3.0, 0.5]), 'jax')
        testing.assert_allclose(np.asarray(force), [0.0, 0.0, -2.0, 1.5])

    def test_out_of_range(self):
        with self.assertRaises(IndexError):
            JointLimitConstraintForceEvaluator(self.model, 3, 2)
        with self.assertRaises(IndexError):
            JointLimitConstraintForceEvaluator(self.model, -1, 1)
        with self.assertRaises(ConfigurationError):
            JointLimitConstraintForceEvaluator(self.model, 0, 0)


class TestGeneralizedConstraintForceEvaluator(unittest.TestCase):

    def test_negative_multipliers(self):
        with self.assertRaises(ConfigurationError):
            _ConstantForce(FiveBarLinkage(), -1)

    def test_zero_multipliers(self):
        evaluator = _ConstantForce(FiveBarLinkage(), 0)
        testing.assert_equal(
            evaluator.evaluate_generalized_force(np.zeros(4), np.zeros(0),
                                                 'numpy'),
            np.zeros(4))


if __name__ == '__main__':
    unittest.main()
