import os
import unittest

import numpy as np
from numpy import testing


os.environ.setdefault('JAX_PLATFORMS', 'cpu')

from sktrajopt.errors import DimensionMismatchError  # noqa: E402
from sktrajopt.errors import SequencingError  # noqa: E402
from sktrajopt.solvers import create_solver  # noqa: E402
from sktrajopt.solvers import MathematicalProgram  # noqa: E402
from sktrajopt.solvers import SolutionResult  # noqa: E402
from sktrajopt.solvers.scipy_solver import ScipySolver  # noqa: E402


def _quadratic(z):
    return (z[0] - 1.0) ** 2 + (z[1] - 2.0) ** 2


class TestMathematicalProgram(unittest.TestCase):

    def test_variables(self):
        prog = MathematicalProgram()
        x = prog.new_continuous_variables(3, name='x')
        Q = prog.new_continuous_variables(2, 4, name='Q')
        self.assertEqual(prog.num_vars, 11)
        testing.assert_equal(x, [0, 1, 2])
        self.assertEqual(Q.shape, (2, 4))
        # columns are contiguous
        testing.assert_equal(Q[:, 0], [3, 4])
        testing.assert_equal(Q[:, 1], [5, 6])
        self.assertEqual(prog.variable_names[3], 'Q(0,0)')
        self.assertEqual(prog.variable_names[5], 'Q(0,1)')
        testing.assert_equal(prog.initial_guess, np.zeros(11))

    def test_bounding_box(self):
        prog = MathematicalProgram()
        x = prog.new_continuous_variables(2, 2)
        prog.add_bounding_box_constraint(0.0, 1.0, x)
        prog.add_bounding_box_constraint([-1.0, 0.5], [0.5, 2.0], x[:, 0])
        lower, upper = prog.variable_bounds()
        testing.assert_equal(lower, [0.0, 0.5, 0.0, 0.0])
        testing.assert_equal(upper, [0.5, 1.0, 1.0, 1.0])

    def test_bounding_box_size_mismatch(self):
        prog = MathematicalProgram()
        x = prog.new_continuous_variables(3)
        with self.assertRaises(DimensionMismatchError):
            prog.add_bounding_box_constraint([0.0, 1.0], 2.0, x)

    def test_out_of_range_handle(self):
        prog = MathematicalProgram()
        prog.new_continuous_variables(2)
        with self.assertRaises(IndexError):
            prog.add_bounding_box_constraint(0.0, 1.0, np.array([2]))

    def test_constraint_input_size(self):
        prog = MathematicalProgram()
        x = prog.new_continuous_variables(3)

        class Evaluator(object):
            num_inputs = 2
            num_outputs = 1

            def eval(self, z, backend=None):
                return z[:1]

        with self.assertRaises(DimensionMismatchError):
            prog.add_constraint(Evaluator(), 0.0, 0.0, x)

    def test_constraint_rows(self):
        prog = MathematicalProgram()
        x = prog.new_continuous_variables(3)
        scalar = prog.add_constraint(lambda z: z[1:] - z[0], 0.0, 0.0, x)
        self.assertEqual(scalar.num_outputs, 2)
        testing.assert_equal(scalar.lower_bound, [0.0, 0.0])
        testing.assert_equal(scalar.upper_bound, [0.0, 0.0])
        array = prog.add_constraint(
            lambda z: z[1:] - z[0], [1.0, 2.0], [1.0, np.inf], x)
        self.assertEqual(array.num_outputs, 2)
        testing.assert_equal(array.upper_bound, [1.0, np.inf])
        with self.assertRaises(DimensionMismatchError):
            prog.add_constraint(
                lambda z: z[1:] - z[0], np.zeros(3), np.zeros(3), x)

    def test_initial_guess(self):
        prog = MathematicalProgram()
        x = prog.new_continuous_variables(2, 2)
        prog.set_initial_guess(x[:, 1], [3.0, 4.0])
        testing.assert_equal(prog.initial_guess, [0.0, 0.0, 3.0, 4.0])

    def test_get_solution_before_solve(self):
        prog = MathematicalProgram()
        x = prog.new_continuous_variables(2)
        with self.assertRaises(SequencingError):
            prog.get_solution(x)


class TestScipySolver(unittest.TestCase):

    def _equality_program(self, backend):
        prog = MathematicalProgram(backend=backend)
        x = prog.new_continuous_variables(2, name='x')
        prog.add_cost(_quadratic, x)
        prog.add_constraint(lambda z: z[:1] + z[1:], 1.0, 1.0, x)
        return prog, x

    def test_equality_constrained(self):
        for backend in ['numpy', 'jax']:
            prog, x = self._equality_program(backend)
            result = prog.solve()
            self.assertEqual(result, SolutionResult.SOLUTION_FOUND)
            testing.assert_allclose(prog.get_solution(x), [0.0, 1.0],
                                    atol=1e-5)
            self.assertTrue(prog.solver_result.success)

    def test_trust_constr(self):
        prog, x = self._equality_program('jax')
        solver = ScipySolver(method='trust-constr', max_iterations=1000,
                             constraint_tolerance=1e-4)
        result = prog.solve(solver)
        self.assertEqual(result, SolutionResult.SOLUTION_FOUND)
        testing.assert_allclose(prog.get_solution(x), [0.0, 1.0], atol=1e-3)

    def test_inequality(self):
        prog = MathematicalProgram()
        x = prog.new_continuous_variables(1)
        prog.add_cost(lambda z: z[0] ** 2, x)
        prog.add_constraint(lambda z: z, 1.0, np.inf, x)
        self.assertEqual(prog.solve(), SolutionResult.SOLUTION_FOUND)
        testing.assert_allclose(prog.get_solution(x), [1.0], atol=1e-6)

    def test_bounding_box_active(self):
        prog = MathematicalProgram()
        x = prog.new_continuous_variables(1)
        prog.add_cost(lambda z: (z[0] - 3.0) ** 2, x)
        prog.add_bounding_box_constraint(0.0, 2.0, x)
        self.assertEqual(prog.solve('scipy'), SolutionResult.SOLUTION_FOUND)
        testing.assert_allclose(prog.get_solution(x), [2.0], atol=1e-6)

    def test_multi_row_constraint(self):
        for backend in ['numpy', 'jax']:
            # all entries equal
            prog = MathematicalProgram(backend=backend)
            x = prog.new_continuous_variables(3)
            prog.add_cost(
                lambda z: ((z - np.array([1.0, 2.0, 3.0])) ** 2).sum(), x)
            binding = prog.add_constraint(
                lambda z: z[1:] - z[0], 0.0, 0.0, x)
            self.assertEqual(binding.num_outputs, 2)
            self.assertEqual(prog.solve(), SolutionResult.SOLUTION_FOUND)
            testing.assert_allclose(prog.get_solution(x), [2.0, 2.0, 2.0],
                                    atol=1e-5)

            # entries spaced by 1 and 2 from the first
            prog = MathematicalProgram(backend=backend)
            x = prog.new_continuous_variables(3)
            prog.add_cost(lambda z: (z ** 2).sum(), x)
            binding = prog.add_constraint(
                lambda z: z[1:] - z[0], np.array([1.0, 2.0]),
                np.array([1.0, 2.0]), x)
            self.assertEqual(binding.num_outputs, 2)
            self.assertEqual(prog.solve(), SolutionResult.SOLUTION_FOUND)
            testing.assert_allclose(prog.get_solution(x), [-1.0, 0.0, 1.0],
                                    atol=1e-5)

    def test_repeated_variables(self):
        prog = MathematicalProgram()
        x = prog.new_continuous_variables(1)
        prog.add_cost(lambda z: z[0] ** 2, x)
        # x + x == 2
        prog.add_constraint(lambda z: z[:1] + z[1:], 2.0, 2.0,
                            np.array([x[0], x[0]]))
        self.assertEqual(prog.solve(), SolutionResult.SOLUTION_FOUND)
        testing.assert_allclose(prog.get_solution(x), [1.0], atol=1e-6)

    def test_inconsistent_bounds(self):
        prog = MathematicalProgram()
        x = prog.new_continuous_variables(1)
        prog.add_bounding_box_constraint(1.0, 2.0, x)
        prog.add_bounding_box_constraint(3.0, 4.0, x)
        result = prog.solve()
        self.assertEqual(result, SolutionResult.INFEASIBLE_CONSTRAINTS)
        self.assertFalse(prog.solver_result.success)

    def test_solution_shape(self):
        prog = MathematicalProgram()
        X = prog.new_continuous_variables(2, 3)
        prog.add_cost(lambda z: ((z - 1.0) ** 2).sum(), X)
        prog.solve()
        testing.assert_allclose(prog.get_solution(X), np.ones((2, 3)),
                                atol=1e-5)

    def test_initial_guess_size(self):
        prog = MathematicalProgram()
        prog.new_continuous_variables(2)
        with self.assertRaises(ValueError):
            prog.solve(initial_guess=np.zeros(3))

    def test_create_solver(self):
        solver = create_solver('scipy', max_iterations=10)
        self.assertIsInstance(solver, ScipySolver)
        self.assertEqual(solver.max_iterations, 10)
        with self.assertRaises(ValueError):
            create_solver('unknown')
        with self.assertRaises(ValueError):
            ScipySolver(method='BFGS')


if __name__ == '__main__':
    unittest.main()
