#!/usr/bin/env python

import argparse
import logging
import time

import numpy as np

from sktrajopt.models import FiveBarLinkage
from sktrajopt.solvers import create_solver
from sktrajopt.trajectory_optimization import finite_difference_velocities
from sktrajopt.trajectory_optimization import interpolate_trajectory
from sktrajopt.trajectory_optimization import RigidBodyTreeMultipleShooting


parser = argparse.ArgumentParser(
    formatter_class=argparse.ArgumentDefaultsHelpFormatter,
)
parser.add_argument(
    '-n', type=int, default=5,
    help='number of time samples.')
parser.add_argument(
    '--joint-limit', action='store_true',
    help='Limit the left distal joint to [-pi/2, pi/2] at every knot.')
parser.add_argument(
    '--closure', action='store_true',
    help='Enforce the loop closure at every knot.')
parser.add_argument(
    '--backend', type=str, choices=['jax', 'numpy'], default='jax',
    help='Differentiation backend.')
parser.add_argument(
    '--method', type=str, choices=['SLSQP', 'trust-constr'],
    default='SLSQP', help='SciPy method.')
parser.add_argument(
    '--verbose', action='store_true',
    help='Print solver progress and debug logs.')
parser.add_argument(
    '--no-interactive',
    action='store_true',
    help="Run in non-interactive mode (do not wait for user input)"
)
args = parser.parse_args()

logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

model = FiveBarLinkage()
solver = create_solver('scipy', method=args.method, verbose=args.verbose)
traj_opt = RigidBodyTreeMultipleShooting(
    model, args.n, 0.01, 0.1, backend=args.backend, solver=solver)

if args.joint_limit:
    for interval in range(args.n - 1):
        traj_opt.add_joint_limit_implicit_constraint(
            interval, 1, 1, -np.pi / 2, np.pi / 2)

q = traj_opt.generalized_positions()
traj_opt.add_bounding_box_constraint(0.0, 0.0, q[0, 0])
traj_opt.add_bounding_box_constraint(np.pi / 2, np.pi / 2, q[0, -1])
traj_opt.add_bounding_box_constraint(
    0.0, 0.0, traj_opt.generalized_velocities()[:, -1])
traj_opt.add_running_cost(lambda x, u: u @ u)
if args.closure:
    traj_opt.add_position_constraints()

start = model.reset_pose()
start[0] = 0.0
positions = interpolate_trajectory(start, model.reset_pose(), args.n)
traj_opt.set_initial_trajectory(
    positions=positions,
    velocities=finite_difference_velocities(positions, 0.055))

traj_opt.compile()
tm = time.time()
result = traj_opt.solve()
print('status: {} ({:.2f} sec)'.format(result.name, time.time() - tm))

times = traj_opt.get_sample_times()
states = traj_opt.get_state_samples()
inputs = traj_opt.get_input_samples()
for k, t in enumerate(times):
    print('t={:.3f} q={} u={}'.format(
        t, np.array2string(states[:model.num_positions, k], precision=3),
        np.array2string(inputs[:, k], precision=3)))

if not args.no_interactive:
    print('==> Press [q] to close window')
    while True:
        if input() == 'q':
            break
