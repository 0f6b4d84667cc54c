"""Multiple shooting trajectory optimization for multibody systems.

Architecture:
- Generalized constraint force evaluators: pluggable ``f(q, lambda)``
- DirectTranscriptionConstraint: backward Euler residual of one interval
- RigidBodyTreeMultipleShooting: knots, intervals and their constraints

Usage:
    from sktrajopt.models import FiveBarLinkage
    from sktrajopt.trajectory_optimization import (
        RigidBodyTreeMultipleShooting,
    )

    traj_opt = RigidBodyTreeMultipleShooting(FiveBarLinkage(), 5, 0.01, 0.1)
    traj_opt.add_running_cost(lambda x, u: u @ u)
    traj_opt.compile()
    result = traj_opt.solve()
"""

from sktrajopt.trajectory_optimization.direct_transcription import \
    DirectTranscriptionConstraint
from sktrajopt.trajectory_optimization.generalized_constraint_force import \
    GeneralizedConstraintForceEvaluator
from sktrajopt.trajectory_optimization.generalized_constraint_force import \
    JointLimitConstraintForceEvaluator
from sktrajopt.trajectory_optimization.generalized_constraint_force import \
    PositionConstraintForceEvaluator
from sktrajopt.trajectory_optimization.multiple_shooting import \
    RigidBodyTreeMultipleShooting
from sktrajopt.trajectory_optimization.trajectory import \
    finite_difference_velocities
from sktrajopt.trajectory_optimization.trajectory import interpolate_trajectory


__all__ = [
    'DirectTranscriptionConstraint',
    'GeneralizedConstraintForceEvaluator',
    'JointLimitConstraintForceEvaluator',
    'PositionConstraintForceEvaluator',
    'RigidBodyTreeMultipleShooting',
    'finite_difference_velocities',
    'interpolate_trajectory',
]
