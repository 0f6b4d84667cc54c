"""Trajectory utilities for trajectory optimization."""

import numpy as np


def interpolate_trajectory(start, end, num_time_samples):
    """Create linear interpolation between start and end configurations.

    Parameters
    ----------
    start : array-like
        Starting values (n,).
    end : array-like
        Ending values (n,).
    num_time_samples : int
        Number of knots including start and end.

    Returns
    -------
    numpy.ndarray
        Interpolated trajectory (n, num_time_samples), one column per
        knot, matching the layout of the position and velocity handles.
    """
    start = np.atleast_1d(np.asarray(start, dtype=np.float64))
    end = np.atleast_1d(np.asarray(end, dtype=np.float64))
    t = np.linspace(0, 1, num_time_samples)[np.newaxis, :]
    return start[:, np.newaxis] + t * (end - start)[:, np.newaxis]


def finite_difference_velocities(positions, timesteps):
    """Backward difference velocities consistent with the transcription.

    Parameters
    ----------
    positions : array-like
        Positions (n, N).
    timesteps : float or array-like
        Timesteps (N - 1,) or one shared timestep.

    Returns
    -------
    numpy.ndarray
        Velocities (n, N) with ``v_k = (q_k - q_{k-1}) / h_{k-1}`` and a
        zero first column.
    """
    positions = np.asarray(positions, dtype=np.float64)
    n, N = positions.shape
    timesteps = np.broadcast_to(
        np.asarray(timesteps, dtype=np.float64), (N - 1,))
    velocities = np.zeros((n, N))
    velocities[:, 1:] = np.diff(positions, axis=1) / timesteps
    return velocities
