"""Reference trajectory set.

- :class:`TrajectoryBuilder` -- estimable orbital and dynamical parameters of one body
- :class:`ReferenceTrajectory` -- forward-only propagation with variational equations
- :func:`propagate_all` -- barrier-synchronized propagation of several trajectories
"""

from astrofilter.propagation.builder import TrajectoryBuilder
from astrofilter.propagation.trajectory import (
    ReferenceTrajectory,
    TrajectoryState,
    make_variational_propagator,
    propagate_all,
)

__all__ = [
    "TrajectoryBuilder",
    "ReferenceTrajectory",
    "TrajectoryState",
    "make_variational_propagator",
    "propagate_all",
]
