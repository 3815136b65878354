"""Force models for the reference trajectories.

- **Gravity**: point-mass gravity with estimable gravitational parameter, J2
- **Drag**: exponential atmosphere and co-rotating drag with estimable Cd
- **Factory**: :func:`create_orbit_dynamics` composing the above into
  ``dynamics(t, state, params)``
"""

from .config import (
    CENTRAL_ATTRACTION_COEFFICIENT,
    DRAG_COEFFICIENT,
    ExponentialAtmosphere,
    ForceModelConfig,
    SpacecraftParams,
)
from .drag import accel_drag, density_exponential
from .factory import create_orbit_dynamics
from .gravity import accel_j2, accel_point_mass

__all__ = [
    "CENTRAL_ATTRACTION_COEFFICIENT",
    "DRAG_COEFFICIENT",
    "ExponentialAtmosphere",
    "ForceModelConfig",
    "SpacecraftParams",
    "accel_drag",
    "density_exponential",
    "create_orbit_dynamics",
    "accel_j2",
    "accel_point_mass",
]
