"""Configuration dataclasses for the reference-trajectory force model.

Provides :class:`SpacecraftParams` for physical spacecraft properties,
:class:`ExponentialAtmosphere` for the drag density model and
:class:`ForceModelConfig` for selecting which accelerations are included.
Configuration is static: Python ``if`` branches on boolean toggles are
resolved at JAX trace time.

Every force model declares the *dynamical parameters* it depends on. They
are exposed by the trajectory builder as :class:`~astrofilter.parameters.Parameter`
objects (unselected by default) and may be estimated jointly with the orbit.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from astrofilter.constants import GM_EARTH

CENTRAL_ATTRACTION_COEFFICIENT = "central attraction coefficient"
DRAG_COEFFICIENT = "drag coefficient"


@dataclass(frozen=True)
class SpacecraftParams:
    """Physical properties of the spacecraft.

    Args:
        mass: Spacecraft mass [kg].
        drag_area: Wind-facing cross-sectional area [m^2].
        cd: A priori coefficient of drag [dimensionless].
    """

    mass: float = 1000.0
    drag_area: float = 10.0
    cd: float = 2.2

    def __post_init__(self) -> None:
        if self.mass <= 0.0:
            raise ValueError(f"mass must be strictly positive, got {self.mass}")
        if self.drag_area < 0.0:
            raise ValueError(f"drag_area must be non-negative, got {self.drag_area}")


@dataclass(frozen=True)
class ExponentialAtmosphere:
    """Exponential atmospheric density ``rho0 * exp(-(h - h0) / H)``.

    Args:
        rho0: Density at the reference altitude [kg/m^3].
        h0: Reference altitude above the equatorial radius [m].
        scale_height: Density scale height [m].
    """

    rho0: float = 3.614e-13
    h0: float = 700e3
    scale_height: float = 88.667e3

    def __post_init__(self) -> None:
        if self.scale_height <= 0.0:
            raise ValueError(
                f"scale_height must be strictly positive, got {self.scale_height}"
            )


@dataclass(frozen=True)
class ForceModelConfig:
    """Configuration for the reference-trajectory dynamics.

    Args:
        gm: A priori Earth gravitational parameter [m^3/s^2].
        gm_scale: Normalization scale of the central attraction coefficient.
        j2: Include the J2 zonal harmonic.
        drag: Include atmospheric drag (exponential atmosphere).
        cd_scale: Normalization scale of the drag coefficient.
        atmosphere: Density model parameters.
        spacecraft: Spacecraft physical properties.

    Examples:
        ```python
        from astrofilter.orbit_dynamics import ForceModelConfig
        config = ForceModelConfig(j2=True, drag=True)
        config.parameter_names()
        ```
    """

    gm: float = GM_EARTH
    gm_scale: float = 1.0e6
    j2: bool = False
    drag: bool = False
    cd_scale: float = 1.0
    atmosphere: ExponentialAtmosphere = field(default_factory=ExponentialAtmosphere)
    spacecraft: SpacecraftParams = field(default_factory=SpacecraftParams)

    def __post_init__(self) -> None:
        if self.gm <= 0.0:
            raise ValueError(f"gm must be strictly positive, got {self.gm}")
        if self.gm_scale <= 0.0 or self.cd_scale <= 0.0:
            raise ValueError("parameter scales must be strictly positive")

    def parameter_names(self) -> tuple[str, ...]:
        """Names of the dynamical parameters, in dynamics-argument order."""
        names = (CENTRAL_ATTRACTION_COEFFICIENT,)
        if self.drag:
            names += (DRAG_COEFFICIENT,)
        return names

    @staticmethod
    def two_body() -> ForceModelConfig:
        """Preset: point-mass gravity only (Keplerian two-body)."""
        return ForceModelConfig()

    @staticmethod
    def leo_default() -> ForceModelConfig:
        """Preset: point mass, J2 and exponential-atmosphere drag."""
        return ForceModelConfig(j2=True, drag=True)
