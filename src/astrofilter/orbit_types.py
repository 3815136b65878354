"""Orbit types: the six orbital parameters a trajectory is estimated in.

A trajectory builder exposes its orbit through six :class:`Parameter`
objects whose meaning depends on the :class:`OrbitType`:

| Type        | Parameters                                       | Units            |
|-------------|--------------------------------------------------|------------------|
| CARTESIAN   | ``x, y, z, vx, vy, vz``                          | m, m/s           |
| KEPLERIAN   | ``a, e, i, RAAN, omega, M``                      | m, -, rad        |

Keplerian element ordering follows the Brahe convention. Conversions are
written in ``jax.numpy`` so that the Jacobians needed by the filter,
``dC/dY`` (Cartesian w.r.t. orbital parameters) and ``dY/dC``, are obtained
exactly with ``jax.jacfwd``.

References:
    1. O. Montenbruck and E. Gill, *Satellite Orbits: Models, Methods
       and Applications*, Springer, 2012, Sec. 2.2.
"""

from __future__ import annotations

import enum
import math

import jax
import jax.numpy as jnp
from jax import Array
from jax.typing import ArrayLike

from astrofilter.config import get_dtype
from astrofilter.constants import GM_EARTH


def anomaly_mean_to_eccentric(M: ArrayLike, e: ArrayLike) -> Array:
    """Solve Kepler's equation ``M = E - e sin(E)`` for ``E`` (radians).

    Newton-Raphson iteration with ``jax.lax.fori_loop`` so the solution is
    differentiable with ``jax.jacfwd``.
    """
    M = jnp.asarray(M, dtype=get_dtype()) % (2.0 * jnp.pi)
    e = jnp.asarray(e, dtype=get_dtype())

    # Initial guess: M for low eccentricity, pi for high eccentricity
    E0 = jnp.where(e < 0.8, M, jnp.pi)

    def newton_step(_, E):
        f = E - e * jnp.sin(E) - M
        return E - f / (1.0 - e * jnp.cos(E))

    return jax.lax.fori_loop(0, 10, newton_step, E0)


def state_koe_to_eci(x_oe: ArrayLike, gm: float = GM_EARTH) -> Array:
    """Convert Keplerian elements ``[a, e, i, RAAN, omega, M]`` to an ECI state.

    Args:
        x_oe: Orbital elements, semi-major axis in *m*, angles in *rad*.
        gm: Gravitational parameter of the central body [m^3/s^2].

    Returns:
        ECI state ``[x, y, z, vx, vy, vz]`` in *m* and *m/s*.

    References:
        O. Montenbruck and E. Gill, *Satellite Orbits*, 2012, Eq. 2.43–2.44.
    """
    x_oe = jnp.asarray(x_oe, dtype=get_dtype())
    a, e, i, raan, omega, M = (x_oe[k] for k in range(6))

    E = anomaly_mean_to_eccentric(M, e)

    cos_o, sin_o = jnp.cos(omega), jnp.sin(omega)
    cos_R, sin_R = jnp.cos(raan), jnp.sin(raan)
    cos_i, sin_i = jnp.cos(i), jnp.sin(i)

    P = jnp.array([
        cos_o * cos_R - sin_o * cos_i * sin_R,
        cos_o * sin_R + sin_o * cos_i * cos_R,
        sin_o * sin_i,
    ])
    Q = jnp.array([
        -sin_o * cos_R - cos_o * cos_i * sin_R,
        -sin_o * sin_R + cos_o * cos_i * cos_R,
        cos_o * sin_i,
    ])

    cos_E, sin_E = jnp.cos(E), jnp.sin(E)
    sqrt_1me2 = jnp.sqrt(1.0 - e * e)

    r_vec = a * (cos_E - e) * P + a * sqrt_1me2 * sin_E * Q
    r_mag = jnp.linalg.norm(r_vec)
    v_vec = (jnp.sqrt(gm * a) / r_mag) * (-sin_E * P + sqrt_1me2 * cos_E * Q)

    return jnp.concatenate([r_vec, v_vec])


def state_eci_to_koe(x_cart: ArrayLike, gm: float = GM_EARTH) -> Array:
    """Convert an ECI state to Keplerian elements ``[a, e, i, RAAN, omega, M]``.

    Angles are returned in ``[0, 2*pi)``. Elements are singular for
    circular or equatorial orbits; use :attr:`OrbitType.CARTESIAN` there.

    References:
        O. Montenbruck and E. Gill, *Satellite Orbits*, 2012, Eq. 2.56–2.68.
    """
    x_cart = jnp.asarray(x_cart, dtype=get_dtype())
    r = x_cart[:3]
    v = x_cart[3:6]

    r_mag = jnp.linalg.norm(r)
    v_mag = jnp.linalg.norm(v)

    h = jnp.cross(r, v)
    W = h / jnp.linalg.norm(h)

    i = jnp.arctan2(jnp.sqrt(W[0] * W[0] + W[1] * W[1]), W[2])
    raan = jnp.arctan2(W[0], -W[1])

    p = jnp.dot(h, h) / gm
    a = 1.0 / (2.0 / r_mag - v_mag * v_mag / gm)
    n = jnp.sqrt(gm / jnp.abs(a) ** 3)

    ecc = jnp.sqrt(jnp.maximum(1.0 - p / a, 0.0))

    E = jnp.arctan2(jnp.dot(r, v) / (n * a * a), 1.0 - r_mag / a)
    M = E - ecc * jnp.sin(E)

    u = jnp.arctan2(r[2], -r[0] * W[1] + r[1] * W[0])
    nu = jnp.arctan2(jnp.sqrt(1.0 - ecc * ecc) * jnp.sin(E), jnp.cos(E) - ecc)
    omega = u - nu

    two_pi = 2.0 * jnp.pi
    raan = jnp.mod(raan + two_pi, two_pi)
    omega = jnp.mod(omega + two_pi, two_pi)
    M = jnp.mod(M + two_pi, two_pi)

    return jnp.array([a, ecc, i, raan, omega, M])


class OrbitType(enum.Enum):
    """Parameterization of the six orbital parameters of a trajectory."""

    CARTESIAN = "cartesian"
    KEPLERIAN = "keplerian"

    @property
    def parameter_names(self) -> tuple[str, ...]:
        if self is OrbitType.CARTESIAN:
            return ("x", "y", "z", "vx", "vy", "vz")
        return ("a", "e", "i", "RAAN", "omega", "M")

    @property
    def parameter_bounds(self) -> tuple[tuple[float, float], ...]:
        """Physical ``(min, max)`` bounds of each orbital parameter."""
        if self is OrbitType.CARTESIAN:
            return ((-math.inf, math.inf),) * 6
        return (
            (0.0, math.inf),
            (0.0, 1.0 - 1e-12),
            (0.0, math.pi),
            (-math.inf, math.inf),
            (-math.inf, math.inf),
            (-math.inf, math.inf),
        )

    def from_cartesian(self, state: ArrayLike, gm: float = GM_EARTH) -> Array:
        """Orbital parameters of a Cartesian ECI state."""
        if self is OrbitType.CARTESIAN:
            return jnp.asarray(state, dtype=get_dtype())
        return state_eci_to_koe(state, gm)

    def to_cartesian(self, parameters: ArrayLike, gm: float = GM_EARTH) -> Array:
        """Cartesian ECI state from orbital parameters."""
        if self is OrbitType.CARTESIAN:
            return jnp.asarray(parameters, dtype=get_dtype())
        return state_koe_to_eci(parameters, gm)

    def jacobian_wrt_parameters(self, state: ArrayLike, gm: float = GM_EARTH) -> Array:
        """``dC/dY``: Cartesian state w.r.t. orbital parameters, at *state*.

        Args:
            state: Cartesian ECI state at which the Jacobian is evaluated.

        Returns:
            6x6 Jacobian.
        """
        if self is OrbitType.CARTESIAN:
            return jnp.eye(6, dtype=get_dtype())
        y = self.from_cartesian(state, gm)
        return jax.jacfwd(lambda p: self.to_cartesian(p, gm))(y)

    def jacobian_wrt_cartesian(self, state: ArrayLike, gm: float = GM_EARTH) -> Array:
        """``dY/dC``: orbital parameters w.r.t. Cartesian state, at *state*."""
        if self is OrbitType.CARTESIAN:
            return jnp.eye(6, dtype=get_dtype())
        state = jnp.asarray(state, dtype=get_dtype())
        return jax.jacfwd(lambda c: self.from_cartesian(c, gm))(state)

    def parameter_scales(self, state: ArrayLike, position_scale: float,
                         gm: float = GM_EARTH) -> Array:
        """Normalization scales of the six orbital parameters.

        A position uncertainty ``dP`` is mapped to a velocity uncertainty
        ``dV = gm * dP / (|v| * |r|^2)`` and both are propagated through
        ``dY/dC`` to give one scale per orbital parameter.

        Args:
            state: Cartesian ECI state.
            position_scale: Position scale ``dP`` [m].

        Returns:
            Array of six strictly positive scales (zero entries are
            replaced by ``position_scale`` for positions, ``dV`` otherwise).
        """
        state = jnp.asarray(state, dtype=get_dtype())
        r2 = jnp.dot(state[:3], state[:3])
        v = jnp.linalg.norm(state[3:6])
        dV = gm * position_scale / (v * r2)
        dC = jnp.array([position_scale] * 3 + [dV] * 3, dtype=get_dtype())
        scales = jnp.abs(self.jacobian_wrt_cartesian(state, gm)) @ dC
        fallback = jnp.where(jnp.arange(6) < 3, position_scale, dV)
        return jnp.where(scales > 0.0, scales, fallback)
