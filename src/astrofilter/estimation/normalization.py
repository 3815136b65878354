"""Normalization of filter quantities.

The filter works in a normalized space where each column is divided by the
scale of its parameter:

- state: ``x_n[i] = x[i] / scale[i]``
- covariance: ``P_n[i, j] = P[i, j] / (scale[i] * scale[j])``
- state-transition matrix: ``Phi_n[i, j] = Phi[i, j] * scale[j] / scale[i]``

All functions are pure and compatible with ``jax.jit``.
"""

from __future__ import annotations

import jax.numpy as jnp
from jax import Array
from jax.typing import ArrayLike


def normalize_state(x: ArrayLike, scale: ArrayLike) -> Array:
    return jnp.asarray(x) / jnp.asarray(scale)


def unnormalize_state(x: ArrayLike, scale: ArrayLike) -> Array:
    return jnp.asarray(x) * jnp.asarray(scale)


def normalize_covariance(P: ArrayLike, scale: ArrayLike) -> Array:
    """Divide ``P[i, j]`` by ``scale[i] * scale[j]``."""
    scale = jnp.asarray(scale)
    return jnp.asarray(P) / jnp.outer(scale, scale)


def unnormalize_covariance(P: ArrayLike, scale: ArrayLike) -> Array:
    """Multiply ``P[i, j]`` by ``scale[i] * scale[j]``."""
    scale = jnp.asarray(scale)
    return jnp.asarray(P) * jnp.outer(scale, scale)


def normalize_stm(phi: ArrayLike, scale: ArrayLike) -> Array:
    """Multiply ``Phi[i, j]`` by ``scale[j] / scale[i]``.

    Examples:
        ```python
        import jax.numpy as jnp
        from astrofilter.estimation import normalize_stm
        phi = normalize_stm(jnp.array([[1.0, 60.0], [0.0, 1.0]]),
                            jnp.array([10.0, 0.01]))
        # [[1.0, 0.06], [0.0, 1.0]]
        ```
    """
    scale = jnp.asarray(scale)
    return jnp.asarray(phi) * (scale[None, :] / scale[:, None])


def unnormalize_stm(phi: ArrayLike, scale: ArrayLike) -> Array:
    scale = jnp.asarray(scale)
    return jnp.asarray(phi) * (scale[:, None] / scale[None, :])
