"""Linear Kalman predict and correct routines.

The nonlinear parts of the extended Kalman filter (propagation, measurement
evaluation and linearization) are done by
:class:`~astrofilter.estimation.KalmanModel`; these functions only apply the
linear algebra to the normalized matrices it returns.

The covariance correction uses the Joseph form for guaranteed symmetry and
positive semi-definiteness.
"""

from __future__ import annotations

import jax
import jax.numpy as jnp
from jax import Array
from jax.typing import ArrayLike

from astrofilter.config import get_dtype
from astrofilter.estimation._types import FilterResult, FilterState


@jax.jit
def ekf_predict_covariance(P: ArrayLike, Phi: ArrayLike, Q: ArrayLike) -> Array:
    """Predicted covariance ``Phi P Phi^T + Q``.

    Args:
        P: Covariance at the previous observation, shape ``(m, m)``.
        Phi: State-transition matrix, shape ``(m, m)``.
        Q: Process noise, shape ``(m, m)``.

    Returns:
        Predicted covariance.
    """
    dtype = get_dtype()
    P = jnp.asarray(P, dtype=dtype)
    Phi = jnp.asarray(Phi, dtype=dtype)
    return Phi @ P @ Phi.T + jnp.asarray(Q, dtype=dtype)


@jax.jit
def innovation_covariance(P: ArrayLike, H: ArrayLike, R: ArrayLike) -> Array:
    """Innovation covariance ``S = H P H^T + R``."""
    dtype = get_dtype()
    H = jnp.asarray(H, dtype=dtype)
    return H @ jnp.asarray(P, dtype=dtype) @ H.T + jnp.asarray(R, dtype=dtype)


@jax.jit
def ekf_correct(
    filter_state: FilterState,
    innovation: ArrayLike,
    H: ArrayLike,
    R: ArrayLike,
    S: ArrayLike,
) -> FilterResult:
    """Incorporate a (normalized) innovation into the predicted state.

    Args:
        filter_state: Predicted filter state ``(x_pred, P_pred)``.
        innovation: Normalized residual of shape ``(n,)``.
        H: Measurement matrix of shape ``(n, m)``.
        R: Measurement noise covariance of shape ``(n, n)``.
        S: Innovation covariance from :func:`innovation_covariance`.

    Returns:
        FilterResult: Corrected state, innovation, innovation covariance,
            and Kalman gain.

    Examples:
        ```python
        import jax.numpy as jnp
        from astrofilter.estimation import FilterState, ekf_correct, innovation_covariance

        fs = FilterState(x=jnp.zeros(2), P=jnp.eye(2))
        H = jnp.array([[1.0, 0.0]])
        R = jnp.eye(1)
        S = innovation_covariance(fs.P, H, R)
        result = ekf_correct(fs, jnp.array([1.0]), H, R, S)
        # result.state.x == [0.5, 0.0]
        ```
    """
    dtype = get_dtype()
    x = jnp.asarray(filter_state.x, dtype=dtype)
    P = jnp.asarray(filter_state.P, dtype=dtype)
    innovation = jnp.asarray(innovation, dtype=dtype)
    H = jnp.asarray(H, dtype=dtype)
    R = jnp.asarray(R, dtype=dtype)
    S = jnp.asarray(S, dtype=dtype)

    m = x.shape[0]

    # Kalman gain: K = P H^T S^{-1}
    # Computed as K^T = S^{-1} (H P^T) = S^{-1} (H P) since P is symmetric
    K = jnp.linalg.solve(S, H @ P).T

    x_upd = x + K @ innovation

    # Joseph form covariance update: P = (I-KH) P (I-KH)^T + K R K^T
    IKH = jnp.eye(m, dtype=dtype) - K @ H
    P_upd = IKH @ P @ IKH.T + K @ R @ K.T

    return FilterResult(
        state=FilterState(x=x_upd, P=P_upd),
        innovation=innovation,
        innovation_covariance=S,
        kalman_gain=K,
    )
