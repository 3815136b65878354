"""Tests for observation models and outlier filters."""

import jax.numpy as jnp
import numpy as np
import pytest

from astrofilter.constants import DEG2RAD, OMEGA_EARTH, WGS84_a
from astrofilter.errors import ConfigurationError, MeasurementEvaluationError
from astrofilter.measurements import (
    PV,
    AngularRaDec,
    DynamicOutlierFilter,
    GroundStation,
    InterSatellitesRange,
    MeasurementStatus,
    ObservedMeasurement,
    OutlierFilter,
    Position,
    Range,
    RangeRate,
    position_geodetic_to_ecef,
)
from astrofilter.parameters import Parameter


# ──────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────

class _RadialDistance(ObservedMeasurement):
    """|r| plus an optional offset parameter."""

    def theoretical_value(self, states, params):
        value = jnp.linalg.norm(states[0][:3])
        if params.shape[0]:
            value = value + params[0]
        return jnp.atleast_1d(value)


def _central_difference(f, x, h):
    cols = []
    for i in range(x.shape[0]):
        dx = jnp.zeros_like(x).at[i].set(h[i])
        cols.append((f(x + dx) - f(x - dx)) / (2.0 * h[i]))
    return jnp.stack(cols, axis=-1)


H_STATE = jnp.array([1.0] * 3 + [1e-3] * 3)


# ──────────────────────────────────────────────
# Base class
# ──────────────────────────────────────────────

class TestObservedMeasurement:
    def test_scalar_promoted(self, epoch0):
        m = _RadialDistance(epoch0, 7.0e6, 10.0)
        assert m.dimension == 1
        assert m.observed.shape == (1,)
        assert m.sigma.shape == (1,)

    def test_scalar_sigma_broadcast(self, epoch0):
        m = Position(epoch0, [1.0, 2.0, 3.0], 5.0)
        assert np.allclose(m.sigma, [5.0, 5.0, 5.0])

    def test_zero_sigma_raises(self, epoch0):
        with pytest.raises(ConfigurationError, match="sigma"):
            _RadialDistance(epoch0, 7.0e6, 0.0)

    def test_negative_sigma_component_raises(self, epoch0):
        with pytest.raises(ConfigurationError):
            Position(epoch0, [1.0, 2.0, 3.0], [1.0, -1.0, 1.0])

    def test_sigma_shape_mismatch_raises(self, epoch0):
        with pytest.raises(ConfigurationError, match="shape"):
            Position(epoch0, [1.0, 2.0, 3.0], [1.0, 1.0])

    def test_base_theoretical_value_not_implemented(self, epoch0, leo_state):
        m = ObservedMeasurement(epoch0, 1.0, 1.0)
        with pytest.raises(NotImplementedError):
            m.estimate(1, [leo_state])

    def test_residual(self, epoch0):
        m = _RadialDistance(epoch0, 7_000_010.0, 10.0)
        est = m.estimate(1, [jnp.array([7_000_000.0, 0.0, 0.0, 0.0, 7500.0, 0.0])])
        assert np.allclose(est.estimated_value, [7_000_000.0])
        assert np.allclose(est.residual, [10.0])
        assert np.allclose(est.residual / m.sigma, [1.0])
        assert est.iteration == 1
        assert est.status is MeasurementStatus.PROCESSED

    def test_state_derivative(self, epoch0):
        m = _RadialDistance(epoch0, 7.0e6, 10.0)
        est = m.estimate(1, [jnp.array([3.0e6, 4.0e6, 0.0, 0.0, 0.0, 0.0])])
        assert np.allclose(est.state_derivative(0), [[0.6, 0.8, 0.0, 0.0, 0.0, 0.0]])
        assert est.state_derivative(1) is None

    def test_parameter_derivative(self, epoch0, leo_state):
        offset = Parameter("offset", 3.0, 1.0)
        m = _RadialDistance(epoch0, 7.0e6, 10.0, parameters=[offset])
        est = m.estimate(1, [leo_state])
        assert np.allclose(est.estimated_value, jnp.linalg.norm(leo_state[:3]) + 3.0)
        assert np.allclose(est.parameter_derivatives["offset"], [1.0])

    def test_non_finite_raises(self, epoch0):
        m = Position(epoch0, [1.0, 2.0, 3.0], 1.0)
        with pytest.raises(MeasurementEvaluationError):
            m.estimate(1, [jnp.array([jnp.nan, 0.0, 0.0, 0.0, 0.0, 0.0])])

    def test_wrong_number_of_states(self, epoch0, leo_state):
        m = InterSatellitesRange(epoch0, 1.0e3, 1.0)
        with pytest.raises(ValueError):
            m.estimate(1, [leo_state])


# ──────────────────────────────────────────────
# Spacecraft observations
# ──────────────────────────────────────────────

class TestSatelliteMeasurements:
    def test_position(self, epoch0, leo_state):
        m = Position(epoch0, leo_state[:3], 10.0)
        est = m.estimate(1, [leo_state])
        assert np.allclose(est.residual, 0.0)
        assert np.allclose(est.state_derivative(0), jnp.eye(6)[:3])

    def test_position_wrong_size(self, epoch0):
        with pytest.raises(ValueError):
            Position(epoch0, [1.0, 2.0], 1.0)

    def test_pv_sigma_layout(self, epoch0, leo_state):
        m = PV(epoch0, leo_state, 10.0, 0.01)
        assert np.allclose(m.sigma, [10.0] * 3 + [0.01] * 3)
        est = m.estimate(1, [leo_state])
        assert np.allclose(est.state_derivative(0), jnp.eye(6))

    def test_inter_satellites_range(self, epoch0, leo_state):
        other = leo_state.at[0].add(3.0e3).at[1].add(4.0e3)
        m = InterSatellitesRange(epoch0, 5.0e3, 1.0)
        est = m.estimate(1, [leo_state, other])
        assert np.allclose(est.estimated_value, [5.0e3])
        assert np.allclose(est.state_derivative(0)[0, :3], [-0.6, -0.8, 0.0])
        assert np.allclose(est.state_derivative(1)[0, :3], [0.6, 0.8, 0.0])

    def test_inter_satellites_range_same_trajectory(self, epoch0):
        with pytest.raises(ValueError):
            InterSatellitesRange(epoch0, 1.0, 1.0, local=1, remote=1)


# ──────────────────────────────────────────────
# Ground station observations
# ──────────────────────────────────────────────

class TestGroundStation:
    def test_geodetic_origin(self):
        r = position_geodetic_to_ecef(jnp.array([0.0, 0.0, 0.0]))
        assert np.allclose(r, [WGS84_a, 0.0, 0.0])

    def test_geodetic_degrees(self):
        r = position_geodetic_to_ecef(jnp.array([90.0, 0.0, 100.0]), use_degrees=True)
        assert np.allclose(r, [0.0, WGS84_a + 100.0, 0.0], atol=1e-6)

    def test_geodetic_degrees_match_radians(self):
        x_deg = jnp.array([21.06, 67.86, 385.0])
        x_rad = x_deg.at[:2].multiply(DEG2RAD)
        assert np.allclose(position_geodetic_to_ecef(x_deg, use_degrees=True),
                           position_geodetic_to_ecef(x_rad), rtol=1e-12)

    def test_eci_preserves_norm_and_rotates(self, epoch0):
        station = GroundStation("Toulouse", 1.49, 43.43, 150.0)
        x = station.state_eci(epoch0)
        assert np.isclose(jnp.linalg.norm(x[:3]), jnp.linalg.norm(station.position_ecef))
        assert np.isclose(x[2], station.position_ecef[2])
        assert np.allclose(x[3:], jnp.cross(jnp.array([0.0, 0.0, OMEGA_EARTH]), x[:3]))

    def test_range_bias_parameter(self):
        station = GroundStation("Kourou", -52.8, 5.25)
        assert station.range_bias.name == "Kourou range bias"
        assert station.range_bias.value == 0.0
        assert not station.range_bias.selected


class TestGroundMeasurements:
    def _overhead_state(self, station, epoch, altitude=500e3):
        r_st = station.state_eci(epoch)[:3]
        r = r_st + altitude * r_st / jnp.linalg.norm(r_st)
        return jnp.concatenate([r, jnp.array([0.0, 7500.0, 0.0])])

    def test_range_overhead(self, epoch0):
        station = GroundStation("Svalbard", 15.4, 78.2)
        state = self._overhead_state(station, epoch0)
        m = Range(station, epoch0, 500e3 + 10.0, 10.0)
        est = m.estimate(1, [state])
        assert np.allclose(est.estimated_value, [500e3], rtol=1e-12)
        assert np.allclose(est.residual / m.sigma, [1.0], atol=1e-6)

    def test_range_bias_and_derivative(self, epoch0, leo_state):
        station = GroundStation("Svalbard", 15.4, 78.2)
        station.range_bias.value = 25.0
        m = Range(station, epoch0, 0.0, 10.0)
        est = m.estimate(1, [leo_state])
        geometric = jnp.linalg.norm(leo_state[:3] - station.state_eci(epoch0)[:3])
        assert np.allclose(est.estimated_value, geometric + 25.0)
        assert np.allclose(est.parameter_derivatives["Svalbard range bias"], [1.0])

    def test_range_rate_derivatives(self, epoch0, leo_state):
        station = GroundStation("Svalbard", 15.4, 78.2)
        m = RangeRate(station, epoch0, 0.0, 0.01)
        est = m.estimate(1, [leo_state])
        numeric = _central_difference(
            lambda x: m.theoretical_value((x,), jnp.zeros(0)), leo_state, H_STATE
        )
        assert np.allclose(est.state_derivative(0), numeric, rtol=1e-6, atol=1e-8)

    def test_range_rate_sign(self, epoch0):
        station = GroundStation("Svalbard", 15.4, 78.2)
        state = self._overhead_state(station, epoch0)
        up = state[:3] / jnp.linalg.norm(state[:3])
        receding = state.at[3:].set(station.state_eci(epoch0)[3:] + 100.0 * up)
        est = RangeRate(station, epoch0, 0.0, 0.01).estimate(1, [receding])
        assert float(est.estimated_value[0]) == pytest.approx(100.0, rel=1e-6)

    def test_radec_wraps_near_observed(self, epoch0):
        station = GroundStation("Equator", 0.0, 0.0)
        r_st = station.state_eci(epoch0)[:3]
        # Target just below RA = pi, observation just above -pi
        target = r_st + jnp.array([-1.0e6, 1.0e3, 0.0])
        state = jnp.concatenate([target, jnp.zeros(3)])
        m = AngularRaDec(station, epoch0, [-jnp.pi + 1e-4, 0.0], [1e-4, 1e-4])
        est = m.estimate(1, [state])
        assert abs(float(est.residual[0])) < 0.01

    def test_radec_wrong_size(self, epoch0):
        station = GroundStation("Equator", 0.0, 0.0)
        with pytest.raises(ValueError):
            AngularRaDec(station, epoch0, [0.1, 0.2, 0.3], 1e-4)


# ──────────────────────────────────────────────
# Outlier filters
# ──────────────────────────────────────────────

class TestOutlierFilter:
    def _estimate(self, epoch, observed, iteration, modifier):
        m = _RadialDistance(epoch, observed, 10.0)
        m.add_modifier(modifier)
        return m.estimate(iteration, [jnp.array([7.0e6, 0.0, 0.0, 0.0, 7500.0, 0.0])])

    def test_rejects_large_residual(self, epoch0):
        est = self._estimate(epoch0, 7.0e6 + 40.0, 5, OutlierFilter(warmup=2, max_sigma=3.0))
        assert est.status is MeasurementStatus.REJECTED

    def test_accepts_small_residual(self, epoch0):
        est = self._estimate(epoch0, 7.0e6 + 20.0, 5, OutlierFilter(warmup=2, max_sigma=3.0))
        assert est.status is MeasurementStatus.PROCESSED

    def test_inactive_during_warmup(self, epoch0):
        est = self._estimate(epoch0, 7.0e6 + 1.0e3, 2, OutlierFilter(warmup=2, max_sigma=3.0))
        assert est.status is MeasurementStatus.PROCESSED

    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            OutlierFilter(warmup=-1, max_sigma=3.0)
        with pytest.raises(ValueError):
            OutlierFilter(warmup=0, max_sigma=0.0)


class TestDynamicOutlierFilter:
    def test_inactive_without_sigma(self, epoch0):
        f = DynamicOutlierFilter(warmup=0, max_sigma=3.0)
        m = _RadialDistance(epoch0, 8.0e6, 10.0)
        m.add_modifier(f)
        est = m.estimate(5, [jnp.array([7.0e6, 0.0, 0.0, 0.0, 7500.0, 0.0])])
        assert est.status is MeasurementStatus.PROCESSED

    def test_uses_supplied_sigma(self, epoch0):
        # sqrt(S) = 2 and theoretical sigma = 2 give a dynamic sigma of 4
        f = DynamicOutlierFilter(warmup=0, max_sigma=3.0)
        m = _RadialDistance(epoch0, 7.0e6 + 20.0, 2.0)
        est = m.estimate(5, [jnp.array([7.0e6, 0.0, 0.0, 0.0, 7500.0, 0.0])])
        f.set_sigma(jnp.sqrt(jnp.array([4.0])) * m.sigma)
        f.modify(est)
        assert est.status is MeasurementStatus.REJECTED

        m = _RadialDistance(epoch0, 7.0e6 + 10.0, 2.0)
        est = m.estimate(5, [jnp.array([7.0e6, 0.0, 0.0, 0.0, 7500.0, 0.0])])
        f.modify(est)
        assert est.status is MeasurementStatus.PROCESSED

    def test_clear_sigma(self):
        f = DynamicOutlierFilter(warmup=0, max_sigma=3.0)
        f.set_sigma(jnp.array([1.0]))
        f.set_sigma(None)
        assert f.sigma is None
