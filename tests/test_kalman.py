"""Tests for the Kalman orbit determination model and estimator.

Tests cover:
- Initial estimate and covariance seeding
- Evolution, innovation and finalization of single observations
- Outlier rejection leaving the estimate unchanged
- Failure handling (out-of-order observations, singular innovation
  covariance) leaving the model unchanged
- End-to-end convergence with position-velocity fixes in Cartesian and
  Keplerian parameters
- Estimation of a station range bias
- Two trajectories sharing an estimated drag coefficient
"""

import jax.numpy as jnp
import numpy as np
import pytest

from astrofilter.errors import ConfigurationError, InnovationCovarianceError
from astrofilter.estimation import (
    ConstantProcessNoise,
    EstimatorConfig,
    KalmanEstimatorBuilder,
    KalmanModel,
    NonLinearEvolution,
)
from astrofilter.measurements import (
    PV,
    DynamicOutlierFilter,
    GroundStation,
    InterSatellitesRange,
    MeasurementStatus,
    Position,
    Range,
)
from astrofilter.orbit_dynamics import ForceModelConfig
from astrofilter.orbit_types import OrbitType
from astrofilter.propagation import TrajectoryBuilder

# ──────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────

P0_CARTESIAN = jnp.diag(jnp.array([1e6] * 3 + [1.0] * 3))
ZERO_Q = jnp.zeros((6, 6))


def _truth(epoch, state, n, dt=60.0, force_model=None):
    trajectory = TrajectoryBuilder(epoch, state, force_model=force_model).build_propagator()
    return [trajectory.propagate(epoch + dt * (i + 1)) for i in range(n)]


def _pv_measurements(truth, sigma_p=10.0, sigma_v=0.01, trajectory=0):
    return [PV(ts.epoch, ts.state, sigma_p, sigma_v, trajectory=trajectory) for ts in truth]


def _estimator(builder, P0=P0_CARTESIAN, Q=ZERO_Q, observer=None, config=None):
    b = KalmanEstimatorBuilder().add_propagation_configuration(
        builder, ConstantProcessNoise(P0, Q)
    )
    if observer is not None:
        b = b.observer(observer)
    if config is not None:
        b = b.config(config)
    return b.build()


def _perturbed(leo_state):
    return leo_state + jnp.array([1000.0, -500.0, 200.0, 0.0, 0.0, 0.0])


# ──────────────────────────────────────────────
# Model construction
# ──────────────────────────────────────────────


class TestModelConstruction:
    def test_initial_estimate(self, epoch0, leo_state):
        builder = TrajectoryBuilder(epoch0, leo_state)
        model = _estimator(builder).model
        assert model.current_measurement_number == 0
        assert model.current_date == epoch0
        assert model.estimate.time == 0.0
        assert np.allclose(model.physical_estimated_state, leo_state)
        assert np.allclose(model.physical_estimated_covariance, P0_CARTESIAN)
        assert model.predicted_measurement is None
        assert model.corrected_measurement is None

    def test_normalized_covariance(self, epoch0, leo_state):
        builder = TrajectoryBuilder(epoch0, leo_state)
        model = _estimator(builder).model
        # Position scale is 10 m
        assert np.allclose(jnp.diag(model.estimate.covariance)[:3], 1e4)

    def test_estimated_parameters(self, epoch0, leo_state):
        builder = TrajectoryBuilder(epoch0, leo_state)
        model = _estimator(builder).model
        assert len(model.estimated_orbital_parameters) == 6
        assert model.estimated_propagation_parameters == ()
        assert model.estimated_measurement_parameters == ()

    def test_empty_builder_raises(self):
        with pytest.raises(ConfigurationError):
            KalmanEstimatorBuilder().build()

    def test_provider_count_mismatch_raises(self, epoch0, leo_state):
        builder = TrajectoryBuilder(epoch0, leo_state)
        with pytest.raises(ConfigurationError):
            KalmanModel([builder], [])

    def test_unselected_measurement_parameter_raises(self, epoch0, leo_state):
        station = GroundStation("Kiruna", 21.06, 67.86, 385.0)
        builder = TrajectoryBuilder(epoch0, leo_state)
        with pytest.raises(ConfigurationError):
            KalmanModel([builder], [ConstantProcessNoise(P0_CARTESIAN, ZERO_Q)],
                        [station.range_bias])


# ──────────────────────────────────────────────
# Single observation cycle
# ──────────────────────────────────────────────


class TestModelCycle:
    def test_evolution(self, epoch0, leo_state):
        builder = TrajectoryBuilder(epoch0, leo_state)
        model = _estimator(builder).model
        truth = _truth(epoch0, leo_state, 1)
        m = _pv_measurements(truth)[0]
        evolution = model.get_evolution(model.estimate.time, model.estimate.state, m)
        assert isinstance(evolution, NonLinearEvolution)
        assert evolution.time == pytest.approx(60.0)
        assert evolution.state_transition_matrix.shape == (6, 6)
        assert evolution.measurement_matrix.shape == (6, 6)
        assert np.allclose(evolution.predicted_state[:3] * 10.0, truth[0].state[:3])
        # Position rows: sigma 10 m and scale 10 m
        assert np.allclose(evolution.measurement_matrix[:3, :3], jnp.eye(3))
        assert np.allclose(evolution.process_noise, 0.0)
        model.discard_pending()

    def test_innovation_is_normalized_residual(self, epoch0, leo_state):
        builder = TrajectoryBuilder(epoch0, leo_state)
        model = _estimator(builder).model
        observed = leo_state[:3] + jnp.array([10.0, 0.0, -20.0])
        m = Position(epoch0, observed, 10.0)
        evolution = model.get_evolution(model.estimate.time, model.estimate.state, m)
        S = jnp.eye(3)
        innovation = model.get_innovation(m, evolution, S)
        assert np.allclose(innovation, [1.0, 0.0, -2.0])
        model.discard_pending()

    def test_range_innovation_is_normalized_residual(self, epoch0, leo_state):
        station = GroundStation("Kiruna", 21.06, 67.86, 385.0)
        builder = TrajectoryBuilder(epoch0, leo_state)
        model = _estimator(builder).model
        geometric = jnp.linalg.norm(leo_state[:3] - station.state_eci(epoch0)[:3])
        m = Range(station, epoch0, float(geometric) + 10.0, 10.0)
        evolution = model.get_evolution(model.estimate.time, model.estimate.state, m)
        innovation = model.get_innovation(m, evolution, jnp.eye(1))
        assert innovation.shape == (1,)
        assert float(innovation[0]) == pytest.approx(1.0, abs=1e-9)
        model.discard_pending()

    @pytest.mark.parametrize("offset, rejected", [(20.0, True), (10.0, False)])
    def test_dynamic_outlier_sigma_from_innovation_covariance(
        self, epoch0, leo_state, offset, rejected
    ):
        # sqrt(4) * 2 m = 4 m dynamic sigma, 12 m threshold
        builder = TrajectoryBuilder(epoch0, leo_state)
        model = _estimator(builder).model
        gate = DynamicOutlierFilter(warmup=0, max_sigma=3.0)
        m = Position(epoch0, leo_state[:3] + jnp.array([offset, 0.0, 0.0]), 2.0)
        m.add_modifier(gate)
        evolution = model.get_evolution(model.estimate.time, model.estimate.state, m)
        innovation = model.get_innovation(m, evolution, 4.0 * jnp.eye(3))
        if rejected:
            assert innovation is None
        else:
            assert np.allclose(innovation, [offset / 2.0, 0.0, 0.0])
        assert gate.sigma is None
        model.discard_pending()

    def test_unknown_trajectory_raises(self, epoch0, leo_state):
        builder = TrajectoryBuilder(epoch0, leo_state)
        model = _estimator(builder).model
        m = Position(epoch0 + 60.0, leo_state[:3], 10.0, trajectory=3)
        with pytest.raises(ConfigurationError, match="trajectory 3"):
            model.get_evolution(model.estimate.time, model.estimate.state, m)
        assert model.current_measurement_number == 0
        assert model.current_date == epoch0

    def test_state_dimension_mismatch_raises(self, epoch0, leo_state):
        builder = TrajectoryBuilder(epoch0, leo_state)
        model = _estimator(builder).model
        m = Position(epoch0 + 60.0, leo_state[:3], 10.0)
        with pytest.raises(ConfigurationError):
            model.get_evolution(0.0, jnp.zeros(5), m)

    def test_innovation_requires_evolution(self, epoch0, leo_state):
        builder = TrajectoryBuilder(epoch0, leo_state)
        model = _estimator(builder).model
        m = Position(epoch0, leo_state[:3], 10.0)
        with pytest.raises(ValueError):
            model.get_innovation(m, None, jnp.eye(3))

    def test_processed_measurement_bookkeeping(self, epoch0, leo_state):
        calls = []
        builder = TrajectoryBuilder(epoch0, _perturbed(leo_state))
        estimator = _estimator(builder, observer=calls.append)
        m = _pv_measurements(_truth(epoch0, leo_state, 1))[0]
        estimator.process_measurement(m)
        model = estimator.model
        assert calls == [model]
        assert model.current_measurement_number == 1
        assert model.current_date == epoch0 + 60.0
        assert builder.epoch == epoch0 + 60.0
        assert model.predicted_measurement.iteration == 1
        assert model.predicted_measurement.status is MeasurementStatus.PROCESSED
        predicted = jnp.linalg.norm(model.predicted_measurement.residual[:3])
        corrected = jnp.linalg.norm(model.corrected_measurement.residual[:3])
        assert float(corrected) < float(predicted)
        assert np.allclose(model.corrected_states[0].state_transition, jnp.eye(6))


# ──────────────────────────────────────────────
# Outliers and failures
# ──────────────────────────────────────────────


class TestRejection:
    def test_rejected_observation_leaves_estimate_unchanged(self, epoch0, leo_state):
        builder = TrajectoryBuilder(epoch0, leo_state)
        estimator = _estimator(builder, P0=jnp.diag(jnp.array([100.0] * 3 + [1e-2] * 3)))
        model = estimator.model
        before = model.estimate

        m = Position(epoch0, leo_state[:3] + 1.0e5, 10.0)
        m.add_modifier(DynamicOutlierFilter(warmup=0, max_sigma=3.0))
        after = estimator.process_measurement(m)

        assert model.predicted_measurement.status is MeasurementStatus.REJECTED
        assert model.current_measurement_number == 1
        assert jnp.array_equal(after.covariance, before.covariance)
        assert np.allclose(after.state, before.state, rtol=1e-15, atol=0.0)
        assert m.modifiers[0].sigma is None

    def test_dynamic_filter_inactive_during_warmup(self, epoch0, leo_state):
        builder = TrajectoryBuilder(epoch0, leo_state)
        estimator = _estimator(builder)
        m = Position(epoch0, leo_state[:3] + 1.0e5, 10.0)
        m.add_modifier(DynamicOutlierFilter(warmup=1, max_sigma=3.0))
        estimator.process_measurement(m)
        assert estimator.model.predicted_measurement.status is MeasurementStatus.PROCESSED


class TestFailures:
    def test_out_of_order_raises(self, epoch0, leo_state):
        builder = TrajectoryBuilder(epoch0, leo_state)
        estimator = _estimator(builder)
        truth = _truth(epoch0, leo_state, 2)
        estimator.process_measurement(_pv_measurements(truth)[1])
        before = estimator.model.estimate
        with pytest.raises(ValueError, match="older"):
            estimator.process_measurement(_pv_measurements(truth)[0])
        assert estimator.model.current_measurement_number == 1
        assert estimator.model.estimate is before

    def test_ill_conditioned_innovation_covariance(self, epoch0, leo_state):
        builder = TrajectoryBuilder(epoch0, leo_state)
        estimator = _estimator(
            builder,
            P0=jnp.diag(jnp.array([1e6] * 3 + [1e-4] * 3)),
            config=EstimatorConfig(max_condition_number=10.0),
        )
        before = estimator.model.estimate
        m = _pv_measurements(_truth(epoch0, leo_state, 1))[0]
        with pytest.raises(InnovationCovarianceError) as excinfo:
            estimator.process_measurement(m)
        assert excinfo.value.epoch == m.epoch
        model = estimator.model
        assert model.current_measurement_number == 0
        assert model.estimate is before
        assert builder.epoch == epoch0

        # The model resumes with the next observation once the limit is relaxed
        estimator.model.config = EstimatorConfig()
        estimator.process_measurement(m)
        assert model.current_measurement_number == 1


# ──────────────────────────────────────────────
# End-to-end orbit determination
# ──────────────────────────────────────────────


class TestOrbitDetermination:
    def test_cartesian_pv_convergence(self, epoch0, leo_state):
        truth = _truth(epoch0, leo_state, 20)
        builder = TrajectoryBuilder(epoch0, _perturbed(leo_state))
        estimator = _estimator(builder)
        estimator.process_measurements(_pv_measurements(truth))

        final = estimator.model.corrected_states[0]
        assert final.epoch == truth[-1].epoch
        assert float(jnp.linalg.norm(final.state[:3] - truth[-1].state[:3])) < 10.0
        assert float(jnp.linalg.norm(final.state[3:] - truth[-1].state[3:])) < 0.01
        P = estimator.model.physical_estimated_covariance
        assert jnp.all(jnp.diag(P)[:3] < 100.0)

    def test_keplerian_pv_convergence(self, epoch0, leo_state):
        truth = _truth(epoch0, leo_state, 20)
        builder = TrajectoryBuilder(epoch0, _perturbed(leo_state), orbit_type=OrbitType.KEPLERIAN)
        P0 = jnp.diag(jnp.array([9e6, 1e-6, 1e-4, 1e-4, 1e-4, 1e-4]))
        estimator = _estimator(builder, P0=P0)
        estimator.process_measurements(_pv_measurements(truth))

        final = estimator.model.corrected_states[0]
        assert float(jnp.linalg.norm(final.state[:3] - truth[-1].state[:3])) < 100.0
        assert [p.name for p in estimator.model.estimated_orbital_parameters][0] == "a"

    def test_range_bias_estimation(self, epoch0, leo_state):
        station = GroundStation("Kiruna", 21.06, 67.86, 385.0)
        station.range_bias.selected = True
        truth = _truth(epoch0, leo_state, 10)

        observations = []
        for ts in truth:
            geometric = jnp.linalg.norm(ts.state[:3] - station.state_eci(ts.epoch)[:3])
            observations.append(Range(station, ts.epoch, float(geometric) + 50.0, 1.0))

        builder = TrajectoryBuilder(epoch0, leo_state)
        P0 = jnp.diag(jnp.array([1.0] * 3 + [1e-6] * 3 + [1e4]))
        estimator = (
            KalmanEstimatorBuilder()
            .add_propagation_configuration(builder, ConstantProcessNoise(P0, jnp.zeros((7, 7))))
            .estimated_measurements_parameters([station.range_bias])
            .build()
        )
        assert estimator.model.layout.dimension == 7
        estimator.process_measurements(observations)

        assert station.range_bias.value == pytest.approx(50.0, abs=1.0)
        assert estimator.model.estimated_measurement_parameters[0].value == station.range_bias.value
        assert station.range_bias.reference_date == epoch0

    def test_shared_drag_coefficient(self, epoch0, leo_state):
        config = ForceModelConfig.leo_default()
        other = leo_state.at[1].add(20e3)
        builders = [
            TrajectoryBuilder(epoch0, leo_state, force_model=config),
            TrajectoryBuilder(epoch0, other, force_model=config),
        ]
        for b in builders:
            b.propagation_parameters[1].selected = True
        P0 = jnp.diag(jnp.array([100.0] * 3 + [1e-2] * 3 + [0.01]))
        calls = []
        estimator = (
            KalmanEstimatorBuilder()
            .add_propagation_configuration(builders[0], ConstantProcessNoise(P0, jnp.zeros((7, 7))))
            .add_propagation_configuration(builders[1], ConstantProcessNoise(P0, jnp.zeros((7, 7))))
            .config(EstimatorConfig(max_workers=2))
            .observer(calls.append)
            .build()
        )
        model = estimator.model
        assert model.layout.dimension == 13
        assert len(model.estimated_propagation_parameters) == 1

        t0 = _truth(epoch0, leo_state, 3, force_model=config)
        t1 = _truth(epoch0, other, 3, force_model=config)
        separation = float(jnp.linalg.norm(t0[2].state[:3] - t1[2].state[:3]))
        estimator.process_measurements([
            PV(t0[0].epoch, t0[0].state, 10.0, 0.01, trajectory=0),
            PV(t1[1].epoch, t1[1].state, 10.0, 0.01, trajectory=1),
            InterSatellitesRange(t0[2].epoch, separation, 1.0),
        ])

        assert len(calls) == 3
        assert model.current_measurement_number == 3
        cd0 = builders[0].propagation_parameters[1].value
        cd1 = builders[1].propagation_parameters[1].value
        assert cd0 == cd1
        assert cd0 == pytest.approx(2.2, abs=0.3)
        assert builders[0].epoch == builders[1].epoch == t0[2].epoch
