"""Sequential orbit determination.

Available components:

- :class:`ParameterRegistry`, :class:`ColumnLayout` -- state-vector columns
- :func:`normalize_state`, :func:`normalize_covariance`, :func:`normalize_stm`
  and their inverses -- normalized filter space
- :func:`build_state_transition_matrix`, :func:`build_measurement_matrix`
- :class:`ConstantProcessNoise`, :class:`LinearProcessNoise`,
  :class:`ProcessNoiseComposer` -- process noise
- :func:`ekf_predict_covariance`, :func:`innovation_covariance`,
  :func:`ekf_correct` -- linear filter steps (Joseph form)
- :class:`KalmanModel` -- prediction, linearization and correction bookkeeping
- :class:`KalmanEstimator`, :class:`KalmanEstimatorBuilder` -- filter driver
"""

from astrofilter.estimation._types import (
    FilterResult,
    FilterState,
    NonLinearEvolution,
    ProcessEstimate,
)
from astrofilter.estimation.config import EstimatorConfig
from astrofilter.estimation.ekf import (
    ekf_correct,
    ekf_predict_covariance,
    innovation_covariance,
)
from astrofilter.estimation.kalman import KalmanEstimator, KalmanEstimatorBuilder
from astrofilter.estimation.matrices import (
    build_measurement_matrix,
    build_state_transition_matrix,
)
from astrofilter.estimation.model import KalmanModel
from astrofilter.estimation.normalization import (
    normalize_covariance,
    normalize_state,
    normalize_stm,
    unnormalize_covariance,
    unnormalize_state,
    unnormalize_stm,
)
from astrofilter.estimation.process_noise import (
    ConstantProcessNoise,
    LinearProcessNoise,
    ProcessNoiseComposer,
    ProcessNoiseProvider,
)
from astrofilter.estimation.registry import ColumnLayout, ParameterRegistry

__all__ = [
    "FilterResult",
    "FilterState",
    "NonLinearEvolution",
    "ProcessEstimate",
    "EstimatorConfig",
    "ekf_correct",
    "ekf_predict_covariance",
    "innovation_covariance",
    "KalmanEstimator",
    "KalmanEstimatorBuilder",
    "build_measurement_matrix",
    "build_state_transition_matrix",
    "KalmanModel",
    "normalize_covariance",
    "normalize_state",
    "normalize_stm",
    "unnormalize_covariance",
    "unnormalize_state",
    "unnormalize_stm",
    "ConstantProcessNoise",
    "LinearProcessNoise",
    "ProcessNoiseComposer",
    "ProcessNoiseProvider",
    "ColumnLayout",
    "ParameterRegistry",
]
