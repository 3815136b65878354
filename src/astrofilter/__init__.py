"""
astrofilter is a sequential orbit determination library implemented in JAX.
"""

from .constants import (
    DEG2RAD,
    JD_MJD_OFFSET,
    SECONDS_PER_DAY,
    R_EARTH,
    WGS84_a,
    WGS84_f,
    GM_EARTH,
    J2_EARTH,
    OMEGA_EARTH,
)

from .config import set_dtype, get_dtype
from .epoch import Epoch
from .errors import (
    EstimationError,
    ConfigurationError,
    NumericalError,
    PropagationError,
    InnovationCovarianceError,
    MeasurementEvaluationError,
)
from .parameters import Parameter, DelegatingParameter, ParameterList
from .orbit_types import OrbitType

from .orbit_dynamics import ForceModelConfig, create_orbit_dynamics
from .propagation import TrajectoryBuilder, ReferenceTrajectory, TrajectoryState

from .measurements import (
    GroundStation,
    Range,
    RangeRate,
    AngularRaDec,
    Position,
    PV,
    InterSatellitesRange,
    OutlierFilter,
    DynamicOutlierFilter,
)

from .estimation import (
    ConstantProcessNoise,
    LinearProcessNoise,
    EstimatorConfig,
    KalmanModel,
    KalmanEstimator,
    KalmanEstimatorBuilder,
)
