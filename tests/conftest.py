import jax.numpy as jnp
import pytest

from astrofilter.config import set_dtype
from astrofilter.constants import GM_EARTH, R_EARTH
from astrofilter.epoch import Epoch


@pytest.fixture(autouse=True)
def _ensure_float64():
    """Set float64 precision before every test.

    With pytest-xdist, each worker process imports astrofilter afresh; tests
    that switch to float32 (test_config.py) restore float64 through this
    fixture.
    """
    set_dtype(jnp.float64)


@pytest.fixture
def epoch0():
    return Epoch(2024, 1, 1, 0, 0, 0.0)


@pytest.fixture
def leo_state():
    """Slightly eccentric, inclined 500 km LEO state [m, m/s]."""
    r = R_EARTH + 500e3
    v = float(jnp.sqrt(GM_EARTH / r))
    return jnp.array([r, 0.0, 0.0, 0.0, 0.8 * v, 0.62 * v])
