import numpy as np
import pandas as pd
import pytest

from .data_synth import make_population


@pytest.fixture
def population():
    """Population of 2000 units, |A| = 200, |B| = 800, no measurement error."""
    return make_population(N=2000, n_a=200, n_b=800, noise_b=0.5, random_state=7)


@pytest.fixture
def small_frame():
    """Ten units: A = units 0-5, B = units 2-9, validation units 2-5."""
    y = np.array([3.0, 5.0, 4.0, 6.5, 8.0, 7.0, 9.5, 11.0, 10.0, 12.5])
    noise = np.array([0.3, -0.2, 0.1, -0.4, 0.2, 0.5, -0.1, 0.3, -0.3, 0.2])
    in_a = np.array([1, 1, 1, 1, 1, 1, 0, 0, 0, 0])
    in_b = np.array([0, 0, 1, 1, 1, 1, 1, 1, 1, 1])
    y_b = y + noise
    return pd.DataFrame(
        {"y": y, "y_b": y_b, "z": y_b**2, "in_a": in_a, "in_b": in_b},
        index=[f"u{i}" for i in range(10)],
    )
