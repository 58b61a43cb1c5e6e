"""
Numeric tolerances and fixed names shared across regdi.
"""

from __future__ import annotations

# Builtin calibration constraints, in the order they enter the constraint matrix
INTERCEPT = "intercept"
B_MEMBERSHIP = "b_membership"
B_OUTCOME = "b_outcome"
BUILTIN_CONSTRAINTS: tuple[str, ...] = (INTERCEPT, B_MEMBERSHIP, B_OUTCOME)

# Default membership indicator columns
A_INDICATOR_COL = "in_a"
B_INDICATOR_COL = "in_b"

# Minimum number of validation units for the measurement-error model
MIN_VALIDATION_UNITS = 2

# Numerical tolerances
SLOPE_EPS = 1e-10
RANK_TOL_FACTOR = 1e3  # multiplies the default numpy.linalg.matrix_rank tolerance
TOLERANCE_CALIBRATION = 1e-8  # relative miss on totals before a warning is logged
