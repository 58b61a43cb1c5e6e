"""
RegDI: data integration of a probability sample and a non-probability sample.

Main API functions:
- estimate: RegDI estimate of a population mean from a RegDIConfig
- regdi: functional entry point with the classic argument list
- compute_totals: population totals of the calibration constraints
- calibrate_weights: linear (GREG) weight calibration
- fit_and_correct: measurement-error correction of sample A's outcome
- linearized_variance: variance of a calibrated weighted mean
"""

from .calibration import calibrate_weights, calibration_check
from .core import CorrectionMode, RegDIConfig, estimate, regdi
from .correction import fit_and_correct, fit_correction_model
from .results import CorrectionModel, EstimateResult
from .totals import compute_totals, constraint_matrix, constraint_names
from .validation import (
    DegenerateCorrectionModelError,
    EstimationError,
    InsufficientValidationDataError,
    MissingColumnError,
    SingularConstraintMatrixError,
    ValidationError,
)
from .variance import linearized_variance, weighted_mean, weighted_variance

__version__ = "0.1.0"

__all__ = [
    # Estimation
    "estimate",
    "regdi",
    "RegDIConfig",
    "CorrectionMode",
    # Components
    "compute_totals",
    "constraint_matrix",
    "constraint_names",
    "calibrate_weights",
    "calibration_check",
    "fit_and_correct",
    "fit_correction_model",
    "linearized_variance",
    "weighted_mean",
    "weighted_variance",
    # Results
    "EstimateResult",
    "CorrectionModel",
    # Errors
    "ValidationError",
    "MissingColumnError",
    "EstimationError",
    "SingularConstraintMatrixError",
    "InsufficientValidationDataError",
    "DegenerateCorrectionModelError",
]
