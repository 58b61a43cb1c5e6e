"""
Tests for the RegDI estimator: correction modes, closed-form references and
the end-to-end pipeline.
"""

import logging

import numpy as np
import pandas as pd
import pytest
from numpy.testing import assert_allclose

from regdi import (
    CorrectionMode,
    EstimateResult,
    RegDIConfig,
    estimate,
    regdi,
)
from regdi.validation import (
    InsufficientValidationDataError,
    MissingColumnError,
    SingularConstraintMatrixError,
    ValidationError,
)

from .data_synth import make_population


def no_aux_reference(data, y_a, y_b, N):
    """
    Closed form of the calibrated mean with the three builtin constraints
    and equal design weights.

    Units of A outside B are ratio-adjusted to N - N_B; units of A inside B
    are regression-adjusted on y_B to (N_B, Y_B).
    """
    in_a = data["in_a"] == 1
    in_b = data["in_b"] == 1
    N_B = in_b.sum()
    Y_B = data.loc[in_b, y_b].sum()

    outside = data.loc[in_a & ~in_b]
    inside = data.loc[in_a & in_b]
    ya, yb = inside[y_a].to_numpy(), inside[y_b].to_numpy()
    slope = np.sum((yb - yb.mean()) * (ya - ya.mean())) / np.sum((yb - yb.mean()) ** 2)
    greg = ya.mean() + slope * (Y_B / N_B - yb.mean())

    return ((N - N_B) * outside[y_a].mean() + N_B * greg) / N


class TestModes:
    def test_no_aux_matches_closed_form(self, population):
        res = regdi(population, "y", "y_star", size_a=200, size_b=800)
        expected = no_aux_reference(population, "y", "y_star", N=len(population))
        assert res.mean == pytest.approx(expected, rel=1e-10)

    def test_no_aux_closed_form_with_population_size(self, population):
        res = regdi(population, "y", "y_star", size_a=200, size_b=800, N=5000)
        expected = no_aux_reference(population, "y", "y_star", N=5000)
        assert res.mean == pytest.approx(expected, rel=1e-10)
        assert res.population_size == 5000

    def test_correct_b_equals_none(self, population):
        base = regdi(population, "y", "y_star", 200, 800, aux_vars=["z1"])
        corr_b = regdi(
            population, "y", "y_star", 200, 800, apply_correction=1, aux_vars=["z1"]
        )
        assert corr_b.mean == base.mean
        assert corr_b.variance == base.variance
        assert corr_b.mode is CorrectionMode.CORRECT_B
        assert corr_b.correction_model is None

    def test_correct_a_idempotent_on_error_free_outcome(self, population):
        # y_a == y_star on validation units, so the fitted model is the identity
        data = population.assign(y_obs=population["y_star"])
        base = regdi(data, "y_obs", "y_star", 200, 800, aux_vars=["z1", "z2"])
        corr_a = regdi(
            data, "y_obs", "y_star", 200, 800, apply_correction=2, aux_vars=["z1", "z2"]
        )
        assert corr_a.correction_model.slope == pytest.approx(1.0)
        assert corr_a.correction_model.intercept == pytest.approx(0.0, abs=1e-9)
        assert corr_a.mean == pytest.approx(base.mean, rel=1e-9)
        assert corr_a.variance == pytest.approx(base.variance, rel=1e-6)

    def test_correct_a_removes_linear_error(self):
        pop = make_population(
            N=4000, n_a=400, n_b=1500, error_a=(1.0, 1.5, 0.0), random_state=21
        )
        naive = regdi(pop, "y_a", "y_star", 400, 1500, aux_vars=["z1"])
        corrected = regdi(
            pop, "y_a", "y_star", 400, 1500, apply_correction=2, aux_vars=["z1"]
        )
        truth = pop["y"].mean()
        assert abs(corrected.mean - truth) < abs(naive.mean - truth)
        assert corrected.correction_model.slope == pytest.approx(1.5)

    def test_correct_a_uses_corrected_outcome_total(self, small_frame):
        res = regdi(small_frame, "y", "y_b", 6, 8, apply_correction=2)
        model = res.correction_model
        corrected = small_frame["y_b"].copy()
        in_a = small_frame["in_a"] == 1
        corrected[in_a] = (small_frame.loc[in_a, "y"] - model.intercept) / model.slope
        in_b = small_frame["in_b"] == 1
        assert res.totals["b_outcome"] == pytest.approx(corrected[in_b].sum())
        assert res.mean == pytest.approx(
            np.average(corrected[in_a], weights=res.weights)
        )

    @pytest.mark.parametrize("overlap", [0, 1])
    def test_insufficient_validation_data(self, small_frame, overlap):
        data = small_frame.copy()
        # keep `overlap` units in both samples
        data["in_b"] = [0, 0] + [1] * overlap + [0] * (4 - overlap) + [1, 1, 1, 1]
        with pytest.raises(InsufficientValidationDataError) as exc:
            regdi(data, "y", "y_b", 6, 4 + overlap, apply_correction=2)
        assert exc.value.n_validation == overlap

    def test_mode_names(self):
        assert CorrectionMode.coerce("correct_a") is CorrectionMode.CORRECT_A
        assert CorrectionMode.coerce(1) is CorrectionMode.CORRECT_B
        with pytest.raises(ValidationError):
            CorrectionMode.coerce(3)
        with pytest.raises(ValidationError):
            CorrectionMode.coerce("errors_everywhere")

    @pytest.mark.parametrize("value", [2.7, 1.0, True, False, None, [2]])
    def test_mode_rejects_non_integer_codes(self, value):
        with pytest.raises(ValidationError):
            CorrectionMode.coerce(value)

    def test_mode_accepts_numpy_integers(self):
        assert CorrectionMode.coerce(np.int64(2)) is CorrectionMode.CORRECT_A


class TestEndToEnd:
    def test_ten_units_against_direct_solve(self, small_frame):
        """Calibration with one auxiliary equals a direct 4x4 solve."""
        y = small_frame["y"].to_numpy()
        y_b = small_frame["y_b"].to_numpy()
        z = y_b**2
        in_a = small_frame["in_a"].to_numpy() == 1
        delta = small_frame["in_b"].to_numpy().astype(float)

        # Reference: constraint rows for A, totals from B and N = 10
        Z = np.column_stack([np.ones(10), delta, delta * y_b, delta * z])[in_a]
        t = np.array([10.0, delta.sum(), (delta * y_b).sum(), (delta * z).sum()])
        d = np.full(in_a.sum(), 1 / 6)
        M = (Z * d[:, None]).T @ Z
        lam = np.linalg.inv(M) @ (t - Z.T @ d)
        w_ref = d * (1 + Z @ lam)
        mean_ref = np.sum(w_ref * y[in_a]) / np.sum(w_ref)

        res = regdi(small_frame, "y", "y_b", size_a=6, size_b=8, aux_vars=["z"])

        assert isinstance(res, EstimateResult)
        assert_allclose(res.weights.to_numpy(), w_ref, rtol=1e-6)
        assert list(res.weights.index) == ["u0", "u1", "u2", "u3", "u4", "u5"]
        assert res.mean == pytest.approx(mean_ref, rel=1e-8)
        assert res.weights.sum() == pytest.approx(10.0)
        assert_allclose(Z.T @ res.weights.to_numpy(), t, rtol=1e-9)
        assert res.variance >= 0.0
        assert np.isfinite(res.variance)
        assert res.se == pytest.approx(np.sqrt(res.variance))
        assert res.n_a == 6 and res.n_b == 8

    def test_three_units_four_constraints_is_singular(self, small_frame):
        """A of 3 units cannot satisfy 4 constraints."""
        data = small_frame.assign(
            in_a=[1, 1, 1, 0, 0, 0, 0, 0, 0, 0], in_b=1, w=1 / 3
        )
        with pytest.raises(SingularConstraintMatrixError):
            regdi(data, "y", "y_b", 3, 10, aux_vars=["z"], weights_a_col="w")

    def test_identical_auxiliaries_are_singular(self, population):
        data = population.assign(z1_copy=population["z1"])
        with pytest.raises(SingularConstraintMatrixError) as exc:
            regdi(data, "y", "y_star", 200, 800, aux_vars=["z1", "z1_copy"])
        assert "z1_copy" in exc.value.constraints

    def test_simulation_close_to_truth(self):
        pop = make_population(N=20000, n_a=1000, n_b=5000, noise_b=0.3, random_state=3)
        res = regdi(pop, "y", "y_star", 1000, 5000, aux_vars=["z1", "z2"])
        truth = pop["y"].mean()
        assert abs(res.mean - truth) < 4 * res.se
        # the integrated estimate beats the plain sample-A mean's standard error
        a = pop.loc[pop["in_a"] == 1, "y"]
        assert res.se < a.std(ddof=1) / np.sqrt(len(a))


class TestWeightsAndConfig:
    def test_design_weights_column(self, small_frame):
        data = small_frame.assign(w=[1.0, 2.0, 1.0, 3.0, 1.0, 2.0, 0, 0, 0, 0])
        res = regdi(data, "y", "y_b", 6, 8, aux_vars=["z"], weights_a_col="w")
        assert res.weights.sum() == pytest.approx(10.0)
        uniform = regdi(small_frame, "y", "y_b", 6, 8, aux_vars=["z"])
        assert not np.allclose(res.weights.to_numpy(), uniform.weights.to_numpy())

    def test_weight_scale_is_irrelevant(self, small_frame):
        a = regdi(small_frame, "y", "y_b", 6, 8, aux_vars=["z"])
        b = regdi(small_frame, "y", "y_b", 600, 8, aux_vars=["z"])
        assert a.mean == pytest.approx(b.mean, rel=1e-10)

    def test_non_positive_weights_rejected(self, small_frame):
        data = small_frame.assign(w=[1.0, -2.0, 1.0, 3.0, 1.0, 2.0, 0, 0, 0, 0])
        with pytest.raises(ValidationError, match="positive"):
            regdi(data, "y", "y_b", 6, 8, weights_a_col="w")

    @pytest.mark.parametrize(
        "kwargs, missing",
        [
            ({"y_a_col": "nope"}, ["nope"]),
            ({"aux_vars": ["z", "q1", "q2"]}, ["q1", "q2"]),
            ({"weights_a_col": "wt"}, ["wt"]),
        ],
    )
    def test_missing_columns(self, small_frame, kwargs, missing):
        args = {"y_a_col": "y", "y_b_col": "y_b", "size_a": 6, "size_b": 8}
        args.update(kwargs)
        with pytest.raises(MissingColumnError) as exc:
            regdi(small_frame, **args)
        assert exc.value.columns == missing

    def test_missing_indicator_column(self, small_frame):
        with pytest.raises(MissingColumnError):
            regdi(small_frame.drop(columns="in_b"), "y", "y_b", 6, 8)

    def test_custom_indicator_columns(self, small_frame):
        renamed = small_frame.rename(columns={"in_a": "muestra_A", "in_b": "muestra_B"})
        res = regdi(
            renamed, "y", "y_b", 6, 8, aux_vars=["z"], a_col="muestra_A", b_col="muestra_B"
        )
        base = regdi(small_frame, "y", "y_b", 6, 8, aux_vars=["z"])
        assert res.mean == pytest.approx(base.mean)

    def test_missing_outcome_in_a_rejected(self, small_frame):
        data = small_frame.copy()
        data.loc["u0", "y"] = np.nan
        with pytest.raises(ValidationError, match="sample A"):
            regdi(data, "y", "y_b", 6, 8)

    def test_missing_values_outside_a_are_ignored(self, small_frame):
        data = small_frame.copy()
        data.loc["u9", "y"] = np.nan  # A outcome for a unit outside A
        data.loc["u0", "y_b"] = np.nan  # B outcome for a unit outside B
        res = regdi(data, "y", "y_b", 6, 8, aux_vars=["z"])
        base = regdi(small_frame, "y", "y_b", 6, 8, aux_vars=["z"])
        assert res.mean == pytest.approx(base.mean)

    def test_empty_sample_a(self, small_frame):
        with pytest.raises(ValidationError, match="empty"):
            regdi(small_frame.assign(in_a=0), "y", "y_b", 6, 8)

    def test_population_smaller_than_sample(self, small_frame):
        with pytest.raises(ValidationError):
            regdi(small_frame, "y", "y_b", 6, 8, N=4)

    def test_config_validation(self):
        with pytest.raises(ValidationError):
            RegDIConfig("y", "y_b", size_a=0, size_b=8)
        with pytest.raises(ValidationError):
            RegDIConfig("y", "y_b", size_a=6, size_b=8, aux_vars=("b_outcome",))
        cfg = RegDIConfig("y", "y_b", 6, 8, correction=2, aux_vars="z")
        assert cfg.correction is CorrectionMode.CORRECT_A
        assert cfg.aux_vars == ("z",)

    def test_single_string_aux_vars(self, small_frame):
        # a bare column name is one auxiliary, not a sequence of characters
        data = small_frame.assign(x=small_frame["y"] * 0.5 + 1.0)
        via_function = regdi(data, "y", "y_b", 6, 8, aux_vars="z")
        via_config = estimate(data, RegDIConfig("y", "y_b", 6, 8, aux_vars="z"))
        assert list(via_function.totals.index)[-1] == "z"
        assert via_function.mean == via_config.mean
        assert via_function.variance == via_config.variance

        one_aux = regdi(data, "y", "y_b", 6, 8, aux_vars=["x"])
        with pytest.raises(MissingColumnError) as exc:
            regdi(data, "y", "y_b", 6, 8, aux_vars="xy")
        assert exc.value.columns == ["xy"]
        assert list(one_aux.totals.index)[-1] == "x"

    @pytest.mark.parametrize("size", ["10", None, True, float("nan"), -1.0])
    def test_invalid_sizes(self, size):
        with pytest.raises(ValidationError):
            RegDIConfig("y", "y_b", size_a=size, size_b=8)
        if size is not None:
            with pytest.raises(ValidationError):
                RegDIConfig("y", "y_b", size_a=6, size_b=8, population_size=size)

    def test_numpy_sizes_accepted(self):
        cfg = RegDIConfig("y", "y_b", size_a=np.int64(6), size_b=np.float64(8.0))
        assert cfg.size_a == 6

    def test_estimate_with_config(self, small_frame):
        cfg = RegDIConfig("y", "y_b", 6, 8, aux_vars=("z",))
        res = estimate(small_frame, cfg)
        assert res.mean == regdi(small_frame, "y", "y_b", 6, 8, aux_vars=["z"]).mean

    def test_input_not_mutated(self, small_frame):
        before = small_frame.copy()
        regdi(small_frame, "y", "y_b", 6, 8, apply_correction=2, aux_vars=["z"])
        pd.testing.assert_frame_equal(small_frame, before)

    def test_declared_size_mismatch_logs_warning(self, small_frame, caplog):
        with caplog.at_level(logging.WARNING, logger="regdi.core"):
            regdi(small_frame, "y", "y_b", 6, 50)
        assert "sample B" in caplog.text

    def test_result_is_frozen(self, small_frame):
        res = regdi(small_frame, "y", "y_b", 6, 8)
        with pytest.raises(AttributeError):
            res.mean = 0.0
        summary = res.to_dict()
        assert summary["mode"] == "NONE"
        assert set(summary) >= {"mean", "variance", "se", "outcome_variance"}
