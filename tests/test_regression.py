"""Tests for the least-squares fits."""

import math

import numpy as np
import pytest

from fluocorr.core.regression import fit_line, fit_ln_vs_x


class TestFitLine:
    """Test y = intercept + slope * x."""

    def test_exact_line(self):
        """Noise-free data recovers the line."""
        x = np.linspace(1.0, 10.0, 20)
        fit = fit_line(x, 3.0 + 0.5 * x)
        assert fit is not None
        intercept, slope = fit
        assert intercept == pytest.approx(3.0, rel=1e-10)
        assert slope == pytest.approx(0.5, rel=1e-10)

    def test_invalid_points_excluded(self):
        """Non-positive and non-finite points do not affect the fit."""
        x = np.array([1.0, 2.0, 3.0, 4.0, -1.0, 5.0, 6.0])
        y = 2.0 * x
        y[3] = np.nan
        y[5] = -7.0
        intercept, slope = fit_line(x, y)
        assert intercept == pytest.approx(0.0, abs=1e-10)
        assert slope == pytest.approx(2.0, rel=1e-10)

    def test_too_few_points(self):
        """Fewer than two valid points gives no fit."""
        assert fit_line([1.0], [2.0]) is None
        assert fit_line([1.0, 2.0], [2.0, 0.0]) is None
        assert fit_line([], []) is None

    def test_degenerate_design(self):
        """All x equal gives no fit."""
        assert fit_line([2.0, 2.0, 2.0], [1.0, 2.0, 3.0]) is None

    def test_shape_mismatch(self):
        """x and y must align."""
        with pytest.raises(ValueError):
            fit_line([1.0, 2.0], [1.0, 2.0, 3.0])


class TestFitLnVsX:
    """Test ln(y) = intercept + slope * x."""

    def test_exponential(self):
        """Exponential data recovers ln(amplitude) and rate."""
        x = np.linspace(0.5, 12.0, 40)
        intercept, slope = fit_ln_vs_x(x, 3.0 * np.exp(-0.25 * x))
        assert intercept == pytest.approx(math.log(3.0), rel=1e-10)
        assert slope == pytest.approx(-0.25, rel=1e-10)

    def test_zero_x_excluded(self):
        """Points at x = 0 are dropped."""
        x = np.array([0.0, 0.0, 1.0, 2.0, 3.0])
        y = np.array([100.0, 100.0, math.e, math.e ** 2, math.e ** 3])
        intercept, slope = fit_ln_vs_x(x, y)
        assert intercept == pytest.approx(0.0, abs=1e-10)
        assert slope == pytest.approx(1.0, rel=1e-10)

    def test_no_signal(self):
        """Insufficient data gives (0, 0) instead of failing."""
        assert fit_ln_vs_x([0.0, 0.0], [1.0, 1.0]) == (0.0, 0.0)
        assert fit_ln_vs_x([1.0, 2.0], [0.0, 0.0]) == (0.0, 0.0)
        assert fit_ln_vs_x([3.0, 3.0], [1.0, 2.0]) == (0.0, 0.0)
