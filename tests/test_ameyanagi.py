"""
Tests for the exact suppression-ratio evaluator.

Covers agreement with the thick-limit closed form, positivity, thickness
dependence, pellet-derived thickness and input validation.
"""

import math

import numpy as np
import pytest

from fluocorr.core.attenuation import (
    absorber_mu_linear,
    composition_mass_fractions,
    compound_mu_linear,
    weighted_fluorescence_mu,
)
from fluocorr.core.geometry import DEFAULT_GEOMETRY, FluorescenceGeometry
from fluocorr.core.sample import build_sample_profile
from fluocorr.corrections.ameyanagi import (
    AmeyanagiSettings,
    PelletMassDiameter,
    ThicknessCm,
    ameyanagi_suppression_exact,
    one_minus_exp_neg,
)
from fluocorr.errors import InsufficientData

DENSITY = 5.24
CHI = 0.2


def settings(thickness, chi=CHI, density=DENSITY):
    return AmeyanagiSettings(density_g_cm3=density, thickness=thickness, chi_assumed=chi)


def exact(table, grid, thickness_cm, **kwargs):
    return ameyanagi_suppression_exact(
        table, "Fe2O3", "Fe", "K", grid, settings(ThicknessCm(thickness_cm)), **kwargs
    )


# ============================================================================
# one_minus_exp_neg
# ============================================================================

class TestOneMinusExpNeg:
    """Test the 1 - e^(-x) primitive."""

    def test_non_positive(self):
        assert one_minus_exp_neg(0.0) == 0.0
        assert one_minus_exp_neg(-3.0) == 0.0

    def test_saturates(self):
        assert one_minus_exp_neg(701.0) == 1.0
        assert one_minus_exp_neg(1e308) == 1.0

    def test_small_argument(self):
        """No cancellation for tiny x."""
        assert one_minus_exp_neg(1e-12) == pytest.approx(1e-12, rel=1e-10)

    def test_moderate(self):
        assert one_minus_exp_neg(2.0) == pytest.approx(1.0 - math.exp(-2.0), rel=1e-15)


# ============================================================================
# Thickness input
# ============================================================================

class TestThicknessInput:
    """Direct and pellet-derived thickness."""

    def test_direct(self):
        assert ThicknessCm(0.01).resolve_cm(DENSITY) == 0.01

    def test_pellet(self):
        """d = m / (ρ π (D/2)²)."""
        d = PelletMassDiameter(mass_g=0.05, diameter_cm=1.0).resolve_cm(DENSITY)
        assert d == pytest.approx(0.05 / (DENSITY * math.pi * 0.25), rel=1e-14)

    @pytest.mark.parametrize(
        "thickness",
        [
            ThicknessCm(0.0),
            ThicknessCm(-1.0),
            ThicknessCm(float("nan")),
            PelletMassDiameter(mass_g=0.0, diameter_cm=1.0),
            PelletMassDiameter(mass_g=0.05, diameter_cm=-1.0),
        ],
    )
    def test_invalid(self, thickness):
        with pytest.raises(InsufficientData):
            thickness.resolve_cm(DENSITY)

    def test_density_checked(self):
        with pytest.raises(InsufficientData, match="density"):
            ThicknessCm(0.01).resolve_cm(0.0)


# ============================================================================
# Exact suppression
# ============================================================================

class TestAmeyanagiSuppression:
    """Test R(E, χ) on Fe2O3."""

    def test_fe2o3(self, xray_table, fe_k_grid):
        """Finite curve and consistent summary statistics."""
        result = exact(xray_table, fe_k_grid, 0.01)

        assert len(result.energies) == len(result.suppression_factor)
        assert np.all(np.isfinite(result.suppression_factor))
        assert result.r_min <= result.r_mean <= result.r_max
        assert result.geometry_g == pytest.approx(1.0, rel=1e-12)
        assert result.beta == pytest.approx(0.01 / math.sqrt(0.5), rel=1e-12)

    def test_positive(self, xray_table, fe_k_grid):
        """Positive χ gives R > 0 everywhere."""
        result = exact(xray_table, fe_k_grid, 0.01)
        assert np.all(np.isfinite(result.suppression_factor))
        assert np.all(result.suppression_factor > 0.0)

    def test_thick_limit(self, xray_table, fe_k_grid):
        """Half a centimetre of Fe2O3 matches (1 - s) / (1 + s χ)."""
        result = exact(xray_table, fe_k_grid, 0.5)

        profile = build_sample_profile(xray_table, "Fe2O3", "Fe", "K")
        fractions = composition_mass_fractions(xray_table, profile.composition)
        mu_total = compound_mu_linear(xray_table, fractions, DENSITY, fe_k_grid)
        mu_a = absorber_mu_linear(xray_table, profile, fractions, DENSITY, fe_k_grid)
        mu_f, _ = weighted_fluorescence_mu(xray_table, profile, fractions, DENSITY)

        alpha = mu_total + DEFAULT_GEOMETRY.ratio * mu_f
        s = mu_a / alpha
        thick_ratio = (1.0 - s) / (1.0 + s * CHI)
        assert np.max(np.abs(result.suppression_factor - thick_ratio)) < 1e-6

    def test_thicker_sample_suppressed_more(self, xray_table, fe_k_grid):
        thin = exact(xray_table, fe_k_grid, 1e-4)
        thick = exact(xray_table, fe_k_grid, 0.2)
        assert thick.r_mean < thin.r_mean

    def test_pellet_matches_direct(self, xray_table, fe_k_grid):
        """Pellet mass and diameter give the same result as the derived thickness."""
        mass, diameter = 0.05, 1.0
        d = mass / (DENSITY * math.pi * (diameter * 0.5) ** 2)

        direct = exact(xray_table, fe_k_grid, d)
        pellet = ameyanagi_suppression_exact(
            xray_table,
            "Fe2O3",
            "Fe",
            "K",
            fe_k_grid,
            settings(PelletMassDiameter(mass_g=mass, diameter_cm=diameter)),
        )
        assert abs(direct.thickness_cm - pellet.thickness_cm) < 1e-14
        assert abs(direct.r_mean - pellet.r_mean) < 1e-10

    def test_weighted_fluorescence_energy(self, xray_table, fe_k_grid):
        result = exact(xray_table, fe_k_grid, 0.01)
        profile = build_sample_profile(xray_table, "Fe2O3", "Fe", "K")
        assert result.fluorescence_energy_weighted == pytest.approx(
            profile.weighted_fluorescence_energy, rel=1e-12
        )
        assert result.edge_energy == profile.edge_energy

    def test_geometry(self, fake_table, fe_k_grid):
        """g and β follow the supplied angles."""
        geo = FluorescenceGeometry(theta_incident_deg=30.0, theta_fluorescence_deg=90.0)
        result = exact(fake_table, fe_k_grid, 0.01, geometry=geo)
        assert result.geometry_g == pytest.approx(0.5, rel=1e-12)
        assert result.beta == pytest.approx(0.02, rel=1e-12)

    def test_deterministic(self, xray_table, fe_k_grid):
        first = exact(xray_table, fe_k_grid, 0.01)
        second = exact(xray_table, fe_k_grid, 0.01)
        assert np.array_equal(first.suppression_factor, second.suppression_factor)
        assert first.r_mean == second.r_mean

    def test_to_dict(self, fake_table, fe_k_grid):
        data = exact(fake_table, fe_k_grid, 0.01).to_dict()
        assert data["schema"] == "fluocorr.ameyanagi.v1"
        assert len(data["suppression_factor"]) == len(fe_k_grid)


class TestAmeyanagiValidation:
    """Inputs are rejected before any grid evaluation."""

    @pytest.mark.parametrize("chi", [0.0, float("nan"), float("inf")])
    def test_invalid_chi(self, fake_table, fe_k_grid, chi):
        with pytest.raises(InsufficientData) as exc_info:
            ameyanagi_suppression_exact(
                fake_table, "Fe2O3", "Fe", "K", fe_k_grid, settings(ThicknessCm(0.01), chi=chi)
            )
        assert "chi" in str(exc_info.value)

    def test_zero_chi_xraydb(self, xray_table, fe_k_grid):
        with pytest.raises(InsufficientData, match="chi"):
            ameyanagi_suppression_exact(
                xray_table, "Fe2O3", "Fe", "K", fe_k_grid, settings(ThicknessCm(0.01), chi=0.0)
            )

    def test_empty_grid(self, fake_table):
        with pytest.raises(InsufficientData, match="energy grid"):
            ameyanagi_suppression_exact(
                fake_table, "Fe2O3", "Fe", "K", [], settings(ThicknessCm(0.01))
            )

    def test_invalid_density(self, fake_table, fe_k_grid):
        with pytest.raises(InsufficientData, match="density"):
            ameyanagi_suppression_exact(
                fake_table, "Fe2O3", "Fe", "K", fe_k_grid,
                settings(ThicknessCm(0.01), density=-1.0),
            )

    def test_unstable_denominator(self, fake_table):
        """A vanishing 1 - exp(-α β) is fatal and names the index."""
        with pytest.raises(InsufficientData, match="unstable denominator at index 0"):
            ameyanagi_suppression_exact(
                fake_table, "Fe2O3", "Fe", "K", [7200.0, 7300.0], settings(ThicknessCm(1e-305))
            )
