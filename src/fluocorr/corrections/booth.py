"""
Booth self-absorption correction for thin and thick samples.

In the thick limit the correction keeps the nonlinear s (χ + 1) term that
the Tröger correction drops. Below the thickness threshold the full
thin-sample expression is solved as a quadratic in the true χ.

The suppression ratio R(E, χ) = χ_measured / χ_true is closed-form for
thick samples; for thin samples the thin correction is inverted point by
point, first with a short Newton iteration and, if that stalls, with a
bracketed bisection.

Reference: C.H. Booth & F. Bridges, Physica Scripta T115 (2005) 202
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np
from scipy import optimize

from fluocorr.core.attenuation import (
    absorber_edge_mu_linear_trendline,
    check_density,
    composition_mass_fractions,
    compound_mu_linear,
    weighted_fluorescence_mu,
    weighted_mu_absorber,
    weighted_mu_total,
    weighted_mu_total_single,
)
from fluocorr.core.geometry import (
    FluorescenceGeometry,
    as_energy_grid,
    energies_to_k,
    readonly,
    resolve_geometry,
)
from fluocorr.core.sample import build_sample_profile
from fluocorr.data.xray_tables import CrossSectionTable
from fluocorr.errors import InsufficientData

logger = logging.getLogger(__name__)

# Effective path (thickness / sin(incident)) at or above which a sample is thick, µm
THICK_LIMIT_UM = 90.0

THICK_DENOMINATOR_TOL = 1e-10
THIN_BETA_TOL = 1e-30
SUPPRESSION_DENOMINATOR_TOL = 1e-12

# Thin inversion solver
NEWTON_MAX_ITER = 20
NEWTON_RESIDUAL_TOL = 1e-12
NEWTON_STEP_TOL = 1e-12
NEWTON_DERIVATIVE_TOL = 1e-12
CHI_LOWER = -0.999999
CHI_UPPER = 10.0
BRACKET_MAX_EXPANSIONS = 40
BRACKET_UPPER_LIMIT = 1e6
BISECT_MAX_ITER = 80
BISECT_XTOL = 1e-10

Curve = Union[Sequence[float], np.ndarray]


def _check_positive(name: str, value: float) -> float:
    if not math.isfinite(value) or value <= 0.0:
        raise InsufficientData(f"{name} must be finite and > 0, got {value}")
    return float(value)


def _check_chi_true(chi_true: float) -> float:
    if not math.isfinite(chi_true) or chi_true == 0.0:
        raise InsufficientData(f"chi_true must be finite and non-zero, got {chi_true}")
    return float(chi_true)


def is_thick_sample(thickness_um: float, sin_phi: float) -> bool:
    """Thick when the incident-beam path thickness / sin(phi) reaches 90 µm."""
    return thickness_um / sin_phi >= THICK_LIMIT_UM


def thin_correction(
    chi_exp: float,
    alpha: float,
    s: float,
    density: float,
    thickness_cm: float,
    sin_phi: float,
) -> float:
    """
    Booth thin-sample correction at one energy point.

    ``alpha`` is in mass units and is scaled by ``density`` to cm⁻¹.
    The quadratic in χ_true is

        β χ² + term1 χ - term2/(4β) = 0
        term1 = γ (α - μ_a (χ_exp + 1)) + β
        term2 = 4 α β γ χ_exp

    with η = α d / sin(phi), γ = 1 - e^(-η), β = μ_a e^(-η) η.
    χ_exp is returned unchanged when β vanishes or there is no real root.
    """
    alpha_lin = alpha * density
    mu_a = s * alpha_lin
    eta = alpha_lin * thickness_cm / sin_phi
    exp_neg_eta = math.exp(-eta)
    beta = mu_a * exp_neg_eta * eta
    gamma = 1.0 - exp_neg_eta

    if abs(beta) < THIN_BETA_TOL:
        return chi_exp

    term1 = gamma * (alpha_lin - mu_a * (chi_exp + 1.0)) + beta
    term2 = 4.0 * alpha_lin * beta * gamma * chi_exp
    discriminant = term1 * term1 + term2
    if discriminant < 0.0:
        return chi_exp
    root = math.sqrt(discriminant)
    if term1 > 0.0:
        # Same root, rationalized so -term1 and the square root do not cancel
        return 2.0 * alpha_lin * gamma * chi_exp / (term1 + root)
    return (-term1 + root) / (2.0 * beta)


@dataclass(frozen=True)
class BoothResult:
    """
    Booth correction parameters on an energy grid.

    Attributes:
        energies: Energy grid (eV)
        k: Wavenumber grid (1/Å), 0 at and below the edge
        is_thick: Whether the thick-sample formula applies
        s: μ̄_a / α at each point
        alpha: α = μ_total + g μ_f at each point, in mass units
        sin_phi: sin(incident angle)
        edge_energy: Edge energy (eV)
        fluorescence_energy: Fluorescence energy (eV)
    """

    energies: np.ndarray
    k: np.ndarray
    is_thick: bool
    s: np.ndarray
    alpha: np.ndarray
    sin_phi: float
    edge_energy: float
    fluorescence_energy: float

    def _check_curve(self, chi: Curve) -> np.ndarray:
        chi = np.asarray(chi, dtype=float)
        if chi.shape != self.s.shape:
            raise InsufficientData(
                f"chi has {chi.size} points but the energy grid has {self.s.size}"
            )
        return chi

    def correct_chi(self, chi: Curve, density: float, thickness_um: float) -> np.ndarray:
        """
        Correct measured χ(k).

        Thick samples:  χ_corr = χ / (1 - s (χ + 1))
        Thin samples:   positive root of the Booth quadratic

        Points with a vanishing thick denominator are left unchanged.
        """
        chi = self._check_curve(chi)
        density = _check_positive("density", density)
        thickness_um = _check_positive("thickness_um", thickness_um)

        if self.is_thick:
            denom = 1.0 - self.s * (chi + 1.0)
            passthrough = ~(np.abs(denom) > THICK_DENOMINATOR_TOL)
            if np.any(passthrough):
                logger.warning(
                    "Booth thick denominator vanishes at %d point(s); passing them through",
                    int(np.count_nonzero(passthrough)),
                )
            return np.where(passthrough, chi, chi / np.where(passthrough, 1.0, denom))
        return np.array(
            [self._correct_thin(i, c, density, thickness_um) for i, c in enumerate(chi)]
        )

    def suppression_factor(
        self, chi_true: float, density: float, thickness_um: float
    ) -> np.ndarray:
        """
        Suppression ratio R(E, χ) = χ_measured / χ_true at each point.

        Thick samples use R = (1 - s) / (1 + s χ_true). Thin samples invert
        the thin correction numerically.

        Raises:
            InsufficientData: Invalid χ_true, an unstable thick denominator,
                or a failed thin inversion (message names the grid index)
        """
        chi_true = _check_chi_true(chi_true)
        density = _check_positive("density", density)
        thickness_um = _check_positive("thickness_um", thickness_um)

        if self.is_thick:
            denom = 1.0 + self.s * chi_true
            bad = ~np.isfinite(denom) | (np.abs(denom) < SUPPRESSION_DENOMINATOR_TOL)
            if np.any(bad):
                index = int(np.flatnonzero(bad)[0])
                raise InsufficientData(
                    "unstable thick-limit denominator while computing suppression "
                    f"at index {index}"
                )
            return (1.0 - self.s) / denom

        chi_exp = np.array(
            [
                self._solve_chi_exp_thin(i, chi_true, density, thickness_um)
                for i in range(self.s.size)
            ]
        )
        return chi_exp / chi_true

    def _correct_thin(self, i: int, chi_exp: float, density: float, thickness_um: float) -> float:
        return thin_correction(
            chi_exp,
            float(self.alpha[i]),
            float(self.s[i]),
            density,
            thickness_um * 1e-4,
            self.sin_phi,
        )

    def _solve_chi_exp_thin(
        self, i: int, chi_true: float, density: float, thickness_um: float
    ) -> float:
        """Find χ_exp whose thin correction at point ``i`` equals ``chi_true``."""

        def residual(x: float) -> float:
            return self._correct_thin(i, x, density, thickness_um) - chi_true

        # Newton with a central-difference derivative, started at the answer
        # for a sample without self-absorption.
        x = chi_true
        for _ in range(NEWTON_MAX_ITER):
            fx = residual(x)
            if not math.isfinite(fx):
                break
            if abs(fx) < NEWTON_RESIDUAL_TOL:
                return x
            h = 1e-6 * max(abs(x), 1.0)
            dfx = (residual(x + h) - residual(x - h)) / (2.0 * h)
            if not math.isfinite(dfx) or abs(dfx) < NEWTON_DERIVATIVE_TOL:
                break
            x_next = min(max(x - fx / dfx, CHI_LOWER), CHI_UPPER)
            if not math.isfinite(x_next):
                break
            if abs(x_next - x) < NEWTON_STEP_TOL:
                break
            x = x_next

        logger.debug("Newton stalled at index %d; falling back to bisection", i)
        return bracket_and_bisect(i, residual, CHI_LOWER, (max(chi_true, 0.0) + 1.0) * 2.0)


def bracket_and_bisect(i: int, residual, lo: float, hi: float) -> float:
    """
    Expand ``hi`` geometrically until the residual changes sign, then bisect.

    Raises:
        InsufficientData: No sign change up to 1e6, or a non-finite residual
            during bisection
    """
    flo = residual(lo)
    fhi = residual(hi)

    def brackets(f_hi: float) -> bool:
        return math.isfinite(flo) and math.isfinite(f_hi) and flo * f_hi <= 0.0

    bracketed = brackets(fhi)
    expansions = 0
    while not bracketed and expansions < BRACKET_MAX_EXPANSIONS:
        expansions += 1
        hi *= 2.0
        if hi > BRACKET_UPPER_LIMIT:
            break
        fhi = residual(hi)
        bracketed = brackets(fhi)

    if not bracketed:
        raise InsufficientData(f"failed to bracket thin Booth inversion at index {i}")
    if flo == 0.0:
        return lo
    if fhi == 0.0:
        return hi

    def finite_residual(x: float) -> float:
        value = residual(x)
        if not math.isfinite(value):
            raise InsufficientData(f"non-finite thin Booth inversion function at index {i}")
        return value

    return float(
        optimize.bisect(
            finite_residual, lo, hi, xtol=BISECT_XTOL, maxiter=BISECT_MAX_ITER, disp=False
        )
    )


@dataclass(frozen=True)
class BoothSuppressionResult:
    """
    Booth reference suppression ratio R(E, χ) = χ_measured / χ_true.

    Attributes:
        energies: Energy grid (eV)
        suppression_factor: R at each point
        r_min: Minimum R over the grid
        r_max: Maximum R over the grid
        r_mean: Mean R over the grid
        is_thick: Whether the thick branch was used
        edge_energy: Edge energy (eV)
        fluorescence_energy: Branching-weighted fluorescence energy (eV)
    """

    energies: np.ndarray
    suppression_factor: np.ndarray
    r_min: float
    r_max: float
    r_mean: float
    is_thick: bool
    edge_energy: float
    fluorescence_energy: float

    def to_dict(self) -> dict:
        return {
            "schema": "fluocorr.booth_suppression.v1",
            "energies": self.energies.tolist(),
            "suppression_factor": self.suppression_factor.tolist(),
            "r_min": self.r_min,
            "r_max": self.r_max,
            "r_mean": self.r_mean,
            "is_thick": self.is_thick,
            "edge_energy": self.edge_energy,
            "fluorescence_energy": self.fluorescence_energy,
        }


def booth(
    table: CrossSectionTable,
    formula: str,
    absorber: str,
    edge: str,
    energies: Curve,
    geometry: Optional[FluorescenceGeometry] = None,
    *,
    thickness_um: float,
) -> BoothResult:
    """
    Compute the Booth correction parameters.

    Args:
        table: Cross-section table
        formula: Sample chemical formula
        absorber: Absorbing element
        edge: Absorption edge
        energies: Energy grid in eV
        thickness_um: Sample thickness in µm (a large value gives the thick limit)
        geometry: Measurement geometry, 45°/45° when omitted

    Returns:
        BoothResult
    """
    grid = as_energy_grid(energies)
    thickness_um = _check_positive("thickness_um", thickness_um)
    geo = resolve_geometry(geometry)
    profile = build_sample_profile(table, formula, absorber, edge)

    mu_t = weighted_mu_total(table, profile.composition, grid)
    mu_a = weighted_mu_absorber(table, profile, grid, subtract_pre_edge=True)
    mu_f = weighted_mu_total_single(table, profile.composition, profile.fluorescence_energy)

    alpha = mu_t + geo.ratio * mu_f
    s = np.divide(mu_a, alpha, out=np.zeros_like(alpha), where=alpha > 0.0)

    sin_phi = geo.sin_incident
    thick = is_thick_sample(thickness_um, sin_phi)
    logger.debug(
        "Booth %s: effective path %.3g um -> %s",
        formula, thickness_um / sin_phi, "thick" if thick else "thin",
    )

    return BoothResult(
        energies=readonly(grid),
        k=readonly(energies_to_k(grid, profile.edge_energy)),
        is_thick=thick,
        s=readonly(s),
        alpha=readonly(alpha),
        sin_phi=sin_phi,
        edge_energy=profile.edge_energy,
        fluorescence_energy=profile.fluorescence_energy,
    )


def booth_suppression_reference(
    table: CrossSectionTable,
    formula: str,
    absorber: str,
    edge: str,
    energies: Curve,
    geometry: Optional[FluorescenceGeometry] = None,
    *,
    thickness_um: float,
    density_g_cm3: float,
    chi_true: float,
) -> BoothSuppressionResult:
    """
    Booth suppression ratio from linear attenuation coefficients.

    Uses the same attenuation inputs as the exact Ameyanagi evaluator:
    compound μ_total in cm⁻¹, the absorber edge jump above a pre-edge
    trendline, and μ_f averaged over the emission lines by branching
    intensity.

    Raises:
        InsufficientData: Non-positive density or thickness, χ_true of zero,
            or a failed per-point inversion
    """
    density = check_density(density_g_cm3)
    thickness_um = _check_positive("thickness_um", thickness_um)
    chi_true = _check_chi_true(chi_true)
    grid = as_energy_grid(energies)
    geo = resolve_geometry(geometry)
    profile = build_sample_profile(table, formula, absorber, edge)

    mass_fractions = composition_mass_fractions(table, profile.composition)
    mu_t = compound_mu_linear(table, mass_fractions, density, grid)
    mu_a = absorber_edge_mu_linear_trendline(table, profile, grid, density)
    mu_f, fluorescence_energy = weighted_fluorescence_mu(table, profile, mass_fractions, density)

    alpha_linear = mu_t + geo.ratio * mu_f
    s = np.divide(mu_a, alpha_linear, out=np.zeros_like(alpha_linear), where=alpha_linear > 0.0)

    sin_phi = geo.sin_incident
    base = BoothResult(
        energies=readonly(grid),
        k=readonly(energies_to_k(grid, profile.edge_energy)),
        is_thick=is_thick_sample(thickness_um, sin_phi),
        s=readonly(s),
        alpha=readonly(alpha_linear / density),
        sin_phi=sin_phi,
        edge_energy=profile.edge_energy,
        fluorescence_energy=fluorescence_energy,
    )

    r = base.suppression_factor(chi_true, density, thickness_um)
    return BoothSuppressionResult(
        energies=base.energies,
        suppression_factor=readonly(r),
        r_min=float(np.min(r)),
        r_max=float(np.max(r)),
        r_mean=float(np.mean(r)),
        is_thick=base.is_thick,
        edge_energy=base.edge_energy,
        fluorescence_energy=fluorescence_energy,
    )
