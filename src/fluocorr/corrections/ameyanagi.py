"""
Exact self-absorption suppression ratio (Ameyanagi).

Evaluates the full exponential expression for a sample of known thickness,
without a thick-limit expansion or a numerical inversion:

    R(E, χ) = (F(E, χ) - 1) / χ

    F(E, χ) = [(1 - e^(-A β)) / (1 - e^(-α β))] × [α (1 + χ) / A]
    A = α + μ_a χ
    α = μ_total + g μ_f
    β = d / sin(phi)

All attenuation coefficients are linear (cm⁻¹). μ_a is the raw absorber
attenuation and μ_f is averaged over the emission lines by branching
intensity.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np

from fluocorr.core.attenuation import (
    absorber_mu_linear,
    check_density,
    composition_mass_fractions,
    compound_mu_linear,
    weighted_fluorescence_mu,
)
from fluocorr.core.geometry import (
    FluorescenceGeometry,
    as_energy_grid,
    readonly,
    resolve_geometry,
)
from fluocorr.core.sample import build_sample_profile
from fluocorr.data.xray_tables import CrossSectionTable
from fluocorr.errors import InsufficientData

logger = logging.getLogger(__name__)

UNSTABLE_DENOMINATOR = 1e-300
# exp(-x) underflows past this
EXP_SATURATION = 700.0


def one_minus_exp_neg(x: float) -> float:
    """1 - e^(-x); 0 for x <= 0 and 1 for x > 700."""
    if x <= 0.0:
        return 0.0
    if x > EXP_SATURATION:
        return 1.0
    return -math.expm1(-x)


# =============================================================================
# Thickness input
# =============================================================================


@dataclass(frozen=True)
class ThicknessCm:
    """Sample thickness given directly in cm."""

    value: float

    def resolve_cm(self, density_g_cm3: float) -> float:
        check_density(density_g_cm3)
        return _check_thickness(self.value)


@dataclass(frozen=True)
class PelletMassDiameter:
    """
    Pressed pellet of known mass and diameter.

    Thickness d = m / (ρ π (D/2)²).
    """

    mass_g: float
    diameter_cm: float

    def resolve_cm(self, density_g_cm3: float) -> float:
        density = check_density(density_g_cm3)
        if not math.isfinite(self.mass_g) or self.mass_g <= 0.0:
            raise InsufficientData(f"pellet mass must be finite and > 0, got {self.mass_g}")
        if not math.isfinite(self.diameter_cm) or self.diameter_cm <= 0.0:
            raise InsufficientData(
                f"pellet diameter must be finite and > 0, got {self.diameter_cm}"
            )
        area = math.pi * (self.diameter_cm * 0.5) ** 2
        return _check_thickness(self.mass_g / (density * area))


ThicknessInput = Union[ThicknessCm, PelletMassDiameter]


def _check_thickness(thickness_cm: float) -> float:
    if not math.isfinite(thickness_cm) or thickness_cm <= 0.0:
        raise InsufficientData(f"resolved thickness must be finite and > 0, got {thickness_cm}")
    return float(thickness_cm)


@dataclass(frozen=True)
class AmeyanagiSettings:
    """
    Sample settings for the exact suppression evaluator.

    Attributes:
        density_g_cm3: Effective sample density
        thickness: ThicknessCm or PelletMassDiameter
        chi_assumed: Assumed true EXAFS amplitude χ (finite, non-zero)
    """

    density_g_cm3: float
    thickness: ThicknessInput
    chi_assumed: float


@dataclass(frozen=True)
class AmeyanagiSuppressionResult:
    """
    Exact suppression ratio on an energy grid.

    Attributes:
        energies: Energy grid (eV)
        suppression_factor: R(E, χ) = χ_measured / χ at each point
        r_min: Minimum R over the grid
        r_max: Maximum R over the grid
        r_mean: Mean R over the grid
        mu_f: Branching-weighted fluorescence attenuation (cm⁻¹)
        thickness_cm: Resolved sample thickness (cm)
        geometry_g: g = sin(phi) / sin(theta)
        beta: d / sin(phi) (cm)
        edge_energy: Edge energy (eV)
        fluorescence_energy_weighted: Branching-weighted fluorescence energy (eV)
    """

    energies: np.ndarray
    suppression_factor: np.ndarray
    r_min: float
    r_max: float
    r_mean: float
    mu_f: float
    thickness_cm: float
    geometry_g: float
    beta: float
    edge_energy: float
    fluorescence_energy_weighted: float

    def to_dict(self) -> dict:
        return {
            "schema": "fluocorr.ameyanagi.v1",
            "energies": self.energies.tolist(),
            "suppression_factor": self.suppression_factor.tolist(),
            "r_min": self.r_min,
            "r_max": self.r_max,
            "r_mean": self.r_mean,
            "mu_f": self.mu_f,
            "thickness_cm": self.thickness_cm,
            "geometry_g": self.geometry_g,
            "beta": self.beta,
            "edge_energy": self.edge_energy,
            "fluorescence_energy_weighted": self.fluorescence_energy_weighted,
        }


def ameyanagi_suppression_exact(
    table: CrossSectionTable,
    formula: str,
    absorber: str,
    edge: str,
    energies: Union[Sequence[float], np.ndarray],
    settings: AmeyanagiSettings,
    geometry: Optional[FluorescenceGeometry] = None,
) -> AmeyanagiSuppressionResult:
    """
    Evaluate the exact suppression ratio R(E, χ).

    Args:
        table: Cross-section table
        formula: Sample chemical formula
        absorber: Absorbing element
        edge: Absorption edge
        energies: Energy grid in eV
        settings: Density, thickness and assumed χ
        geometry: Measurement geometry, 45°/45° when omitted

    Returns:
        AmeyanagiSuppressionResult

    Raises:
        InsufficientData: Empty grid, χ of zero, invalid density or
            thickness, or an unstable or non-finite point (message names
            the grid index)
    """
    grid = as_energy_grid(energies)
    chi = settings.chi_assumed
    if not math.isfinite(chi) or chi == 0.0:
        raise InsufficientData(f"chi must be finite and non-zero, got {chi}")

    geo = resolve_geometry(geometry)
    density = settings.density_g_cm3
    thickness_cm = settings.thickness.resolve_cm(density)
    g = geo.ratio
    beta = thickness_cm / geo.sin_incident

    profile = build_sample_profile(table, formula, absorber, edge)
    mass_fractions = composition_mass_fractions(table, profile.composition)
    mu_total = compound_mu_linear(table, mass_fractions, density, grid)
    mu_a = absorber_mu_linear(table, profile, mass_fractions, density, grid)
    mu_f, fluorescence_energy = weighted_fluorescence_mu(table, profile, mass_fractions, density)

    r = np.empty_like(grid)
    for i in range(grid.size):
        alpha = float(mu_total[i]) + g * mu_f
        a = alpha + float(mu_a[i]) * chi
        absorbed_alpha = one_minus_exp_neg(alpha * beta)
        if abs(absorbed_alpha) < UNSTABLE_DENOMINATOR or abs(a) < UNSTABLE_DENOMINATOR:
            raise InsufficientData(f"unstable denominator at index {i}")

        ratio = one_minus_exp_neg(a * beta) / absorbed_alpha
        r_i = (ratio * alpha * (1.0 + chi) / a - 1.0) / chi
        if not math.isfinite(r_i):
            raise InsufficientData(f"non-finite suppression factor at index {i}")
        r[i] = r_i

    logger.debug(
        "Ameyanagi %s: d=%.4g cm beta=%.4g cm mu_f=%.4g /cm R in [%.4f, %.4f]",
        formula, thickness_cm, beta, mu_f, float(r.min()), float(r.max()),
    )

    return AmeyanagiSuppressionResult(
        energies=readonly(grid),
        suppression_factor=readonly(r),
        r_min=float(np.min(r)),
        r_max=float(np.max(r)),
        r_mean=float(np.mean(r)),
        mu_f=mu_f,
        thickness_cm=thickness_cm,
        geometry_g=g,
        beta=beta,
        edge_energy=profile.edge_energy,
        fluorescence_energy_weighted=fluorescence_energy,
    )
